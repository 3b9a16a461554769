"""
Result and error types for the Learning Service cache.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from shared.errors import ExternalServiceError


class CacheErrorKind(str, Enum):
    """Why a cache operation degraded."""

    STORE_UNAVAILABLE = "store_unavailable"
    SERIALIZATION = "serialization"


class CacheStoreError(ExternalServiceError):
    """Raised by a cache store when the backing Redis call fails."""

    def __init__(self, operation: str, message: str = "Cache store error", details: Optional[Dict[str, Any]] = None):
        super().__init__("redis", f"{operation}: {message}", details)
        self.operation = operation


@dataclass(frozen=True)
class CacheResult:
    """Outcome of one guarded cache operation.

    ``value`` holds the operation's return value on success and the
    caller-supplied fallback on failure, so ``result.value`` is always
    safe to hand back to request code.
    """

    value: Any
    error: Optional[CacheErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any) -> "CacheResult":
        return cls(value=value)

    @classmethod
    def failure(cls, error: CacheErrorKind, fallback: Any) -> "CacheResult":
        return cls(value=fallback, error=error)
