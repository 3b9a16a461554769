"""
Helpers for serving cached HTTP responses.
"""

from typing import Optional

from fastapi.responses import JSONResponse

from .service import CacheService


async def cached_json_response(cache: CacheService, cache_key: str) -> Optional[JSONResponse]:
    """Return the cached body for ``cache_key`` as a 200 response, or ``None`` on a miss.

    Handlers return the response as-is when one comes back, otherwise they
    compute the result and schedule ``cache_response`` as a deferred task.
    """
    cached = await cache.get_cached_response(cache_key)
    if cached is None:
        return None
    return JSONResponse(status_code=200, content=cached)
