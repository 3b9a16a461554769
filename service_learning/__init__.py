"""Learning platform service: deferred side effects and registry-aware caching."""
