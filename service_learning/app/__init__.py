"""
Learning Service package for the learning platform API.

Request handlers in the platform answer first and push their side effects
(cache writes, bulk invalidations, notification fan-out) to run afterwards.
This package provides:

- app.main: API surface for the background task status view and health.
- app.cache: Redis-backed response cache with registry-based invalidation.
- app.tasks: Deferred task scheduler and the in-process task tracker.

Guidelines:
- Nothing raised by a deferred task or a cache call may reach the HTTP caller.
- Caching is an optimization; a degraded store reads as a miss.
- Keep tracker bookkeeping in memory and fast; never await under its lock.
"""
