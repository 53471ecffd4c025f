"""Middleware package."""
from ballotguard.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
