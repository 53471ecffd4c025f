"""BallotGuard election integrity and resilience engine."""

__version__ = "1.0.0"
