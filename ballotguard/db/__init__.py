"""Database package."""
from ballotguard.db.session import engine, build_engine
from ballotguard.db.base import Base

__all__ = ["engine", "build_engine", "Base"]
