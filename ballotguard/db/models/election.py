"""Election model."""
from datetime import datetime, timezone as tz
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, text
from sqlalchemy.orm import relationship

from ballotguard.core.constants import STATUS_NOT_STARTED
from ballotguard.db.base import Base


class Election(Base):
    __tablename__ = "elections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(200), nullable=False)
    date = Column(String(10), nullable=False)  # canonical YYYY-MM-DD
    start_date = Column(String(10), nullable=True)
    end_date = Column(String(10), nullable=True)
    start_time = Column(String(8), nullable=True)  # HH:MM:SS
    end_time = Column(String(8), nullable=True)
    is_current = Column(Boolean, nullable=False, default=False)
    # Manual override: None follows the schedule, True forces active, False forces not-started
    is_active = Column(Boolean, nullable=True, default=None)
    status = Column(String(20), nullable=False, default=STATUS_NOT_STARTED)
    results_published = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(tz.utc))

    # Relationships
    positions = relationship("Position", back_populates="election", cascade="all, delete-orphan")
    candidates = relationship("Candidate", back_populates="election", cascade="all, delete-orphan")
    voters = relationship("Voter", back_populates="election", cascade="all, delete-orphan")
    votes = relationship("Vote", back_populates="election", cascade="all, delete-orphan")

    __table_args__ = (
        # At most one current election
        Index(
            "uq_elections_single_current",
            "is_current",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
    )
