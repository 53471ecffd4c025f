"""Setting model (singleton)."""
from datetime import datetime, timezone as tz
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String

from ballotguard.db.base import Base

SETTINGS_ROW_ID = 1


class Setting(Base):
    """Secondary copy of the voting window and publication flags.

    Edited independently of the election record; the election clock uses it as
    a fallback when election fields are missing.
    """

    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, default=SETTINGS_ROW_ID)
    is_active = Column(Boolean, nullable=False, default=False)
    election_title = Column(String(200), nullable=True)
    voting_start_date = Column(String(10), nullable=True)
    voting_end_date = Column(String(10), nullable=True)
    voting_start_time = Column(String(8), nullable=True)
    voting_end_time = Column(String(8), nullable=True)
    results_published = Column(Boolean, nullable=False, default=False)
    system_name = Column(String(200), nullable=True)
    max_votes_per_voter = Column(Integer, nullable=False, default=1)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(tz.utc),
        onupdate=lambda: datetime.now(tz.utc),
    )

    __table_args__ = (
        CheckConstraint(f"id = {SETTINGS_ROW_ID}", name="ck_settings_singleton"),
    )
