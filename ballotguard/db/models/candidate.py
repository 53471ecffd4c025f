"""Candidate model."""
from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from ballotguard.db.base import Base


class Candidate(Base):
    """Display metadata only; vote counts are always derived from votes."""

    __tablename__ = "candidates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    election_id = Column(Integer, ForeignKey("elections.id", ondelete="CASCADE"), nullable=False)
    position_id = Column(Integer, ForeignKey("positions.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    biography = Column(Text, nullable=False, default="")
    image_url = Column(String(500), nullable=False, default="")
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    election = relationship("Election", back_populates="candidates")
    position = relationship("Position", back_populates="candidates")

    __table_args__ = (Index("idx_candidates_position", "position_id"),)
