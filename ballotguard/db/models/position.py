"""Position model."""
from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from ballotguard.db.base import Base


class Position(Base):
    __tablename__ = "positions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    election_id = Column(Integer, ForeignKey("elections.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False, default="")
    priority = Column(Integer, nullable=False, default=0)
    max_candidates = Column(Integer, nullable=False, default=1)
    max_selections = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)

    # Relationships
    election = relationship("Election", back_populates="positions")
    candidates = relationship("Candidate", back_populates="position", cascade="all, delete-orphan")
    votes = relationship("Vote", back_populates="position", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_positions_election", "election_id"),
        UniqueConstraint("election_id", "title", name="uq_position_election_title"),
    )
