"""Voter model."""
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship, validates

from ballotguard.db.base import Base


class Voter(Base):
    __tablename__ = "voters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    election_id = Column(Integer, ForeignKey("elections.id", ondelete="CASCADE"), nullable=False)
    voter_id = Column(String(50), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=False)
    has_voted = Column(Boolean, nullable=False, default=False)
    voted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    election = relationship("Election", back_populates="voters")
    votes = relationship("Vote", back_populates="voter", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_voters_election_voted", "election_id", "has_voted"),)

    @validates("has_voted")
    def validate_has_voted(self, key, value):
        # Corrections go through deleting the voter record, never a reset
        if self.has_voted and not value:
            raise ValueError("has_voted cannot be reset once set")
        return value
