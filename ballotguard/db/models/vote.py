"""Vote model (ballot ledger entry)."""
from datetime import datetime, timezone as tz
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, UniqueConstraint
from sqlalchemy.orm import relationship

from ballotguard.db.base import Base

VOTE_UNIQUE_CONSTRAINT = "uq_vote_voter_election_position"


class Vote(Base):
    __tablename__ = "votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    voter_id = Column(Integer, ForeignKey("voters.id", ondelete="CASCADE"), nullable=False)
    election_id = Column(Integer, ForeignKey("elections.id", ondelete="CASCADE"), nullable=False)
    position_id = Column(Integer, ForeignKey("positions.id", ondelete="CASCADE"), nullable=False)
    # NULL only for abstentions
    candidate_id = Column(Integer, ForeignKey("candidates.id", ondelete="CASCADE"), nullable=True)
    is_abstention = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(tz.utc))

    # Relationships
    voter = relationship("Voter", back_populates="votes")
    election = relationship("Election", back_populates="votes")
    position = relationship("Position", back_populates="votes")
    candidate = relationship("Candidate")

    __table_args__ = (
        Index("idx_votes_election_position", "election_id", "position_id"),
        UniqueConstraint("voter_id", "election_id", "position_id", name=VOTE_UNIQUE_CONSTRAINT),
        CheckConstraint(
            "(is_abstention AND candidate_id IS NULL) OR (NOT is_abstention AND candidate_id IS NOT NULL)",
            name="ck_vote_abstention_candidate",
        ),
    )
