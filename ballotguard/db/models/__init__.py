"""Database models."""
from ballotguard.db.models.election import Election
from ballotguard.db.models.setting import Setting
from ballotguard.db.models.position import Position
from ballotguard.db.models.candidate import Candidate
from ballotguard.db.models.voter import Voter
from ballotguard.db.models.vote import Vote

__all__ = ["Election", "Setting", "Position", "Candidate", "Voter", "Vote"]
