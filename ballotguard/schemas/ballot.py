"""Ballot schemas."""
from datetime import datetime
from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ballotguard.core.sanitization import sanitize_voter_id


class BallotRequest(BaseModel):
    voter_id: str = Field(..., min_length=1, max_length=50)
    election_id: Optional[int] = None
    # Position id -> candidate id, or "abstain"
    selections: Dict[int, Union[int, Literal["abstain"]]] = Field(..., min_length=1)

    @field_validator('voter_id')
    @classmethod
    def validate_voter_id(cls, v: str) -> str:
        return sanitize_voter_id(v)


class BallotReceipt(BaseModel):
    voter_id: str
    election_id: int
    votes_recorded: int
    abstentions: int
    voted_at: datetime


class BallotResponse(BaseModel):
    accepted: bool
    reason: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False
    position_id: Optional[int] = None
    receipt: Optional[BallotReceipt] = None
