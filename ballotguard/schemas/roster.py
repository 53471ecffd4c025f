"""Position, candidate and voter schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ballotguard.core.sanitization import sanitize_name, sanitize_title, sanitize_voter_id


class PositionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field("", max_length=1000)
    priority: int = 0
    max_candidates: int = Field(1, ge=1)
    is_active: bool = True

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        return sanitize_title(v)


class PositionResponse(BaseModel):
    id: int
    election_id: int
    title: str
    description: str
    priority: int
    max_candidates: int
    max_selections: int
    is_active: bool


class CandidateCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    biography: str = Field("", max_length=2000)
    image_url: str = Field("", max_length=500)
    is_active: bool = True

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return sanitize_name(v)


class CandidateResponse(BaseModel):
    id: int
    election_id: int
    position_id: int
    name: str
    biography: str
    image_url: str
    is_active: bool


class VoterCreate(BaseModel):
    voter_id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=200)

    @field_validator('voter_id')
    @classmethod
    def validate_voter_id(cls, v: str) -> str:
        return sanitize_voter_id(v)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return sanitize_name(v)


class VoterResponse(BaseModel):
    id: int
    election_id: int
    voter_id: str
    name: str
    has_voted: bool
    voted_at: Optional[datetime] = None
