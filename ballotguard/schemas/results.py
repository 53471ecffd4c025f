"""Tally schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class CandidateResult(BaseModel):
    candidate_id: int
    name: str
    vote_count: int
    percentage: float


class PositionResult(BaseModel):
    position_id: int
    title: str
    priority: int
    max_candidates: int
    candidates: List[CandidateResult]
    total_votes: int
    abstentions: int


class ResultsResponse(BaseModel):
    election_id: int
    title: str
    results_published: bool
    positions: List[PositionResult]
    source: str
    stale: bool


class RecentVoter(BaseModel):
    name: str
    voter_id: str
    voted_at: Optional[datetime] = None


class ParticipationResponse(BaseModel):
    election_id: int
    total: int
    voted: int
    remaining: int
    completion_percentage: int
    recent_voters: List[RecentVoter]
    source: str
    stale: bool
