"""Settings schemas."""
from typing import Optional

from pydantic import BaseModel, Field


class SettingsResponse(BaseModel):
    id: int
    is_active: bool
    election_title: Optional[str] = None
    voting_start_date: Optional[str] = None
    voting_end_date: Optional[str] = None
    voting_start_time: Optional[str] = None
    voting_end_time: Optional[str] = None
    results_published: bool
    system_name: Optional[str] = None
    max_votes_per_voter: int
    updated_at: Optional[str] = None
    source: str = "database"
    stale: bool = False


class SettingsUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""
    is_active: Optional[bool] = None
    election_title: Optional[str] = Field(None, max_length=200)
    voting_start_date: Optional[str] = None
    voting_end_date: Optional[str] = None
    voting_start_time: Optional[str] = None
    voting_end_time: Optional[str] = None
    results_published: Optional[bool] = None
    system_name: Optional[str] = Field(None, max_length=200)
    max_votes_per_voter: Optional[int] = Field(None, ge=1)
