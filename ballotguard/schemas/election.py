"""Election schemas."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ballotguard.core.sanitization import sanitize_title


class ElectionStatusResponse(BaseModel):
    status: str
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None
    results_published: bool
    title: str
    election_id: Optional[int] = None
    source: str
    stale: bool


class ElectionCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    # MM/DD/YYYY, YYYY-MM-DD or an ISO date-time; normalized by the service
    date: str = Field(..., min_length=1, max_length=40)
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    make_current: bool = False

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        return sanitize_title(v)


class ElectionResponse(BaseModel):
    id: int
    title: str
    date: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    is_current: bool
    is_active: Optional[bool] = None
    status: str
    results_published: bool
    created_at: Optional[datetime] = None


class DefaultElectionResponse(BaseModel):
    created: bool
    message: str
    election: Optional[ElectionResponse] = None


class ActiveToggleResponse(BaseModel):
    election_id: int
    is_active: Optional[bool] = None
    status: str


class PublicationRequest(BaseModel):
    published: bool


class PublicationResponse(BaseModel):
    election_id: int
    results_published: bool
