"""Pydantic schemas for request/response validation."""
from ballotguard.schemas.auth import AdminLoginRequest
from ballotguard.schemas.ballot import BallotReceipt, BallotRequest, BallotResponse
from ballotguard.schemas.common import ErrorDetail, ErrorResponse, SuccessResponse
from ballotguard.schemas.election import (
    ActiveToggleResponse,
    DefaultElectionResponse,
    ElectionCreate,
    ElectionResponse,
    ElectionStatusResponse,
    PublicationRequest,
    PublicationResponse,
)
from ballotguard.schemas.results import ParticipationResponse, ResultsResponse
from ballotguard.schemas.roster import (
    CandidateCreate,
    CandidateResponse,
    PositionCreate,
    PositionResponse,
    VoterCreate,
    VoterResponse,
)
from ballotguard.schemas.settings import SettingsResponse, SettingsUpdate

__all__ = [
    "AdminLoginRequest",
    "BallotReceipt",
    "BallotRequest",
    "BallotResponse",
    "ErrorDetail",
    "ErrorResponse",
    "SuccessResponse",
    "ActiveToggleResponse",
    "DefaultElectionResponse",
    "ElectionCreate",
    "ElectionResponse",
    "ElectionStatusResponse",
    "PublicationRequest",
    "PublicationResponse",
    "ParticipationResponse",
    "ResultsResponse",
    "CandidateCreate",
    "CandidateResponse",
    "PositionCreate",
    "PositionResponse",
    "VoterCreate",
    "VoterResponse",
    "SettingsResponse",
    "SettingsUpdate",
]
