"""Admin-only endpoints."""
from typing import List

from fastapi import APIRouter, Depends

from ballotguard.api.deps import get_data_access, require_permission, verify_admin_token
from ballotguard.core.security import MANAGE_ELECTION, PREVIEW_RESULTS, VIEW_DIAGNOSTICS
from ballotguard.db.access import DataAccessLayer
from ballotguard.schemas import (
    ActiveToggleResponse,
    CandidateCreate,
    CandidateResponse,
    DefaultElectionResponse,
    ElectionCreate,
    ElectionResponse,
    ParticipationResponse,
    PositionCreate,
    PositionResponse,
    PublicationRequest,
    PublicationResponse,
    ResultsResponse,
    SettingsResponse,
    SettingsUpdate,
    SuccessResponse,
    VoterCreate,
    VoterResponse,
)
from ballotguard.services import clock, elections, roster, settings as settings_service, tally

router = APIRouter(dependencies=[Depends(verify_admin_token)])

can_manage = Depends(require_permission(MANAGE_ELECTION))
can_preview = Depends(require_permission(PREVIEW_RESULTS))
can_diagnose = Depends(require_permission(VIEW_DIAGNOSTICS))


# -- election lifecycle ------------------------------------------------------


@router.post("/election/toggle-active", response_model=ActiveToggleResponse, dependencies=[can_manage])
def toggle_active_endpoint(dal: DataAccessLayer = Depends(get_data_access)):
    """
    Flip the current election's manual override.

    Activating opens voting immediately, even outside the configured window;
    deactivating closes it. The settings record is updated to match.
    """
    return clock.toggle_active(dal)


@router.post("/election/follow-schedule", response_model=ActiveToggleResponse, dependencies=[can_manage])
def follow_schedule_endpoint(dal: DataAccessLayer = Depends(get_data_access)):
    """Remove the manual override; the configured window decides the phase again."""
    return clock.follow_schedule(dal)


@router.post("/election/publication", response_model=PublicationResponse, dependencies=[can_manage])
def publication_endpoint(body: PublicationRequest, dal: DataAccessLayer = Depends(get_data_access)):
    """Publish or withdraw the current election's results."""
    return elections.publish_results(dal, body.published)


@router.get("/elections", response_model=List[ElectionResponse], dependencies=[can_preview])
def list_elections_endpoint(dal: DataAccessLayer = Depends(get_data_access)):
    return dal.run(elections.list_elections)


@router.post("/elections", response_model=ElectionResponse, status_code=201, dependencies=[can_manage])
def create_election_endpoint(body: ElectionCreate, dal: DataAccessLayer = Depends(get_data_access)):
    """
    Create an election.

    Dates may be ``MM/DD/YYYY``, ``YYYY-MM-DD`` or ISO date-times and are
    stored as ``YYYY-MM-DD``. With ``make_current`` the election replaces the
    current one.
    """
    return elections.add_election(
        dal,
        title=body.title,
        election_date=body.date,
        start_date=body.start_date,
        end_date=body.end_date,
        start_time=body.start_time,
        end_time=body.end_time,
        make_current=body.make_current,
    )


@router.post("/elections/default", response_model=DefaultElectionResponse, dependencies=[can_manage])
def create_default_election_endpoint(dal: DataAccessLayer = Depends(get_data_access)):
    """Create a current election for today, only when no election exists yet."""
    created, election = elections.add_default_election(dal)
    if not created:
        return DefaultElectionResponse(created=False, message="Elections already exist")
    return DefaultElectionResponse(created=True, message="Default election created", election=election)


@router.post("/elections/{election_id}/current", response_model=ElectionResponse, dependencies=[can_manage])
def set_current_endpoint(election_id: int, dal: DataAccessLayer = Depends(get_data_access)):
    """Make this the only current election."""
    return elections.make_current(dal, election_id)


@router.delete("/elections/{election_id}", response_model=SuccessResponse, dependencies=[can_manage])
def delete_election_endpoint(election_id: int, dal: DataAccessLayer = Depends(get_data_access)):
    """Delete an election with its positions, candidates, voters and votes."""
    elections.remove_election(dal, election_id)
    return SuccessResponse(message="Election deleted successfully")


@router.get("/elections/{election_id}/results", response_model=ResultsResponse, dependencies=[can_preview])
def preview_results_endpoint(election_id: int, dal: DataAccessLayer = Depends(get_data_access)):
    """Results regardless of publication."""
    read = tally.get_results(dal, election_id)
    return ResultsResponse(**read.data, source=read.source, stale=read.stale)


@router.get("/elections/{election_id}/participation", response_model=ParticipationResponse, dependencies=[can_preview])
def preview_participation_endpoint(election_id: int, dal: DataAccessLayer = Depends(get_data_access)):
    read = tally.get_participation(dal, election_id)
    return ParticipationResponse(**read.data, source=read.source, stale=read.stale)


# -- roster ------------------------------------------------------------------


@router.post(
    "/elections/{election_id}/positions",
    response_model=PositionResponse,
    status_code=201,
    dependencies=[can_manage],
)
def create_position_endpoint(
    election_id: int,
    body: PositionCreate,
    dal: DataAccessLayer = Depends(get_data_access),
):
    return roster.add_position(dal, election_id, **body.model_dump())


@router.post(
    "/positions/{position_id}/candidates",
    response_model=CandidateResponse,
    status_code=201,
    dependencies=[can_manage],
)
def create_candidate_endpoint(
    position_id: int,
    body: CandidateCreate,
    dal: DataAccessLayer = Depends(get_data_access),
):
    return roster.add_candidate(dal, position_id, **body.model_dump())


@router.post(
    "/elections/{election_id}/voters",
    response_model=VoterResponse,
    status_code=201,
    dependencies=[can_manage],
)
def register_voter_endpoint(
    election_id: int,
    body: VoterCreate,
    dal: DataAccessLayer = Depends(get_data_access),
):
    return roster.add_voter(dal, election_id, voter_id=body.voter_id, name=body.name)


# -- settings ----------------------------------------------------------------


@router.get("/settings", response_model=SettingsResponse, dependencies=[can_preview])
def get_settings_endpoint(dal: DataAccessLayer = Depends(get_data_access)):
    """The settings record; a default is created on first read."""
    read = settings_service.get_settings(dal)
    return SettingsResponse(**read.data, source=read.source, stale=read.stale)


@router.put("/settings", response_model=SettingsResponse, dependencies=[can_manage])
def update_settings_endpoint(body: SettingsUpdate, dal: DataAccessLayer = Depends(get_data_access)):
    """Update settings and copy the window and flags onto the current election."""
    changes = body.model_dump(exclude_unset=True)
    return settings_service.save_settings(dal, changes)


# -- diagnostics -------------------------------------------------------------


@router.get("/health", dependencies=[can_diagnose])
def database_health_endpoint(dal: DataAccessLayer = Depends(get_data_access)):
    """
    Database monitor snapshot, read circuit state and cache statistics.

    ``database.reconnect_status`` is ``maxed`` once automatic reconnection
    gave up and ``circuit.state`` is ``open`` while reads fail fast;
    POST ``/admin/health/reconnect`` resets both.
    """
    return dal.stats()


@router.post("/health/reconnect", dependencies=[can_manage])
def reconnect_endpoint(dal: DataAccessLayer = Depends(get_data_access)):
    """Close the read circuit, reset the reconnect counter and reconnect if needed."""
    started = dal.reset()
    return {
        "reconnect_started": started,
        "database": dal.monitor.snapshot(),
        "circuit": dal.breaker.snapshot(),
    }


@router.get("/cache/stats", dependencies=[can_diagnose])
def get_cache_stats(dal: DataAccessLayer = Depends(get_data_access)):
    """
    Get cache statistics for monitoring.

    Returns:
        Cache statistics including size, hits, misses, stale reads, hit rate
        and per-entry age, TTL and source
    """
    return dal.cache.get_stats()
