"""Public election status endpoint."""
from fastapi import APIRouter, Depends, Request

from ballotguard.api.deps import get_data_access
from ballotguard.core.rate_limit import RATE_LIMITS, limiter
from ballotguard.db.access import DataAccessLayer
from ballotguard.schemas import ElectionStatusResponse
from ballotguard.services.clock import get_election_status

router = APIRouter()


@router.get("/election/status", response_model=ElectionStatusResponse)
@limiter.limit(RATE_LIMITS["status"])
def election_status_endpoint(request: Request, dal: DataAccessLayer = Depends(get_data_access)):
    """
    Current phase of the current election.

    Always answers: while the database is slow or down the last known
    snapshot is served (``source="stale-cache"``), or a closed default
    (``source="default"``) when nothing has been cached yet. The phase itself
    is recomputed from the current time on every call.

    Example:
        Response (200):
            {
                "status": "active",
                "window_start": "2025-05-15T08:00:00+00:00",
                "window_end": "2025-05-15T17:00:00+00:00",
                "results_published": false,
                "title": "Student Council Election",
                "election_id": 1,
                "source": "cache",
                "stale": false
            }
    """
    return get_election_status(dal)
