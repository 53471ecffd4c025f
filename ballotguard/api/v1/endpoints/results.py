"""Public results and participation endpoints."""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from ballotguard.api.deps import get_data_access
from ballotguard.db.access import DataAccessLayer
from ballotguard.schemas import ParticipationResponse, ResultsResponse
from ballotguard.services.tally import get_participation, get_results

router = APIRouter()


def _published_results(dal: DataAccessLayer, election_id: Optional[int]) -> ResultsResponse:
    read = get_results(dal, election_id)
    if not read.data["results_published"]:
        raise HTTPException(status_code=403, detail="Results have not been published")
    return ResultsResponse(**read.data, source=read.source, stale=read.stale)


@router.get("/results", response_model=ResultsResponse)
def current_results_endpoint(dal: DataAccessLayer = Depends(get_data_access)):
    """
    Results of the current election, once published.

    Raises:
        HTTPException: 403 until the administrator publishes the results
    """
    return _published_results(dal, None)


@router.get("/elections/{election_id}/results", response_model=ResultsResponse)
def election_results_endpoint(election_id: int, dal: DataAccessLayer = Depends(get_data_access)):
    """Results of a specific election, once published."""
    return _published_results(dal, election_id)


@router.get("/participation", response_model=ParticipationResponse)
def participation_endpoint(dal: DataAccessLayer = Depends(get_data_access)):
    """Turnout of the current election: total, voted, remaining, percentage."""
    read = get_participation(dal)
    return ParticipationResponse(**read.data, source=read.source, stale=read.stale)
