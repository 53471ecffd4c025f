"""Ballot submission endpoint."""
import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ballotguard.api.deps import get_data_access
from ballotguard.core.exceptions import BallotGuardError
from ballotguard.core.rate_limit import RATE_LIMITS, limiter
from ballotguard.db.access import DataAccessLayer
from ballotguard.schemas import BallotReceipt, BallotRequest, BallotResponse
from ballotguard.services.ballot import submit_ballot

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.post(
    "/ballots",
    response_model=BallotResponse,
    responses={
        404: {"model": BallotResponse},
        409: {"model": BallotResponse},
        422: {"model": BallotResponse},
        503: {"model": BallotResponse},
    },
)
@limiter.limit(RATE_LIMITS["ballot"])
def cast_ballot_endpoint(
    request: Request,
    ballot: BallotRequest,
    dal: DataAccessLayer = Depends(get_data_access),
):
    """
    Cast a complete ballot: one selection per active position.

    A selection is a candidate id or ``"abstain"``. The ballot is accepted as
    a whole or not at all.

    Returns:
        200 with ``accepted: true`` and a receipt, or the rejection with the
        error's status code: 404 (no election / unknown voter), 409 (voting
        closed / already voted), 422 (incomplete or invalid ballot), 503
        (storage trouble; ``retryable: true``, nothing was recorded or the
        outcome is unknown and a retry will be answered ``already_voted``).

    Rate Limit:
        300 requests per minute per IP

    Example:
        Request:
            POST /api/v1/ballots
            {"voter_id": "VOTER12345", "selections": {"1": 4, "2": "abstain"}}

        Response (200):
            {"accepted": true, "receipt": {"voter_id": "VOTER12345", ...}}

        Response (409):
            {"accepted": false, "reason": "already_voted",
             "message": "Voter has already cast a ballot", "retryable": false}
    """
    try:
        receipt = submit_ballot(
            dal,
            voter_id=ballot.voter_id,
            selections=ballot.selections,
            election_id=ballot.election_id,
        )
    except BallotGuardError as e:
        logger.info("ballot_rejected", reason=e.code, voter_id=ballot.voter_id)
        body = BallotResponse(
            accepted=False,
            reason=e.code,
            message=e.message,
            retryable=e.retryable,
            position_id=getattr(e, "position_id", None),
        )
        return JSONResponse(status_code=e.status_code, content=body.model_dump(mode="json"))

    return BallotResponse(accepted=True, receipt=BallotReceipt(**receipt))
