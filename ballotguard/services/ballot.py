"""Ballot ledger business logic.

A ballot set is one vote per active position of the election, cast in a single
database transaction. The unique constraint on (voter, election, position) is
what serializes concurrent submissions for the same voter; the read-side checks
before it only produce friendlier errors.
"""
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

import structlog
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ballotguard.core.constants import (
    ABSTAIN,
    CACHE_KEY_ELECTION_STATUS,
    CACHE_KEY_PARTICIPATION,
    CACHE_KEY_RESULTS,
    STATUS_ACTIVE,
)
from ballotguard.core.exceptions import (
    AlreadyVoted,
    ElectionNotActive,
    ElectionNotFound,
    IncompleteBallot,
    InvalidSelection,
    VoterNotFound,
)
from ballotguard.core.utils import utcnow
from ballotguard.db.access import DataAccessLayer
from ballotguard.db.models import Candidate, Election, Position, Vote, Voter
from ballotguard.db.models.setting import SETTINGS_ROW_ID, Setting
from ballotguard.db.models.vote import VOTE_UNIQUE_CONSTRAINT
from ballotguard.services.clock import compute_status, load_current_election, resolve_window

logger = structlog.get_logger(__name__)

Selection = Union[int, str]


def is_duplicate_vote(exc: IntegrityError) -> bool:
    """True when ``exc`` is the vote uniqueness constraint firing."""
    message = str(exc.orig).lower()
    if VOTE_UNIQUE_CONSTRAINT in message:
        return True
    # SQLite names the columns instead of the constraint
    return "unique constraint" in message and "votes." in message


def _check_election(db: Session, election_id: Optional[int], now: datetime) -> Election:
    if election_id is None:
        election = load_current_election(db)
    else:
        election = db.get(Election, election_id)
        if election is None:
            raise ElectionNotFound()
        if not election.is_current:
            raise ElectionNotActive("This election is not the current election")

    window = resolve_window(election, db.get(Setting, SETTINGS_ROW_ID))
    if compute_status(window, election.is_active, now) != STATUS_ACTIVE:
        raise ElectionNotActive()
    return election


def _check_voter(db: Session, election: Election, voter_id: str) -> Voter:
    voter = db.query(Voter).filter(Voter.voter_id == voter_id).first()
    if voter is None or voter.election_id != election.id:
        raise VoterNotFound()
    if voter.has_voted:
        raise AlreadyVoted()
    return voter


def _normalize_selections(selections: Mapping[Any, Selection]) -> Dict[int, Selection]:
    normalized = {}
    for raw_position, choice in selections.items():
        try:
            position_id = int(raw_position)
        except (TypeError, ValueError):
            raise InvalidSelection(None, f"Unknown position {raw_position!r}")
        if choice == ABSTAIN:
            normalized[position_id] = ABSTAIN
        elif isinstance(choice, int) and not isinstance(choice, bool):
            normalized[position_id] = choice
        else:
            raise InvalidSelection(position_id, f"Selection for position {position_id} must be a candidate id or {ABSTAIN!r}")
    return normalized


def _check_selections(db: Session, election: Election, selections: Dict[int, Selection]) -> List[Position]:
    """Validate selections against the election's positions and candidates.

    Returns the active positions in ballot order.
    """
    positions = (
        db.query(Position)
        .filter(Position.election_id == election.id)
        .order_by(Position.priority, Position.id)
        .all()
    )
    active = [p for p in positions if p.is_active]
    active_ids = {p.id for p in active}

    for position in active:
        if position.id not in selections:
            raise IncompleteBallot(position.id, f"Missing selection for position '{position.title}'")

    for position_id in selections:
        if position_id not in active_ids:
            raise InvalidSelection(position_id, f"Position {position_id} is not on this ballot")

    candidate_ids = [c for c in selections.values() if c != ABSTAIN]
    candidates = {}
    if candidate_ids:
        candidates = {
            c.id: c for c in db.query(Candidate).filter(Candidate.id.in_(candidate_ids)).all()
        }

    for position_id, choice in selections.items():
        if choice == ABSTAIN:
            continue
        candidate = candidates.get(choice)
        if (
            candidate is None
            or candidate.position_id != position_id
            or candidate.election_id != election.id
            or not candidate.is_active
        ):
            raise InvalidSelection(
                position_id, f"Candidate {choice} is not running for position {position_id}"
            )

    return active


def cast_ballot(
    db: Session,
    voter_id: str,
    election_id: Optional[int],
    selections: Mapping[Any, Selection],
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Record a complete ballot set for one voter.

    Args:
        db: Database session
        voter_id: Public voter identifier
        election_id: Election to vote in; None means the current election
        selections: Position id -> candidate id or ``ABSTAIN``
        now: Submission time (defaults to the current UTC time)

    Returns:
        Receipt dict

    Raises:
        NoActiveElection, ElectionNotFound, ElectionNotActive, VoterNotFound,
        AlreadyVoted, IncompleteBallot, InvalidSelection. On any failure
        nothing is persisted and the voter can still vote.
    """
    now = now or utcnow()

    # Fresh reads only; the acceptance decision never uses cached state
    election = _check_election(db, election_id, now)
    voter = _check_voter(db, election, voter_id)
    normalized = _normalize_selections(selections)
    positions = _check_selections(db, election, normalized)

    abstentions = 0
    try:
        for position in positions:
            choice = normalized[position.id]
            is_abstention = choice == ABSTAIN
            abstentions += is_abstention
            db.add(Vote(
                voter_id=voter.id,
                election_id=election.id,
                position_id=position.id,
                candidate_id=None if is_abstention else choice,
                is_abstention=is_abstention,
                created_at=now,
            ))
            # Flush per row so a duplicate fails on the row that caused it
            db.flush()

        result = db.execute(
            update(Voter)
            .where(Voter.id == voter.id, Voter.has_voted.is_(False))
            .values(has_voted=True, voted_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise AlreadyVoted()

        db.commit()
    except IntegrityError as e:
        db.rollback()
        if is_duplicate_vote(e):
            logger.info("ballot_rejected_duplicate", voter_id=voter_id, election_id=election.id)
            raise AlreadyVoted()
        raise
    except Exception:
        db.rollback()
        raise

    logger.info(
        "ballot_accepted",
        voter_id=voter_id,
        election_id=election.id,
        positions=len(positions),
        abstentions=abstentions,
    )
    return {
        "voter_id": voter_id,
        "election_id": election.id,
        "votes_recorded": len(positions),
        "abstentions": abstentions,
        "voted_at": now,
    }


def submit_ballot(
    dal: DataAccessLayer,
    voter_id: str,
    selections: Mapping[Any, Selection],
    election_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Cast a ballot through the data access layer.

    Storage faults surface as retryable ``StorageTimeout`` /
    ``StorageUnavailable``. Cached tallies, participation and status for the
    election are dropped on the worker as soon as the ballot commits, so a
    caller that timed out cannot leave a pre-ballot tally cached, and again
    once the caller has the receipt.
    """
    def _cast(db: Session) -> Dict[str, Any]:
        receipt = cast_ballot(db, voter_id, election_id, selections, now=now)
        dal.invalidate(*_ballot_cache_keys(receipt["election_id"]))
        return receipt

    try:
        receipt = dal.run(_cast, timeout=dal.write_timeout)
    finally:
        # A timed-out write may still commit on its worker
        if election_id is not None:
            dal.invalidate(
                CACHE_KEY_RESULTS.format(election_id=election_id),
                CACHE_KEY_PARTICIPATION.format(election_id=election_id),
            )

    dal.invalidate(*_ballot_cache_keys(receipt["election_id"]))
    return receipt


def _ballot_cache_keys(election_id: int):
    return (
        CACHE_KEY_RESULTS.format(election_id=election_id),
        CACHE_KEY_PARTICIPATION.format(election_id=election_id),
        CACHE_KEY_ELECTION_STATUS,
    )
