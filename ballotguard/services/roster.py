"""Position, candidate and voter registration."""
from typing import Any, Dict

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ballotguard.core.constants import CACHE_KEY_PARTICIPATION, CACHE_KEY_RESULTS
from ballotguard.core.exceptions import ElectionNotFound, InvalidInput
from ballotguard.core.sanitization import sanitize_name, sanitize_text, sanitize_title, sanitize_voter_id
from ballotguard.db.access import DataAccessLayer
from ballotguard.db.models import Candidate, Election, Position, Voter

logger = structlog.get_logger(__name__)


def _clean(field: str, value: str, sanitizer) -> str:
    try:
        cleaned = sanitizer(value or "")
    except ValueError as e:
        raise InvalidInput(field, str(e))
    if not cleaned:
        raise InvalidInput(field, f"{field} cannot be empty")
    return cleaned


def _optional_text(field: str, value: str, max_length: int) -> str:
    try:
        return sanitize_text(value or "", max_length=max_length)
    except ValueError as e:
        raise InvalidInput(field, str(e))


def _require_election(db: Session, election_id: int) -> Election:
    election = db.get(Election, election_id)
    if election is None:
        raise ElectionNotFound()
    return election


def create_position(
    db: Session,
    election_id: int,
    title: str,
    description: str = "",
    priority: int = 0,
    max_candidates: int = 1,
    is_active: bool = True,
) -> Dict[str, Any]:
    """Create a position. Titles are unique within an election."""
    _require_election(db, election_id)
    title = _clean("title", title, sanitize_title)
    if max_candidates < 1:
        raise InvalidInput("max_candidates", "max_candidates must be at least 1")

    existing = db.query(Position).filter(
        Position.election_id == election_id,
        Position.title == title
    ).first()
    if existing:
        raise InvalidInput("title", "A position with this title already exists in this election")

    position = Position(
        election_id=election_id,
        title=title,
        description=_optional_text("description", description, 1000),
        priority=priority,
        max_candidates=max_candidates,
        max_selections=1,
        is_active=is_active,
    )
    try:
        db.add(position)
        db.commit()
    except IntegrityError:
        # Duplicate title created concurrently
        db.rollback()
        raise InvalidInput("title", "A position with this title already exists in this election")

    db.refresh(position)
    return {
        "id": position.id,
        "election_id": position.election_id,
        "title": position.title,
        "description": position.description,
        "priority": position.priority,
        "max_candidates": position.max_candidates,
        "max_selections": position.max_selections,
        "is_active": position.is_active,
    }


def create_candidate(
    db: Session,
    position_id: int,
    name: str,
    biography: str = "",
    image_url: str = "",
    is_active: bool = True,
) -> Dict[str, Any]:
    """Create a candidate for a position (and that position's election)."""
    position = db.get(Position, position_id)
    if position is None:
        raise InvalidInput("position_id", "Position not found")
    name = _clean("name", name, sanitize_name)

    candidate = Candidate(
        election_id=position.election_id,
        position_id=position.id,
        name=name,
        biography=_optional_text("biography", biography, 2000),
        image_url=(image_url or "").strip()[:500],
        is_active=is_active,
    )
    db.add(candidate)
    db.commit()
    db.refresh(candidate)
    return {
        "id": candidate.id,
        "election_id": candidate.election_id,
        "position_id": candidate.position_id,
        "name": candidate.name,
        "biography": candidate.biography,
        "image_url": candidate.image_url,
        "is_active": candidate.is_active,
    }


def register_voter(db: Session, election_id: int, voter_id: str, name: str) -> Dict[str, Any]:
    """Register a voter. Voter ids are unique across all elections."""
    _require_election(db, election_id)
    voter_id = _clean("voter_id", voter_id, sanitize_voter_id)
    name = _clean("name", name, sanitize_name)

    if db.query(Voter.id).filter(Voter.voter_id == voter_id).first() is not None:
        raise InvalidInput("voter_id", "Voter id is already registered")

    voter = Voter(election_id=election_id, voter_id=voter_id, name=name, has_voted=False)
    try:
        db.add(voter)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise InvalidInput("voter_id", "Voter id is already registered")

    db.refresh(voter)
    logger.info("voter_registered", election_id=election_id, voter_id=voter_id)
    return {
        "id": voter.id,
        "election_id": voter.election_id,
        "voter_id": voter.voter_id,
        "name": voter.name,
        "has_voted": voter.has_voted,
        "voted_at": voter.voted_at,
    }


# -- data access layer wrappers -----------------------------------------------


def _tally_keys(election_id: int):
    return (
        CACHE_KEY_RESULTS.format(election_id=election_id),
        CACHE_KEY_PARTICIPATION.format(election_id=election_id),
    )


def add_position(dal: DataAccessLayer, election_id: int, **fields) -> Dict[str, Any]:
    return dal.write(
        lambda db: create_position(db, election_id, **fields),
        invalidate=_tally_keys(election_id),
    )


def add_candidate(dal: DataAccessLayer, position_id: int, **fields) -> Dict[str, Any]:
    candidate = dal.write(lambda db: create_candidate(db, position_id, **fields))
    dal.invalidate(*_tally_keys(candidate["election_id"]))
    return candidate


def add_voter(dal: DataAccessLayer, election_id: int, **fields) -> Dict[str, Any]:
    return dal.write(
        lambda db: register_voter(db, election_id, **fields),
        invalidate=_tally_keys(election_id),
    )
