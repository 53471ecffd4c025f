"""Election administration business logic."""
from datetime import date, datetime
from typing import Any, Dict, Optional, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ballotguard.core import config
from ballotguard.core.constants import (
    CACHE_KEY_ELECTION_STATUS,
    CACHE_KEY_PARTICIPATION,
    CACHE_KEY_RESULTS,
    CACHE_KEY_SETTINGS,
    DEFAULT_ELECTION_TITLE,
    STATUS_NOT_STARTED,
)
from ballotguard.core.exceptions import ElectionNotFound, InvalidInput
from ballotguard.core.sanitization import sanitize_title
from ballotguard.core.utils import normalize_date, normalize_time
from ballotguard.db.access import DataAccessLayer
from ballotguard.db.models import Election
from ballotguard.services.clock import load_current_election
from ballotguard.services.settings import mirror_to_settings

logger = structlog.get_logger(__name__)


def election_to_dict(election: Election) -> Dict[str, Any]:
    return {
        "id": election.id,
        "title": election.title,
        "date": election.date,
        "start_date": election.start_date,
        "end_date": election.end_date,
        "start_time": election.start_time,
        "end_time": election.end_time,
        "is_current": election.is_current,
        "is_active": election.is_active,
        "status": election.status,
        "results_published": election.results_published,
        "created_at": election.created_at,
    }


def _election_keys(election_id: int) -> Tuple[str, ...]:
    return (
        CACHE_KEY_ELECTION_STATUS,
        CACHE_KEY_SETTINGS,
        CACHE_KEY_RESULTS.format(election_id=election_id),
        CACHE_KEY_PARTICIPATION.format(election_id=election_id),
    )


def _get_election(db: Session, election_id: int) -> Election:
    election = db.get(Election, election_id)
    if election is None:
        raise ElectionNotFound()
    return election


def _clear_current(db: Session, keep_id: Optional[int] = None) -> None:
    query = db.query(Election).filter(Election.is_current.is_(True))
    if keep_id is not None:
        query = query.filter(Election.id != keep_id)
    query.update({Election.is_current: False}, synchronize_session="fetch")
    db.flush()


def _mirror_election(db: Session, election: Election) -> None:
    mirror_to_settings(
        db,
        election_title=election.title,
        voting_start_date=election.start_date or election.date,
        voting_end_date=election.end_date or election.date,
        voting_start_time=election.start_time,
        voting_end_time=election.end_time,
        results_published=election.results_published,
        is_active=bool(election.is_active),
    )


def list_elections(db: Session):
    return [election_to_dict(e) for e in db.query(Election).order_by(Election.id).all()]


def create_election(
    db: Session,
    title: str,
    election_date: Any,
    start_date: Any = None,
    end_date: Any = None,
    start_time: Any = None,
    end_time: Any = None,
    make_current: bool = False,
) -> Dict[str, Any]:
    """
    Create an election. Dates are stored canonical (YYYY-MM-DD), times as HH:MM:SS.

    Raises:
        InvalidInput: empty title, or a date/time that does not parse
    """
    try:
        title = sanitize_title(title or "")
    except ValueError as e:
        raise InvalidInput("title", str(e))
    if not title:
        raise InvalidInput("title", "Election title cannot be empty")

    election = Election(
        title=title,
        date=normalize_date(election_date, "date"),
        start_date=normalize_date(start_date, "start_date") if start_date else None,
        end_date=normalize_date(end_date, "end_date") if end_date else None,
        start_time=normalize_time(start_time, "start_time") if start_time else None,
        end_time=normalize_time(end_time, "end_time") if end_time else None,
        is_current=False,
        is_active=None,
        status=STATUS_NOT_STARTED,
        results_published=False,
    )
    if election.start_date and election.end_date and election.end_date < election.start_date:
        raise InvalidInput("end_date", "end_date cannot be before start_date")

    try:
        if make_current:
            _clear_current(db)
            election.is_current = True
        db.add(election)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(election)
    logger.info("election_created", election_id=election.id, current=election.is_current)
    if election.is_current:
        _mirror_election(db, election)
    return election_to_dict(election)


def create_default_election(db: Session, today: Optional[date] = None) -> Tuple[bool, Optional[Dict[str, Any]]]:
    """
    Create a current default election when there are no elections at all.

    Returns:
        (created, election) where election is None if nothing was created
    """
    if db.query(Election.id).first() is not None:
        return False, None

    today = today or datetime.now(config.settings.election_tz).date()
    election = create_election(
        db,
        title=DEFAULT_ELECTION_TITLE,
        election_date=today,
        start_time="08:00",
        end_time="17:00",
        make_current=True,
    )
    return True, election


def set_current_election(db: Session, election_id: int) -> Dict[str, Any]:
    """
    Make ``election_id`` the only current election.

    Raises:
        ElectionNotFound: election does not exist
    """
    election = _get_election(db, election_id)
    try:
        _clear_current(db, keep_id=election.id)
        election.is_current = True
        db.commit()
    except IntegrityError:
        # A concurrent request won the partial unique index
        db.rollback()
        raise InvalidInput("election_id", "Another election was made current concurrently")
    except Exception:
        db.rollback()
        raise

    logger.info("election_set_current", election_id=election.id)
    _mirror_election(db, election)
    return election_to_dict(election)


def toggle_publication(db: Session, published: bool) -> Dict[str, Any]:
    """
    Publish or unpublish the current election's results.

    Raises:
        NoActiveElection: no election is marked current
    """
    election = load_current_election(db)
    election.results_published = bool(published)
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("results_publication_set", election_id=election.id, published=election.results_published)
    mirror_to_settings(db, results_published=election.results_published)
    return {"election_id": election.id, "results_published": election.results_published}


def delete_election(db: Session, election_id: int) -> None:
    """
    Delete an election with its positions, candidates, voters and votes.

    Raises:
        ElectionNotFound: election does not exist
    """
    election = _get_election(db, election_id)
    try:
        # Cascade handled by the relationships' delete-orphan cascade
        db.delete(election)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("election_deleted", election_id=election_id)


# -- data access layer wrappers -----------------------------------------------


def add_election(dal: DataAccessLayer, **fields) -> Dict[str, Any]:
    election = dal.write(
        lambda db: create_election(db, **fields),
        invalidate=(CACHE_KEY_ELECTION_STATUS, CACHE_KEY_SETTINGS),
    )
    dal.invalidate(*_election_keys(election["id"]))
    return election


def add_default_election(dal: DataAccessLayer) -> Tuple[bool, Optional[Dict[str, Any]]]:
    return dal.write(create_default_election, invalidate=(CACHE_KEY_ELECTION_STATUS, CACHE_KEY_SETTINGS))


def make_current(dal: DataAccessLayer, election_id: int) -> Dict[str, Any]:
    return dal.write(lambda db: set_current_election(db, election_id), invalidate=_election_keys(election_id))


def publish_results(dal: DataAccessLayer, published: bool) -> Dict[str, Any]:
    result = dal.write(
        lambda db: toggle_publication(db, published),
        invalidate=(CACHE_KEY_ELECTION_STATUS, CACHE_KEY_SETTINGS),
    )
    dal.invalidate(*_election_keys(result["election_id"]))
    return result


def remove_election(dal: DataAccessLayer, election_id: int) -> None:
    dal.write(lambda db: delete_election(db, election_id), invalidate=_election_keys(election_id))
