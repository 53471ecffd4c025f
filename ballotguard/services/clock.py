"""Election clock: derives the phase of the current election.

Window precedence, per bound:

    start date: election.start_date -> settings.voting_start_date -> election.date
    end date:   election.end_date   -> settings.voting_end_date   -> election.date
    start time: election.start_time -> settings.voting_start_time -> 08:00
    end time:   election.end_time   -> settings.voting_end_time   -> 17:00

Times are local to the configured election timezone. The manual ``is_active``
override beats the schedule in both directions.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from ballotguard.core import config
from ballotguard.core.constants import (
    CACHE_KEY_ELECTION_STATUS,
    CACHE_KEY_SETTINGS,
    DEFAULT_END_TIME,
    DEFAULT_ELECTION_TITLE,
    DEFAULT_START_TIME,
    STATUS_ACTIVE,
    STATUS_ENDED,
    STATUS_NOT_STARTED,
)
from ballotguard.core.exceptions import InvalidInput, NoActiveElection
from ballotguard.core.utils import combine_local, normalize_date, parse_time_of_day, to_utc, utcnow
from ballotguard.db.access import DataAccessLayer
from ballotguard.db.models import Election
from ballotguard.db.models.setting import SETTINGS_ROW_ID, Setting
from ballotguard.services.settings import mirror_to_settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class VotingWindow:
    start: datetime
    end: datetime


def _first(*values):
    for value in values:
        if value:
            return value
    return None


def resolve_window(election, settings=None, tz: Optional[ZoneInfo] = None) -> VotingWindow:
    """Resolve the voting window from an election and an optional settings record.

    Both arguments only need the model attribute names, so ORM rows and
    plain snapshots work alike.

    Raises:
        InvalidInput: a stored date or time does not parse (names the field)
    """
    tz = tz or config.settings.election_tz

    start_date = normalize_date(
        _first(election.start_date, getattr(settings, "voting_start_date", None), election.date),
        "start_date",
    )
    end_date = normalize_date(
        _first(election.end_date, getattr(settings, "voting_end_date", None), election.date),
        "end_date",
    )
    start_time = parse_time_of_day(
        _first(election.start_time, getattr(settings, "voting_start_time", None), DEFAULT_START_TIME),
        "start_time",
    )
    end_time = parse_time_of_day(
        _first(election.end_time, getattr(settings, "voting_end_time", None), DEFAULT_END_TIME),
        "end_time",
    )

    return VotingWindow(
        start=combine_local(start_date, start_time, tz),
        end=combine_local(end_date, end_time, tz),
    )


def compute_status(window: Optional[VotingWindow], is_active: Optional[bool], now: datetime) -> str:
    """Phase at ``now``. An explicit override wins; otherwise both bounds are inclusive."""
    if is_active is False:
        return STATUS_NOT_STARTED
    if is_active is True:
        return STATUS_ACTIVE
    if window is None:
        return STATUS_NOT_STARTED

    now = to_utc(now)
    if now < window.start:
        return STATUS_NOT_STARTED
    if now > window.end:
        return STATUS_ENDED
    return STATUS_ACTIVE


def load_current_election(db: Session) -> Election:
    """Return the current election.

    Raises:
        NoActiveElection: no election is marked current
    """
    election = db.query(Election).filter(Election.is_current.is_(True)).first()
    if election is None:
        raise NoActiveElection()
    return election


def get_phase(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Phase of the current election from a fresh read.

    Returns:
        Dict with status, window_start and window_end
    """
    now = now or utcnow()
    election = load_current_election(db)
    setting = db.get(Setting, SETTINGS_ROW_ID)
    window = resolve_window(election, setting)
    return {
        "status": compute_status(window, election.is_active, now),
        "window_start": window.start,
        "window_end": window.end,
    }


def load_schedule(db: Session) -> Dict[str, Any]:
    """Snapshot of everything the status needs except the current time.

    This is what gets cached, so a cached snapshot never freezes the phase.
    """
    election = load_current_election(db)
    setting = db.get(Setting, SETTINGS_ROW_ID)
    window = resolve_window(election, setting)
    return {
        "election_id": election.id,
        "title": election.title,
        "window": window,
        "is_active": election.is_active,
        "results_published": election.results_published,
    }


def default_schedule() -> Dict[str, Any]:
    """Minimal schedule served when nothing better is available: voting closed."""
    return {
        "election_id": None,
        "title": DEFAULT_ELECTION_TITLE,
        "window": None,
        "is_active": False,
        "results_published": False,
    }


def _status_payload(schedule: Dict[str, Any], now: datetime, source: str, stale: bool) -> Dict[str, Any]:
    window = schedule["window"]
    return {
        "status": compute_status(window, schedule["is_active"], now),
        "window_start": window.start if window else None,
        "window_end": window.end if window else None,
        "results_published": schedule["results_published"],
        "title": schedule["title"],
        "election_id": schedule["election_id"],
        "source": source,
        "stale": stale,
    }


def get_election_status(dal: DataAccessLayer, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Status of the current election for display.

    Never raises on storage trouble: a stale snapshot or the closed default is
    served instead, flagged through ``source`` and ``stale``. Database errors
    and unreadable stored dates are treated the same way. With no current
    election the closed default is returned as well.
    """
    now = now or utcnow()
    try:
        read = dal.read_through(
            CACHE_KEY_ELECTION_STATUS,
            load_schedule,
            ttl=config.settings.STATUS_CACHE_TTL_SECONDS,
            default_factory=default_schedule,
            fallback_on=(DBAPIError, InvalidInput),
        )
    except NoActiveElection:
        return _status_payload(default_schedule(), now, source="default", stale=False)

    return _status_payload(read.data, now, source=read.source, stale=read.stale)


def toggle_election_active(db: Session) -> Dict[str, Any]:
    """Flip the current election's manual override.

    Unset or False becomes True (status active, even outside the window);
    True becomes False (status not-started). The settings mirror is updated
    afterwards, best-effort.

    Raises:
        NoActiveElection: no election is marked current
    """
    election = load_current_election(db)
    election.is_active = not election.is_active
    election.status = STATUS_ACTIVE if election.is_active else STATUS_NOT_STARTED

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(
        "election_active_toggled",
        election_id=election.id,
        is_active=election.is_active,
        status=election.status,
    )
    mirror_to_settings(db, is_active=election.is_active)
    return {"election_id": election.id, "is_active": election.is_active, "status": election.status}


def toggle_active(dal: DataAccessLayer) -> Dict[str, Any]:
    return dal.write(toggle_election_active, invalidate=(CACHE_KEY_ELECTION_STATUS, CACHE_KEY_SETTINGS))


def clear_election_override(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Drop the manual override so the current election follows its schedule again.

    Raises:
        NoActiveElection: no election is marked current
    """
    now = now or utcnow()
    election = load_current_election(db)
    window = resolve_window(election, db.get(Setting, SETTINGS_ROW_ID))
    election.is_active = None
    election.status = compute_status(window, None, now)

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("election_override_cleared", election_id=election.id, status=election.status)
    mirror_to_settings(db, is_active=election.status == STATUS_ACTIVE)
    return {"election_id": election.id, "is_active": None, "status": election.status}


def follow_schedule(dal: DataAccessLayer) -> Dict[str, Any]:
    return dal.write(clear_election_override, invalidate=(CACHE_KEY_ELECTION_STATUS, CACHE_KEY_SETTINGS))
