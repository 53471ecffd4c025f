"""Settings singleton business logic.

The settings row holds a second copy of the voting window and publication
flags. It is read as a fallback by the election clock and kept in sync with
the current election whenever either side changes.
"""
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ballotguard.core import config
from ballotguard.core.constants import (
    CACHE_KEY_ELECTION_STATUS,
    CACHE_KEY_SETTINGS,
    DEFAULT_ELECTION_TITLE,
    DEFAULT_SYSTEM_NAME,
    STATUS_ACTIVE,
    STATUS_NOT_STARTED,
)
from ballotguard.core.exceptions import InvalidInput
from ballotguard.core.sanitization import sanitize_title
from ballotguard.core.utils import normalize_date, normalize_time
from ballotguard.db.access import CachedRead, DataAccessLayer
from ballotguard.db.models import Election
from ballotguard.db.models.setting import SETTINGS_ROW_ID, Setting

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = (
    "is_active",
    "election_title",
    "voting_start_date",
    "voting_end_date",
    "voting_start_time",
    "voting_end_time",
    "results_published",
    "system_name",
    "max_votes_per_voter",
)

# Settings field -> Election field copied on update
ELECTION_SYNC_FIELDS = {
    "election_title": "title",
    "voting_start_date": "start_date",
    "voting_end_date": "end_date",
    "voting_start_time": "start_time",
    "voting_end_time": "end_time",
    "results_published": "results_published",
    "is_active": "is_active",
}


def default_settings() -> Dict[str, Any]:
    """Settings synthesized when none can be read."""
    return {
        "id": SETTINGS_ROW_ID,
        "is_active": False,
        "election_title": DEFAULT_ELECTION_TITLE,
        "voting_start_date": None,
        "voting_end_date": None,
        "voting_start_time": None,
        "voting_end_time": None,
        "results_published": False,
        "system_name": DEFAULT_SYSTEM_NAME,
        "max_votes_per_voter": 1,
        "updated_at": None,
    }


def settings_to_dict(setting: Setting) -> Dict[str, Any]:
    return {
        "id": setting.id,
        "is_active": setting.is_active,
        "election_title": setting.election_title,
        "voting_start_date": setting.voting_start_date,
        "voting_end_date": setting.voting_end_date,
        "voting_start_time": setting.voting_start_time,
        "voting_end_time": setting.voting_end_time,
        "results_published": setting.results_published,
        "system_name": setting.system_name,
        "max_votes_per_voter": setting.max_votes_per_voter,
        "updated_at": setting.updated_at.isoformat() if setting.updated_at else None,
    }


def get_or_create_settings(db: Session) -> Setting:
    """Return the settings row, persisting a default one on first read."""
    setting = db.get(Setting, SETTINGS_ROW_ID)
    if setting is not None:
        return setting

    defaults = default_settings()
    setting = Setting(
        id=SETTINGS_ROW_ID,
        election_title=defaults["election_title"],
        system_name=defaults["system_name"],
    )
    db.add(setting)
    try:
        db.commit()
    except IntegrityError:
        # Another request created it first
        db.rollback()
        return db.get(Setting, SETTINGS_ROW_ID)

    logger.info("settings_created_default")
    db.refresh(setting)
    return setting


def load_settings(db: Session) -> Dict[str, Any]:
    return settings_to_dict(get_or_create_settings(db))


def get_settings(dal: DataAccessLayer) -> CachedRead:
    """Cached settings; a default is served while storage is unreachable."""
    return dal.read_through(
        CACHE_KEY_SETTINGS,
        load_settings,
        ttl=config.settings.SETTINGS_CACHE_TTL_SECONDS,
        default_factory=default_settings,
    )


def _clean_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    unknown = set(changes) - set(UPDATABLE_FIELDS)
    if unknown:
        field = sorted(unknown)[0]
        raise InvalidInput(field, f"Unknown setting: {field}")

    cleaned = {}
    for field, value in changes.items():
        if value is None:
            cleaned[field] = None
        elif field in ("voting_start_date", "voting_end_date"):
            cleaned[field] = normalize_date(value, field)
        elif field in ("voting_start_time", "voting_end_time"):
            cleaned[field] = normalize_time(value, field)
        elif field in ("election_title", "system_name"):
            try:
                cleaned[field] = sanitize_title(value)
            except ValueError as e:
                raise InvalidInput(field, str(e))
        elif field == "max_votes_per_voter":
            if int(value) < 1:
                raise InvalidInput(field, "max_votes_per_voter must be at least 1")
            cleaned[field] = int(value)
        else:
            cleaned[field] = bool(value)

    for field in ("is_active", "results_published", "max_votes_per_voter"):
        if field in cleaned and cleaned[field] is None:
            raise InvalidInput(field, f"{field} cannot be empty")
    if "election_title" in cleaned and not cleaned["election_title"]:
        raise InvalidInput("election_title", "election_title cannot be empty")
    return cleaned


def update_settings(db: Session, changes: Dict[str, Any]) -> Dict[str, Any]:
    """Apply ``changes`` to the settings row and copy them onto the current election.

    Raises:
        InvalidInput: unknown field or a value that does not validate
    """
    cleaned = _clean_changes(changes)
    setting = get_or_create_settings(db)
    for field, value in cleaned.items():
        setattr(setting, field, value)

    election = db.query(Election).filter(Election.is_current.is_(True)).first()
    if election is not None:
        for field, target in ELECTION_SYNC_FIELDS.items():
            if field not in cleaned:
                continue
            value = cleaned[field]
            if target == "title" and not value:
                continue
            setattr(election, target, value)
        if "is_active" in cleaned:
            election.status = STATUS_ACTIVE if cleaned["is_active"] else STATUS_NOT_STARTED

    try:
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(setting)
    logger.info("settings_updated", fields=sorted(cleaned), synced_election_id=election.id if election else None)
    return settings_to_dict(setting)


def save_settings(dal: DataAccessLayer, changes: Dict[str, Any]) -> Dict[str, Any]:
    return dal.write(
        lambda db: update_settings(db, changes),
        invalidate=(CACHE_KEY_SETTINGS, CACHE_KEY_ELECTION_STATUS),
    )


def mirror_to_settings(db: Session, **fields: Optional[Any]) -> bool:
    """Best-effort copy of election flags onto the settings row.

    Runs in its own commit after the election change has been committed. A
    failure is logged and rolled back, never raised.
    """
    try:
        setting = db.get(Setting, SETTINGS_ROW_ID)
        if setting is None:
            return False
        for field, value in fields.items():
            setattr(setting, field, value)
        db.commit()
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("settings_mirror_failed", fields=sorted(fields), error=str(e))
        return False
