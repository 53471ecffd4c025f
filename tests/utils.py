"""Test data helpers."""
from typing import Dict, Iterable, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from ballotguard.db.models import Candidate, Election, Position, Voter
from ballotguard.db.models.setting import SETTINGS_ROW_ID, Setting

DEFAULT_POSITIONS = (
    ("President", ("Alice", "Bob")),
    ("Secretary", ("Carol", "Dan")),
    ("Treasurer", ("Erin", "Frank")),
)
DEFAULT_VOTERS = (("VOTER001", "Ann Lee"), ("VOTER002", "Ben Ortiz"), ("VOTER003", "Cat Nguyen"))


def seed_election(
    session: Session,
    title: str = "Student Council Election",
    date: str = "2025-05-15",
    start_time: Optional[str] = "08:00:00",
    end_time: Optional[str] = "17:00:00",
    is_current: bool = True,
    is_active: Optional[bool] = True,
    positions: Sequence[Tuple[str, Iterable[str]]] = DEFAULT_POSITIONS,
    voters: Sequence[Tuple[str, str]] = DEFAULT_VOTERS,
) -> Dict:
    """Create an election with positions, candidates and voters, and commit.

    Returns:
        Dict with election_id, position_ids (ballot order), candidate_ids
        (position_id -> [candidate ids]) and voter_ids (public ids)
    """
    election = Election(
        title=title,
        date=date,
        start_time=start_time,
        end_time=end_time,
        is_current=is_current,
        is_active=is_active,
    )
    session.add(election)
    session.flush()

    data = {"election_id": election.id, "position_ids": [], "candidate_ids": {}, "voter_ids": []}
    for priority, (position_title, names) in enumerate(positions):
        position = Position(election_id=election.id, title=position_title, priority=priority)
        session.add(position)
        session.flush()
        data["position_ids"].append(position.id)
        data["candidate_ids"][position.id] = []
        for name in names:
            candidate = Candidate(election_id=election.id, position_id=position.id, name=name)
            session.add(candidate)
            session.flush()
            data["candidate_ids"][position.id].append(candidate.id)

    for voter_id, name in voters:
        session.add(Voter(election_id=election.id, voter_id=voter_id, name=name))
        data["voter_ids"].append(voter_id)

    session.commit()
    return data


def seed_settings(session: Session, **fields) -> Setting:
    setting = Setting(id=SETTINGS_ROW_ID, **fields)
    session.add(setting)
    session.commit()
    return setting


def first_choices(data: Dict) -> Dict[int, int]:
    """A ballot picking the first candidate of every position."""
    return {pid: data["candidate_ids"][pid][0] for pid in data["position_ids"]}
