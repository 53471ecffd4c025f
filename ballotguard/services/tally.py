"""Tally engine: per-position results and voter participation.

Counts are always derived from the vote rows. Cached copies are keyed per
election and dropped by every accepted ballot.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ballotguard.core import config
from ballotguard.core.constants import (
    CACHE_KEY_PARTICIPATION,
    CACHE_KEY_RESULTS,
    RECENT_VOTERS_LIMIT,
)
from ballotguard.core.exceptions import ElectionNotFound
from ballotguard.core.utils import round_half_up
from ballotguard.db.access import CachedRead, DataAccessLayer
from ballotguard.db.models import Candidate, Election, Position, Vote, Voter
from ballotguard.services.clock import load_current_election


def _get_election(db: Session, election_id: int) -> Election:
    election = db.get(Election, election_id)
    if election is None:
        raise ElectionNotFound()
    return election


def get_vote_counts_bulk(db: Session, election_id: int) -> Dict[int, Dict[Optional[int], int]]:
    """
    Get vote counts for every position of an election in one query.

    Returns:
        Dict mapping position_id -> {candidate_id -> count}; abstentions are
        counted under the ``None`` key.
    """
    rows = (
        db.query(Vote.position_id, Vote.candidate_id, func.count())
        .filter(Vote.election_id == election_id)
        .group_by(Vote.position_id, Vote.candidate_id)
        .all()
    )

    counts: Dict[int, Dict[Optional[int], int]] = {}
    for position_id, candidate_id, count in rows:
        counts.setdefault(position_id, {})[candidate_id] = count
    return counts


def tally_position(candidates: List[Dict[str, Any]], counts: Dict[Optional[int], int]) -> Dict[str, Any]:
    """
    Tally one position.

    Args:
        candidates: [{"candidate_id", "name"}] in display order
        counts: candidate_id -> votes, abstentions under ``None``

    Percentages are of the non-abstention votes, rounded half-up to one
    decimal. Candidates are sorted by votes, descending; ties keep their
    input order.
    """
    abstentions = counts.get(None, 0)
    rows = [dict(c, vote_count=counts.get(c["candidate_id"], 0)) for c in candidates]
    candidate_votes = sum(row["vote_count"] for row in rows)

    for row in rows:
        row["percentage"] = (
            round_half_up(row["vote_count"] / candidate_votes * 100, 1) if candidate_votes else 0.0
        )
    rows.sort(key=lambda row: row["vote_count"], reverse=True)

    return {
        "candidates": rows,
        "total_votes": candidate_votes + abstentions,
        "abstentions": abstentions,
    }


def compute_results(db: Session, election_id: int) -> Dict[str, Any]:
    """
    Compute results for all active positions of an election.

    Raises:
        ElectionNotFound: election does not exist
    """
    election = _get_election(db, election_id)

    positions = (
        db.query(Position)
        .filter(Position.election_id == election_id, Position.is_active.is_(True))
        .order_by(Position.priority, Position.id)
        .all()
    )
    position_ids = [p.id for p in positions]

    by_position: Dict[int, List[Candidate]] = {pid: [] for pid in position_ids}
    if position_ids:
        for candidate in (
            db.query(Candidate)
            .filter(Candidate.position_id.in_(position_ids))
            .order_by(Candidate.id)
            .all()
        ):
            by_position[candidate.position_id].append(candidate)

    vote_counts = get_vote_counts_bulk(db, election_id)

    results = []
    for position in positions:
        counts = vote_counts.get(position.id, {})
        # Inactive candidates only appear if they already hold votes
        candidates = [
            {"candidate_id": c.id, "name": c.name}
            for c in by_position[position.id]
            if c.is_active or counts.get(c.id)
        ]
        tally = tally_position(candidates, counts)
        results.append({
            "position_id": position.id,
            "title": position.title,
            "priority": position.priority,
            "max_candidates": position.max_candidates,
            **tally,
        })

    return {
        "election_id": election.id,
        "title": election.title,
        "results_published": election.results_published,
        "positions": results,
    }


def compute_participation(db: Session, election_id: int) -> Dict[str, Any]:
    """
    Voter participation for an election.

    Raises:
        ElectionNotFound: election does not exist
    """
    _get_election(db, election_id)

    total = db.query(func.count(Voter.id)).filter(Voter.election_id == election_id).scalar() or 0
    voted = (
        db.query(func.count(Voter.id))
        .filter(Voter.election_id == election_id, Voter.has_voted.is_(True))
        .scalar()
        or 0
    )
    recent = (
        db.query(Voter)
        .filter(Voter.election_id == election_id, Voter.has_voted.is_(True))
        .order_by(Voter.voted_at.desc(), Voter.id.desc())
        .limit(RECENT_VOTERS_LIMIT)
        .all()
    )

    return {
        "election_id": election_id,
        "total": total,
        "voted": voted,
        "remaining": total - voted,
        "completion_percentage": int(round_half_up(voted / total * 100)) if total else 0,
        "recent_voters": [
            {"name": v.name, "voter_id": v.voter_id, "voted_at": v.voted_at} for v in recent
        ],
    }


def _resolve_election_id(dal: DataAccessLayer, election_id: Optional[int]) -> int:
    if election_id is not None:
        return election_id
    return dal.run(lambda db: load_current_election(db).id)


def get_results(dal: DataAccessLayer, election_id: Optional[int] = None) -> CachedRead:
    """Results for ``election_id`` (default: current election), cached briefly."""
    election_id = _resolve_election_id(dal, election_id)
    return dal.read_through(
        CACHE_KEY_RESULTS.format(election_id=election_id),
        lambda db: compute_results(db, election_id),
        ttl=config.settings.RESULTS_CACHE_TTL_SECONDS,
    )


def get_participation(dal: DataAccessLayer, election_id: Optional[int] = None) -> CachedRead:
    """Participation for ``election_id`` (default: current election), cached briefly."""
    election_id = _resolve_election_id(dal, election_id)
    return dal.read_through(
        CACHE_KEY_PARTICIPATION.format(election_id=election_id),
        lambda db: compute_participation(db, election_id),
        ttl=config.settings.RESULTS_CACHE_TTL_SECONDS,
    )
