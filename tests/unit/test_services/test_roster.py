"""Tests for position, candidate and voter registration."""
import pytest

from ballotguard.core.exceptions import ElectionNotFound, InvalidInput
from ballotguard.services.roster import (
    add_candidate,
    add_position,
    add_voter,
    create_candidate,
    create_position,
    register_voter,
)
from ballotguard.services.tally import get_participation, get_results
from tests.utils import seed_election


@pytest.fixture
def election(db_session):
    return seed_election(db_session, positions=(), voters=())


@pytest.mark.unit
class TestPositions:
    def test_create(self, db_session, election):
        position = create_position(db_session, election["election_id"], "  President ", priority=1)

        assert position["title"] == "President"
        assert position["priority"] == 1
        assert position["max_selections"] == 1
        assert position["is_active"] is True

    def test_duplicate_title(self, db_session, election):
        create_position(db_session, election["election_id"], "President")
        with pytest.raises(InvalidInput) as exc_info:
            create_position(db_session, election["election_id"], "President")
        assert exc_info.value.field == "title"

    def test_same_title_other_election(self, db_session, election):
        other = seed_election(db_session, title="Other", is_current=False, positions=(), voters=())
        create_position(db_session, election["election_id"], "President")
        assert create_position(db_session, other["election_id"], "President")["title"] == "President"

    def test_unknown_election(self, db_session):
        with pytest.raises(ElectionNotFound):
            create_position(db_session, 9999, "President")

    def test_markup_in_description_rejected(self, db_session, election):
        with pytest.raises(InvalidInput) as exc_info:
            create_position(db_session, election["election_id"], "President", description="a <b")
        assert exc_info.value.field == "description"

    def test_max_candidates_positive(self, db_session, election):
        with pytest.raises(InvalidInput):
            create_position(db_session, election["election_id"], "President", max_candidates=0)


@pytest.mark.unit
class TestCandidates:
    def test_create_inherits_election(self, db_session, election):
        position = create_position(db_session, election["election_id"], "President")
        candidate = create_candidate(db_session, position["id"], "<i>Alice</i>", biography="Runs fast")

        assert candidate["name"] == "Alice"
        assert candidate["election_id"] == election["election_id"]
        assert candidate["biography"] == "Runs fast"

    def test_unknown_position(self, db_session):
        with pytest.raises(InvalidInput) as exc_info:
            create_candidate(db_session, 9999, "Alice")
        assert exc_info.value.field == "position_id"

    def test_empty_name(self, db_session, election):
        position = create_position(db_session, election["election_id"], "President")
        with pytest.raises(InvalidInput):
            create_candidate(db_session, position["id"], "   ")


@pytest.mark.unit
class TestVoters:
    def test_register_canonicalizes_id(self, db_session, election):
        voter = register_voter(db_session, election["election_id"], " voter123 ", "Ann Lee")

        assert voter["voter_id"] == "VOTER123"
        assert voter["has_voted"] is False
        assert voter["voted_at"] is None

    def test_duplicate_id(self, db_session, election):
        register_voter(db_session, election["election_id"], "VOTER123", "Ann Lee")
        with pytest.raises(InvalidInput) as exc_info:
            register_voter(db_session, election["election_id"], "voter123", "Other Ann")
        assert exc_info.value.field == "voter_id"

    def test_malformed_id(self, db_session, election):
        with pytest.raises(InvalidInput):
            register_voter(db_session, election["election_id"], "VOTER 1", "Ann Lee")


@pytest.mark.unit
class TestRosterFacades:
    def test_changes_invalidate_tallies(self, dal, db_session, election):
        eid = election["election_id"]
        assert get_participation(dal, eid).data["total"] == 0
        assert get_results(dal, eid).data["positions"] == []

        position = add_position(dal, eid, title="President")
        add_candidate(dal, position["id"], name="Alice")
        add_voter(dal, eid, voter_id="VOTER777", name="Sam Park")

        assert get_participation(dal, eid).data["total"] == 1
        results = get_results(dal, eid).data
        assert [c["name"] for c in results["positions"][0]["candidates"]] == ["Alice"]
