from .ballot import cast_ballot, submit_ballot
from .clock import (
    compute_status,
    get_election_status,
    get_phase,
    resolve_window,
    toggle_election_active,
)
from .elections import (
    create_default_election,
    create_election,
    delete_election,
    set_current_election,
    toggle_publication,
)
from .roster import create_candidate, create_position, register_voter
from .settings import get_settings, update_settings
from .tally import compute_participation, compute_results, get_participation, get_results

__all__ = [
    # clock
    "compute_status",
    "get_election_status",
    "get_phase",
    "resolve_window",
    "toggle_election_active",
    # ballot
    "cast_ballot",
    "submit_ballot",
    # tally
    "compute_participation",
    "compute_results",
    "get_participation",
    "get_results",
    # elections
    "create_default_election",
    "create_election",
    "delete_election",
    "set_current_election",
    "toggle_publication",
    # roster
    "create_candidate",
    "create_position",
    "register_voter",
    # settings
    "get_settings",
    "update_settings",
]
