"""Domain error taxonomy.

Every error carries a stable machine-readable ``code``, the HTTP status the API
layer renders it with, and whether the client may retry the same request.
"""
from typing import Optional


class BallotGuardError(Exception):
    """Base class for all engine errors."""

    code = "error"
    status_code = 400
    retryable = False

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    def default_message(self) -> str:
        return "Request could not be processed"


class NoActiveElection(BallotGuardError):
    """No election is marked current."""

    code = "no_active_election"
    status_code = 404

    def default_message(self) -> str:
        return "No active election found"


class ElectionNotFound(BallotGuardError):
    code = "election_not_found"
    status_code = 404

    def default_message(self) -> str:
        return "Election not found"


class ElectionNotActive(BallotGuardError):
    """Voting attempted outside the window or while manually deactivated."""

    code = "election_not_active"
    status_code = 409

    def default_message(self) -> str:
        return "Voting is not open for this election"


class VoterNotFound(BallotGuardError):
    code = "voter_not_found"
    status_code = 404

    def default_message(self) -> str:
        return "Voter not found"


class AlreadyVoted(BallotGuardError):
    code = "already_voted"
    status_code = 409

    def default_message(self) -> str:
        return "Voter has already cast a ballot"


class IncompleteBallot(BallotGuardError):
    """A required position has no selection."""

    code = "incomplete_ballot"
    status_code = 422

    def __init__(self, position_id: int, message: Optional[str] = None):
        self.position_id = position_id
        super().__init__(message or f"Missing selection for position {position_id}")


class InvalidSelection(BallotGuardError):
    """A selection does not match the election's positions and candidates."""

    code = "invalid_selection"
    status_code = 422

    def __init__(self, position_id: Optional[int], message: Optional[str] = None):
        self.position_id = position_id
        super().__init__(message or f"Invalid selection for position {position_id}")


class InvalidInput(BallotGuardError):
    """Local validation failure for administrative or request data."""

    code = "invalid_input"
    status_code = 422

    def __init__(self, field: str, message: Optional[str] = None):
        self.field = field
        super().__init__(message or f"Invalid value for {field}")


class StorageError(BallotGuardError):
    status_code = 503
    retryable = True


class StorageTimeout(StorageError):
    code = "storage_timeout"

    def default_message(self) -> str:
        return "Storage did not respond in time, please retry"


class StorageUnavailable(StorageError):
    code = "storage_unavailable"

    def default_message(self) -> str:
        return "Storage is unavailable, please retry"


class CircuitOpen(StorageUnavailable):
    """Reads are failing fast while the database recovers."""

    code = "circuit_open"

    def default_message(self) -> str:
        return "Storage is recovering, please retry shortly"
