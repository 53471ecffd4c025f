"""Application constants.

Election phase names, cache keys and scheduling defaults shared across the
clock, ledger and tally services.
"""

# Election phases
STATUS_NOT_STARTED = "not-started"
STATUS_ACTIVE = "active"
STATUS_ENDED = "ended"

# Voting window defaults (local time in the configured election timezone)
DEFAULT_START_TIME = "08:00"
DEFAULT_END_TIME = "17:00"

# Marker for an explicit abstention in a ballot selection
ABSTAIN = "abstain"

# Cache keys
# Per-election keys are formatted with the election id.
CACHE_KEY_ELECTION_STATUS = "electionStatus"
CACHE_KEY_SETTINGS = "settings"
CACHE_KEY_RESULTS = "results:{election_id}"
CACHE_KEY_PARTICIPATION = "participation:{election_id}"

# Default titles used when records have to be synthesized
DEFAULT_ELECTION_TITLE = "Student Council Election"
DEFAULT_SYSTEM_NAME = "School Election System"

# Number of recent voters listed in participation stats
RECENT_VOTERS_LIMIT = 3

# JWT Token Configuration
# Token expiration time in minutes (8 hours)
ACCESS_TOKEN_EXPIRE_MINUTES = 480
