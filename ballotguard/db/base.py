"""Database base class and model imports."""
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# Import all models here so metadata (and Alembic) sees them
from ballotguard.db.models.election import Election  # noqa: F401, E402
from ballotguard.db.models.setting import Setting  # noqa: F401, E402
from ballotguard.db.models.position import Position  # noqa: F401, E402
from ballotguard.db.models.candidate import Candidate  # noqa: F401, E402
from ballotguard.db.models.voter import Voter  # noqa: F401, E402
from ballotguard.db.models.vote import Vote  # noqa: F401, E402
