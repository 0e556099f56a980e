import os

# The app's own engine stays in memory during tests; fixtures use test_engine
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

# Force SQLModel table registration at test discovery time
from courtside.models.bracket import Bracket  # noqa: E402,F401
from courtside.models.match import Match  # noqa: E402,F401
from courtside.models.schedule import Schedule  # noqa: E402,F401
from courtside.models.team import Team  # noqa: E402,F401
from courtside.models.time_slot import TimeSlot  # noqa: E402,F401
from courtside.models.tournament import Tournament  # noqa: E402,F401
