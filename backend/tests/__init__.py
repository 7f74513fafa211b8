# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from app.models.match import Match  # noqa: F401
from app.models.match_block import MatchBlock  # noqa: F401
from app.models.match_override import MatchOverride  # noqa: F401
from app.models.match_template import MatchTemplate  # noqa: F401
from app.models.team import Team  # noqa: F401
from app.models.tournament import Tournament  # noqa: F401
from app.models.tournament_format import TournamentFormat  # noqa: F401
from app.models.tournament_notification import TournamentNotification  # noqa: F401
from app.models.tournament_point_rules import TournamentPointRules  # noqa: F401
