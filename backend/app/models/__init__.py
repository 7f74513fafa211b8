from app.models.match import Match
from app.models.match_block import MatchBlock
from app.models.match_override import MatchOverride
from app.models.match_template import MatchTemplate
from app.models.team import Team
from app.models.tournament import Tournament
from app.models.tournament_format import TournamentFormat
from app.models.tournament_notification import TournamentNotification
from app.models.tournament_point_rules import TournamentPointRules

__all__ = [
    "Tournament",
    "TournamentFormat",
    "Team",
    "MatchBlock",
    "Match",
    "MatchTemplate",
    "MatchOverride",
    "TournamentPointRules",
    "TournamentNotification",
]
