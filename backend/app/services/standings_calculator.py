"""
Block standings aggregation.

Turns settled match results of one block into per-team statistics.
Pure: no session, no persistence. Ordering and positions are the
tie breaker's job (see tie_breaker.py); every standing produced here has
position 0.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from app.services.diagnostics import STANDINGS_RECOMPUTED, Diagnostics, default_diagnostics

STATUS_SCHEDULED = "scheduled"
STATUS_ONGOING = "ongoing"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"


@dataclass(frozen=True)
class PointRules:
    win: int = 3
    draw: int = 1
    loss: int = 0
    walkover_winner_goals: int = 3
    walkover_loser_goals: int = 0


DEFAULT_POINT_RULES = PointRules()


@dataclass(frozen=True)
class TeamRef:
    team_id: int
    display_name: str
    abbreviation: Optional[str] = None


@dataclass(frozen=True)
class MatchResult:
    match_id: int
    match_code: str
    team1_id: Optional[int]
    team2_id: Optional[int]
    team1_score: Optional[str] = None
    team2_score: Optional[str] = None
    winner_team_id: Optional[int] = None
    is_draw: bool = False
    is_walkover: bool = False
    status: str = STATUS_SCHEDULED
    is_confirmed: bool = False
    block_id: Optional[int] = None

    @property
    def has_both_participants(self) -> bool:
        return self.team1_id is not None and self.team2_id is not None

    @property
    def is_settled(self) -> bool:
        return self.is_confirmed or self.status == STATUS_CANCELLED

    @property
    def loser_team_id(self) -> Optional[int]:
        if self.is_draw or self.winner_team_id is None:
            return None
        if self.winner_team_id == self.team1_id:
            return self.team2_id
        if self.winner_team_id == self.team2_id:
            return self.team1_id
        return None

    def involves(self, team_id: int) -> bool:
        return team_id in (self.team1_id, self.team2_id)


@dataclass
class TeamStanding:
    team_id: int
    team_name: str
    team_abbreviation: Optional[str] = None
    position: int = 0
    points: int = 0
    matches_played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0

    def stats_key(self) -> Tuple[int, ...]:
        """Everything except position; used to tell whether results changed."""
        return (
            self.points,
            self.matches_played,
            self.wins,
            self.draws,
            self.losses,
            self.goals_for,
            self.goals_against,
            self.goal_difference,
        )

    def with_position(self, position: int) -> "TeamStanding":
        return replace(self, position=position)


def parse_score_total(raw) -> int:
    """Total goals from a stored score.

    Accepts ints and per-period strings ("1,0,2"). Anything unparseable
    counts as 0.
    """
    if raw is None:
        return 0
    if isinstance(raw, bool):
        return int(raw)
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        try:
            return int(raw)
        except (ValueError, OverflowError):
            return 0
    text = str(raw).strip()
    if not text:
        return 0
    total = 0
    for part in text.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            total += int(float(part))
        except (ValueError, OverflowError):
            return 0
    return total


def counts_toward_standings(match: MatchResult) -> bool:
    """Settled matches with both participants; cancellations only as walkovers."""
    if not match.has_both_participants or not match.is_settled:
        return False
    if match.status == STATUS_CANCELLED and not match.is_walkover:
        return False
    return True


def goals_for_side(match: MatchResult, team_id: int, rules: PointRules) -> Tuple[int, int]:
    """(goals_for, goals_against) for team_id in match."""
    if match.is_walkover:
        if match.is_draw:
            return 0, 0
        if match.winner_team_id == team_id:
            return rules.walkover_winner_goals, rules.walkover_loser_goals
        return rules.walkover_loser_goals, rules.walkover_winner_goals

    team1 = parse_score_total(match.team1_score)
    team2 = parse_score_total(match.team2_score)
    if match.team1_id == team_id:
        return team1, team2
    return team2, team1


def outcome_points(match: MatchResult, team_id: int, rules: PointRules) -> Tuple[str, int]:
    if match.is_draw:
        return "draw", rules.draw
    if match.winner_team_id == team_id:
        return "win", rules.win
    return "loss", rules.loss


def _accumulate(standing: TeamStanding, match: MatchResult, rules: PointRules) -> None:
    gf, ga = goals_for_side(match, standing.team_id, rules)
    outcome, pts = outcome_points(match, standing.team_id, rules)
    standing.matches_played += 1
    standing.goals_for += gf
    standing.goals_against += ga
    standing.goal_difference = standing.goals_for - standing.goals_against
    standing.points += pts
    if outcome == "win":
        standing.wins += 1
    elif outcome == "draw":
        standing.draws += 1
    else:
        standing.losses += 1


def calculate_block_standings(
    participants: Sequence[TeamRef],
    matches: Iterable[MatchResult],
    rules: PointRules = DEFAULT_POINT_RULES,
    diagnostics: Optional[Diagnostics] = None,
    block_name: Optional[str] = None,
) -> List[TeamStanding]:
    """Aggregate settled results into one unordered standing per participant.

    Participants with no settled matches still get a zero-filled row.
    Matches involving a team outside ``participants`` are ignored for that
    team only.
    """
    diagnostics = diagnostics or default_diagnostics()

    standings: Dict[int, TeamStanding] = {}
    for team in participants:
        if team.team_id in standings:
            continue
        standings[team.team_id] = TeamStanding(
            team_id=team.team_id,
            team_name=team.display_name,
            team_abbreviation=team.abbreviation,
        )

    counted = 0
    for match in matches:
        if not counts_toward_standings(match):
            continue
        counted += 1
        for team_id in (match.team1_id, match.team2_id):
            standing = standings.get(team_id)
            if standing is not None:
                _accumulate(standing, match, rules)

    result = list(standings.values())
    diagnostics.emit(
        STANDINGS_RECOMPUTED,
        block=block_name,
        teams=len(result),
        matches_counted=counted,
    )
    return result


def expected_point_total(matches: Iterable[MatchResult], rules: PointRules) -> int:
    """Block point total implied by the counted matches alone."""
    total = 0
    for match in matches:
        if not counts_toward_standings(match):
            continue
        if match.is_draw:
            total += 2 * rules.draw
        else:
            total += rules.win + rules.loss
    return total
