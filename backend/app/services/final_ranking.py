"""
Final-phase placings from bracket templates.

A bracket template may state the place its winner takes (a final: 1) and
the range its loser takes (a quarter-final: 5-8, shared as 5). Each
settled bracket match with a winner hands out those places; a team's
placing is the one from its latest round. Teams still in the bracket have
no placing yet and are left out.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from app.services.diagnostics import FINAL_RANKING_UPDATED, Diagnostics, default_diagnostics
from app.services.standings_calculator import MatchResult, TeamStanding, counts_toward_standings
from app.services.tie_breaker import name_sort_key


@dataclass(frozen=True)
class PlacementRule:
    match_code: str
    round_index: int = 1
    winner_position: Optional[int] = None
    loser_position_start: Optional[int] = None
    loser_position_end: Optional[int] = None
    position_note: Optional[str] = None

    @property
    def assigns_places(self) -> bool:
        return self.winner_position is not None or self.loser_position_start is not None


def rank_final_block(
    rules: Iterable[PlacementRule],
    matches: Sequence[MatchResult],
    team_names: Mapping[int, str],
    diagnostics: Optional[Diagnostics] = None,
    block_name: str = "",
) -> List[TeamStanding]:
    diagnostics = diagnostics or default_diagnostics()
    by_code = {m.match_code: m for m in matches}
    ordered = sorted((r for r in rules if r.assigns_places), key=lambda r: (r.round_index, r.match_code))

    # team_id -> (round_index, position); later rounds replace earlier ones
    placings: Dict[int, Tuple[int, int]] = {}
    for rule in ordered:
        match = by_code.get(rule.match_code)
        if match is None or not counts_toward_standings(match) or match.winner_team_id is None:
            continue
        loser = match.loser_team_id
        if rule.winner_position is not None:
            placings[match.winner_team_id] = (rule.round_index, rule.winner_position)
        if loser is not None and rule.loser_position_start is not None:
            placings[loser] = (rule.round_index, rule.loser_position_start)

    standings = [
        TeamStanding(
            team_id=team_id,
            team_name=team_names.get(team_id, str(team_id)),
            position=position,
        )
        for team_id, (_round, position) in placings.items()
    ]
    standings.sort(key=lambda s: (s.position, name_sort_key(s.team_name), s.team_id))
    diagnostics.emit(FINAL_RANKING_UPDATED, block=block_name, placed=len(standings))
    return standings
