"""
Block ranking: ordering and position assignment.

Order:
  1. points (desc)
  2. head-to-head points between the two compared teams (desc)
  3. display name (asc, Unicode collation over the width- and case-folded
     name) - stands in for lots

Two neighbours share a position only when their points are equal and
their mutual matches are exactly level (same wins, same goals exchanged;
no mutual match counts as level). Numbering skips: 1, 1, 3, 4.
"""
from __future__ import annotations

import os
import unicodedata
from dataclasses import dataclass
from functools import cmp_to_key, lru_cache
from typing import Iterable, List, Sequence, Tuple

from pyuca import Collator

from app.services.standings_calculator import (
    DEFAULT_POINT_RULES,
    MatchResult,
    PointRules,
    TeamStanding,
    counts_toward_standings,
    goals_for_side,
)


@dataclass(frozen=True)
class HeadToHead:
    team_a_wins: int = 0
    team_b_wins: int = 0
    draws: int = 0
    team_a_goals: int = 0
    team_b_goals: int = 0
    matches: int = 0

    def points(self, rules: PointRules) -> Tuple[int, int]:
        a = self.team_a_wins * rules.win + self.draws * rules.draw + self.team_b_wins * rules.loss
        b = self.team_b_wins * rules.win + self.draws * rules.draw + self.team_a_wins * rules.loss
        return a, b

    @property
    def is_level(self) -> bool:
        return self.team_a_wins == self.team_b_wins and self.team_a_goals == self.team_b_goals


def head_to_head(
    team_a_id: int,
    team_b_id: int,
    matches: Iterable[MatchResult],
    rules: PointRules = DEFAULT_POINT_RULES,
) -> HeadToHead:
    """Mutual record of two teams over the matches that count toward standings."""
    a_wins = b_wins = draws = a_goals = b_goals = played = 0
    pair = {team_a_id, team_b_id}
    for match in matches:
        if {match.team1_id, match.team2_id} != pair or not counts_toward_standings(match):
            continue
        played += 1
        gf, ga = goals_for_side(match, team_a_id, rules)
        a_goals += gf
        b_goals += ga
        if match.is_draw:
            draws += 1
        elif match.winner_team_id == team_a_id:
            a_wins += 1
        else:
            b_wins += 1
    return HeadToHead(
        team_a_wins=a_wins,
        team_b_wins=b_wins,
        draws=draws,
        team_a_goals=a_goals,
        team_b_goals=b_goals,
        matches=played,
    )


# Optional tailored allkeys table (UCA format); the bundled DUCET otherwise.
COLLATION_TABLE = os.getenv("COLLATION_TABLE") or None


@lru_cache(maxsize=None)
def _collator() -> Collator:
    return Collator(COLLATION_TABLE) if COLLATION_TABLE else Collator()


def name_sort_key(name: str) -> Tuple[int, ...]:
    """Collation key: kana in gojuon order, Latin alphabetical, width and case ignored."""
    return _collator().sort_key(unicodedata.normalize("NFKC", name or "").casefold())


def _fallback_key(standing: TeamStanding) -> Tuple[Tuple[int, ...], str, int]:
    return (name_sort_key(standing.team_name), standing.team_name or "", standing.team_id)


def rank_standings(
    standings: Sequence[TeamStanding],
    matches: Sequence[MatchResult],
    rules: PointRules = DEFAULT_POINT_RULES,
) -> List[TeamStanding]:
    """Return new standings, sorted, with positions assigned."""
    matches = list(matches)

    def compare(a: TeamStanding, b: TeamStanding) -> int:
        if a.points != b.points:
            return b.points - a.points
        h2h_a, h2h_b = head_to_head(a.team_id, b.team_id, matches, rules).points(rules)
        if h2h_a != h2h_b:
            return h2h_b - h2h_a
        ka, kb = _fallback_key(a), _fallback_key(b)
        return (ka > kb) - (ka < kb)

    # Pre-sort so the result never depends on input order.
    ordered = sorted(standings, key=_fallback_key)
    ordered.sort(key=cmp_to_key(compare))

    ranked: List[TeamStanding] = []
    for index, standing in enumerate(ordered):
        position = index + 1
        if ranked:
            previous = ranked[-1]
            if previous.points == standing.points and head_to_head(
                previous.team_id, standing.team_id, matches, rules
            ).is_level:
                position = previous.position
        ranked.append(standing.with_position(position))
    return ranked


def tied_groups(ranked: Sequence[TeamStanding]) -> List[List[TeamStanding]]:
    """Groups of two or more teams sharing a position, in position order."""
    groups: List[List[TeamStanding]] = []
    for standing in ranked:
        if groups and groups[-1][0].position == standing.position:
            groups[-1].append(standing)
        else:
            groups.append([standing])
    return [g for g in groups if len(g) > 1]
