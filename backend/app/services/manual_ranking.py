"""
Manual rankings.

An operator settles a tie (drawn lots, a play-off held off the books...) by
posting positions for every team of a block. The ranking is stored with
``ranking_source = "manual"`` and survives recomputation only while the
block's results stay exactly as they were when it was entered.
"""
from typing import Dict, List, Mapping, Optional, Sequence

from app.services.errors import ManualRankingError
from app.services.standings_calculator import TeamStanding
from app.services.tie_breaker import name_sort_key


def build_manual_ranking(
    computed: Sequence[TeamStanding], positions: Mapping[int, int]
) -> List[TeamStanding]:
    """Apply operator positions (team_id -> position) to the computed standings.

    Raises ManualRankingError unless the submission covers exactly the
    block's teams, every position is within 1..n and somebody is first.
    """
    by_team = {s.team_id: s for s in computed}
    submitted = set(positions)
    expected = set(by_team)

    if submitted != expected:
        missing = sorted(expected - submitted)
        unknown = sorted(submitted - expected)
        parts = []
        if missing:
            parts.append(f"missing teams {missing}")
        if unknown:
            parts.append(f"teams not in block {unknown}")
        raise ManualRankingError("Manual ranking does not match the block: " + ", ".join(parts))

    count = len(by_team)
    out_of_range = sorted(tid for tid, pos in positions.items() if not 1 <= pos <= count)
    if out_of_range:
        raise ManualRankingError(f"Positions must be between 1 and {count} (teams {out_of_range})")
    if count and 1 not in positions.values():
        raise ManualRankingError("At least one team must be ranked first")

    ranked = [by_team[tid].with_position(pos) for tid, pos in positions.items()]
    ranked.sort(key=lambda s: (s.position, name_sort_key(s.team_name), s.team_id))
    return ranked


def reconcile_manual_ranking(
    manual: Sequence[TeamStanding], computed: Sequence[TeamStanding]
) -> Optional[List[TeamStanding]]:
    """Manual positions carried onto fresh standings, or None if results moved.

    Names are taken from the fresh standings so renames show through.
    """
    fresh: Dict[int, TeamStanding] = {s.team_id: s for s in computed}
    if set(fresh) != {s.team_id for s in manual}:
        return None
    for stored in manual:
        if stored.stats_key() != fresh[stored.team_id].stats_key():
            return None

    kept = [fresh[s.team_id].with_position(s.position) for s in manual]
    kept.sort(key=lambda s: (s.position, name_sort_key(s.team_name), s.team_id))
    return kept
