"""Block completion: have all playable matches of a block been settled?"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from app.services.standings_calculator import MatchResult


@dataclass(frozen=True)
class BlockCompletion:
    is_complete: bool
    settled: int
    total: int


def detect_block_completion(matches: Iterable[MatchResult]) -> BlockCompletion:
    """Matches still waiting on an upstream participant are left out of the count.

    A block with nothing playable is not complete.
    """
    total = 0
    settled = 0
    for match in matches:
        if not match.has_both_participants:
            continue
        total += 1
        if match.is_settled:
            settled += 1
    return BlockCompletion(is_complete=total > 0 and settled == total, settled=settled, total=total)
