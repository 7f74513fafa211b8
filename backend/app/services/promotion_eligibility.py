"""
Promotion eligibility: which required positions of a finished block are safe
to release into the bracket.

A position held by exactly one team is eligible. A position shared by several
teams is a tie: it is reported and never promoted until the ranking is
settled by hand. Other positions still promote normally.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from app.services.diagnostics import PROMOTION_TIE, Diagnostics, default_diagnostics
from app.services.promotion_slots import BlockPosition, try_parse_slot
from app.services.standings_calculator import TeamStanding

DEFAULT_REQUIRED_POSITIONS = (1, 2)


@dataclass(frozen=True)
class TieCondition:
    block_name: str
    position: int
    tied_team_ids: Tuple[int, ...]
    tied_team_names: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            "block_name": self.block_name,
            "position": self.position,
            "tied_team_ids": list(self.tied_team_ids),
            "tied_team_names": list(self.tied_team_names),
        }


@dataclass
class PromotionEligibility:
    block_name: str
    required_positions: List[int]
    eligible: Dict[int, TeamStanding] = field(default_factory=dict)
    ties: List[TieCondition] = field(default_factory=list)

    @property
    def requires_manual_ranking(self) -> bool:
        return bool(self.ties)

    @property
    def can_promote_all(self) -> bool:
        return not self.ties and len(self.eligible) == len(self.required_positions)


def analyze_promotion_eligibility(
    block_name: str,
    standings: Sequence[TeamStanding],
    required_positions: Iterable[int],
    diagnostics: Optional[Diagnostics] = None,
) -> PromotionEligibility:
    diagnostics = diagnostics or default_diagnostics()
    positions = sorted(set(required_positions))
    result = PromotionEligibility(block_name=block_name, required_positions=positions)

    for position in positions:
        holders = sorted(
            (s for s in standings if s.position == position),
            key=lambda s: s.team_id,
        )
        if len(holders) == 1:
            result.eligible[position] = holders[0]
        elif len(holders) > 1:
            tie = TieCondition(
                block_name=block_name,
                position=position,
                tied_team_ids=tuple(s.team_id for s in holders),
                tied_team_names=tuple(s.team_name for s in holders),
            )
            result.ties.append(tie)
            diagnostics.emit(
                PROMOTION_TIE,
                block=block_name,
                position=position,
                teams=list(tie.tied_team_ids),
            )
    return result


def required_positions_by_block(sources: Iterable[Optional[str]]) -> Dict[str, Set[int]]:
    """Block name -> positions referenced by the given (effective) slot keys."""
    required: Dict[str, Set[int]] = {}
    for raw in sources:
        slot = try_parse_slot(raw)
        if isinstance(slot, BlockPosition):
            required.setdefault(slot.block, set()).add(slot.position)
    return required


def required_positions_for(block_name: str, required: Dict[str, Set[int]]) -> List[int]:
    positions = required.get(block_name)
    if not positions:
        return list(DEFAULT_REQUIRED_POSITIONS)
    return sorted(positions)
