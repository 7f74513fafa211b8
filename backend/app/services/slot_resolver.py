"""
Bracket slot resolution.

Maps every bracket-phase template side to the team expected there, given:
  - finished blocks and the positions they can safely release,
  - confirmed bracket matches (winner / loser slots),
  - per-tournament overrides of the template's source keys.

Resolvers are tried in order (``resolve_with_fallback``). The primary
template resolver honours overrides; the top-two fallback does not, and
``ResolutionResult.strategy`` says which one produced the map.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from app.services.diagnostics import (
    PROMOTION_FALLBACK_USED,
    PROMOTION_RESOLVED,
    Diagnostics,
    default_diagnostics,
)
from app.services.errors import PromotionError, TemplatesNotFoundError
from app.services.promotion_eligibility import PromotionEligibility
from app.services.promotion_slots import (
    OUTCOME_LOSER,
    OUTCOME_WINNER,
    BlockPosition,
    Bye,
    MatchOutcome,
    PromotionSlot,
    parse_slot,
)
from app.services.standings_calculator import MatchResult, TeamStanding

SIDE_TEAM1 = "team1"
SIDE_TEAM2 = "team2"
SIDES = (SIDE_TEAM1, SIDE_TEAM2)

STRATEGY_TEMPLATE = "template"
STRATEGY_TOP_TWO_FALLBACK = "top_two_fallback"


@dataclass(frozen=True)
class TemplateEntry:
    match_code: str
    team1_source: Optional[str]
    team2_source: Optional[str]
    team1_display_name: str = ""
    team2_display_name: str = ""
    round_index: int = 1
    round_name: Optional[str] = None

    def source_for(self, side: str) -> Optional[str]:
        return self.team1_source if side == SIDE_TEAM1 else self.team2_source

    def label_for(self, side: str) -> str:
        return self.team1_display_name if side == SIDE_TEAM1 else self.team2_display_name


@dataclass(frozen=True)
class SourceOverride:
    match_code: str
    team1_source_override: Optional[str] = None
    team2_source_override: Optional[str] = None

    def source_for(self, side: str) -> Optional[str]:
        return self.team1_source_override if side == SIDE_TEAM1 else self.team2_source_override


@dataclass(frozen=True)
class ResolvedTeam:
    team_id: int
    display_name: str


@dataclass(frozen=True)
class ExpectedParticipant:
    team_id: int
    display_name: str
    source: str


@dataclass(frozen=True)
class BlockOutcome:
    """A preliminary block as the resolver sees it."""

    block_name: str
    is_complete: bool
    standings: Tuple[TeamStanding, ...]
    eligibility: PromotionEligibility


@dataclass
class ResolutionContext:
    templates: Sequence[TemplateEntry]
    overrides: Mapping[str, SourceOverride]
    blocks: Sequence[BlockOutcome]
    bracket_matches: Sequence[MatchResult]
    team_names: Mapping[int, str] = field(default_factory=dict)


ExpectedMap = Dict[Tuple[str, str], ExpectedParticipant]


@dataclass
class ResolutionResult:
    strategy: str
    expected: ExpectedMap
    slot_map: Dict[str, ResolvedTeam]
    unresolved: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return self.strategy != STRATEGY_TEMPLATE


class PromotionResolver(Protocol):
    strategy: str

    def resolve(self, context: ResolutionContext) -> ResolutionResult:
        ...


def effective_source(template: TemplateEntry, override: Optional[SourceOverride], side: str) -> Optional[str]:
    if override is not None:
        replacement = override.source_for(side)
        if replacement:
            return replacement
    return template.source_for(side)


def effective_sources(
    templates: Iterable[TemplateEntry], overrides: Mapping[str, SourceOverride]
) -> List[Optional[str]]:
    sources: List[Optional[str]] = []
    for template in templates:
        override = overrides.get(template.match_code)
        for side in SIDES:
            sources.append(effective_source(template, override, side))
    return sources


def match_outcome_slots(
    bracket_matches: Iterable[MatchResult], team_names: Mapping[int, str]
) -> Dict[str, ResolvedTeam]:
    """<code>_winner / <code>_loser for every confirmed, decided bracket match."""
    slots: Dict[str, ResolvedTeam] = {}
    for match in sorted(bracket_matches, key=lambda m: m.match_code):
        if not match.is_confirmed or match.winner_team_id is None:
            continue
        winner_id = match.winner_team_id
        slots[MatchOutcome(match.match_code, OUTCOME_WINNER).key] = ResolvedTeam(
            team_id=winner_id, display_name=team_names.get(winner_id, str(winner_id))
        )
        loser_id = match.loser_team_id
        if loser_id is not None:
            slots[MatchOutcome(match.match_code, OUTCOME_LOSER).key] = ResolvedTeam(
                team_id=loser_id, display_name=team_names.get(loser_id, str(loser_id))
            )
    return slots


def _standing_team(standing: TeamStanding) -> ResolvedTeam:
    return ResolvedTeam(
        team_id=standing.team_id,
        display_name=standing.team_name or standing.team_abbreviation or str(standing.team_id),
    )


def _lookup(slot: Optional[PromotionSlot], slot_map: Mapping[str, ResolvedTeam]) -> Optional[ResolvedTeam]:
    if slot is None or isinstance(slot, Bye):
        return None
    return slot_map.get(slot.key)


class TemplateSlotResolver:
    """Primary resolver: eligible block positions + match outcomes, overrides applied."""

    strategy = STRATEGY_TEMPLATE

    def __init__(self, diagnostics: Optional[Diagnostics] = None) -> None:
        self.diagnostics = diagnostics or default_diagnostics()

    def build_slot_map(self, context: ResolutionContext) -> Dict[str, ResolvedTeam]:
        slot_map: Dict[str, ResolvedTeam] = {}
        for block in context.blocks:
            if not block.is_complete:
                continue
            for position, standing in block.eligibility.eligible.items():
                slot_map[BlockPosition(block.block_name, position).key] = _standing_team(standing)
        slot_map.update(match_outcome_slots(context.bracket_matches, context.team_names))
        return slot_map

    def resolve(self, context: ResolutionContext) -> ResolutionResult:
        if not context.templates:
            raise TemplatesNotFoundError("No bracket-phase templates for this tournament format")

        slot_map = self.build_slot_map(context)
        expected: ExpectedMap = {}
        unresolved: List[Tuple[str, str]] = []

        for template in sorted(context.templates, key=lambda t: (t.round_index, t.match_code)):
            override = context.overrides.get(template.match_code)
            for side in SIDES:
                raw = effective_source(template, override, side)
                team = _lookup(parse_slot(raw), slot_map)
                if team is None:
                    unresolved.append((template.match_code, side))
                    continue
                expected[(template.match_code, side)] = ExpectedParticipant(
                    team_id=team.team_id, display_name=team.display_name, source=raw
                )

        self.diagnostics.emit(
            PROMOTION_RESOLVED,
            strategy=self.strategy,
            resolved=len(expected),
            unresolved=len(unresolved),
        )
        return ResolutionResult(strategy=self.strategy, expected=expected, slot_map=slot_map, unresolved=unresolved)


class TopTwoFallbackResolver:
    """First and second place of each finished block, ties skipped.

    Ignores overrides and anything but literal template keys; bracket
    winner/loser keys still resolve.
    """

    strategy = STRATEGY_TOP_TWO_FALLBACK

    def __init__(self, diagnostics: Optional[Diagnostics] = None) -> None:
        self.diagnostics = diagnostics or default_diagnostics()

    def resolve(self, context: ResolutionContext) -> ResolutionResult:
        slot_map: Dict[str, ResolvedTeam] = {}
        for block in context.blocks:
            if not block.is_complete:
                continue
            for position in (1, 2):
                holders = [s for s in block.standings if s.position == position]
                if len(holders) == 1:
                    slot_map[f"{block.block_name}_{position}"] = _standing_team(holders[0])
        slot_map.update(match_outcome_slots(context.bracket_matches, context.team_names))

        expected: ExpectedMap = {}
        unresolved: List[Tuple[str, str]] = []
        for template in sorted(context.templates, key=lambda t: (t.round_index, t.match_code)):
            for side in SIDES:
                raw = template.source_for(side)
                team = slot_map.get(raw.strip()) if raw else None
                if team is None:
                    unresolved.append((template.match_code, side))
                    continue
                expected[(template.match_code, side)] = ExpectedParticipant(
                    team_id=team.team_id, display_name=team.display_name, source=raw
                )

        self.diagnostics.emit(
            PROMOTION_RESOLVED,
            strategy=self.strategy,
            resolved=len(expected),
            unresolved=len(unresolved),
        )
        return ResolutionResult(strategy=self.strategy, expected=expected, slot_map=slot_map, unresolved=unresolved)


def resolve_with_fallback(
    context: ResolutionContext,
    resolvers: Optional[Sequence[PromotionResolver]] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> ResolutionResult:
    """Run resolvers in order until one succeeds.

    Missing templates are fatal and propagate; any other resolver failure
    moves on to the next resolver.
    """
    diagnostics = diagnostics or default_diagnostics()
    if resolvers is None:
        resolvers = (TemplateSlotResolver(diagnostics), TopTwoFallbackResolver(diagnostics))

    last_error: Optional[Exception] = None
    for resolver in resolvers:
        try:
            result = resolver.resolve(context)
        except TemplatesNotFoundError:
            raise
        except Exception as exc:
            last_error = exc
            diagnostics.emit(
                PROMOTION_FALLBACK_USED,
                failed_strategy=resolver.strategy,
                error=f"{type(exc).__name__}: {exc}",
            )
            continue
        return result

    raise PromotionError("All promotion resolvers failed") from last_error
