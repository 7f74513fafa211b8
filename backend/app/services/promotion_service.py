"""
Standings and promotion orchestration.

Every write path (settlement, recalculation, manual ranking, point rules,
source overrides, bracket fix) runs through ``_tournament_transaction``: a
process-local lock per tournament plus a row lock on the tournament where
the database supports it. One run is one transaction; any failure rolls the
whole run back, so a block's ranking snapshot is never half written.
"""
import logging
import threading
import weakref
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from sqlmodel import Session, select

from app.models.match import MATCH_CANCELLED, MATCH_COMPLETED, MATCH_STATUSES, Match
from app.models.match_block import (
    PHASE_FINAL,
    PHASE_PRELIMINARY,
    RANKING_SOURCE_COMPUTED,
    RANKING_SOURCE_MANUAL,
    MatchBlock,
)
from app.models.match_override import MatchOverride
from app.models.tournament import Tournament
from app.models.tournament_point_rules import TournamentPointRules
from app.services.block_completion import BlockCompletion, detect_block_completion
from app.services.bracket_validation import ValidationReport, validate_bracket
from app.services.bracket_writer import SlotChange, write_bracket_assignments
from app.services.diagnostics import (
    BLOCK_INCOMPLETE,
    RANKING_MANUAL_DISCARDED,
    RANKING_MANUAL_KEPT,
    Diagnostics,
    default_diagnostics,
)
from app.services.errors import InvalidResultError, NotFoundError, TemplatesNotFoundError
from app.services.final_ranking import rank_final_block
from app.services.manual_ranking import build_manual_ranking, reconcile_manual_ranking
from app.services.match_source import (
    load_block_matches,
    load_block_participants,
    load_blocks,
    load_bracket_matches,
    load_bracket_templates,
    load_overrides,
    load_placement_rules,
    load_point_rules,
    load_team_names,
    to_bracket_state,
    to_match_result,
)
from app.services.promotion_eligibility import (
    PromotionEligibility,
    TieCondition,
    analyze_promotion_eligibility,
    required_positions_by_block,
    required_positions_for,
)
from app.services.promotion_slots import Bye, try_parse_slot
from app.services.ranking_store import dump_ranking, load_ranking
from app.services.slot_resolver import (
    SIDE_TEAM1,
    SIDE_TEAM2,
    BlockOutcome,
    ResolutionContext,
    ResolutionResult,
    TemplateEntry,
    effective_source,
    effective_sources,
    resolve_with_fallback,
)
from app.services.standings_calculator import TeamStanding, calculate_block_standings
from app.services.tie_breaker import rank_standings
from app.services.tie_notifications import sync_tie_notification

logger = logging.getLogger(__name__)

_registry_guard = threading.Lock()
# Entries live while some caller holds the lock object.
_tournament_locks: "weakref.WeakValueDictionary[int, threading.Lock]" = weakref.WeakValueDictionary()


def tournament_lock(tournament_id: int) -> threading.Lock:
    with _registry_guard:
        lock = _tournament_locks.get(tournament_id)
        if lock is None:
            lock = threading.Lock()
            _tournament_locks[tournament_id] = lock
        return lock


@contextmanager
def _tournament_transaction(session: Session, tournament_id: int) -> Iterator[Tournament]:
    with tournament_lock(tournament_id):
        try:
            tournament = session.exec(
                select(Tournament).where(Tournament.id == tournament_id).with_for_update()
            ).first()
            if tournament is None:
                raise NotFoundError(f"Tournament {tournament_id} not found")
            yield tournament
            session.commit()
        except Exception:
            session.rollback()
            raise


@dataclass
class BlockRecalculation:
    block_id: int
    block_name: str
    standings: List[TeamStanding]
    ranking_source: str
    completion: BlockCompletion


@dataclass
class PromotionRun:
    tournament_id: int
    strategy: str
    changes: List[SlotChange] = field(default_factory=list)
    ties: List[TieCondition] = field(default_factory=list)
    unresolved: List[Tuple[str, str]] = field(default_factory=list)
    auto_advanced: List[str] = field(default_factory=list)


@dataclass
class TournamentRecalculation:
    tournament_id: int
    blocks: List[BlockRecalculation] = field(default_factory=list)
    promotion: Optional[PromotionRun] = None


# ---------------------------------------------------------------------------
# Block rankings
# ---------------------------------------------------------------------------


def _computed_ranking(
    session: Session, block: MatchBlock, diagnostics: Diagnostics
) -> Tuple[List[TeamStanding], BlockCompletion]:
    rows = load_block_matches(session, block.id)
    results = [to_match_result(m) for m in rows]
    participants = load_block_participants(session, block, rows)
    rules = load_point_rules(session, block.tournament_id)
    standings = calculate_block_standings(participants, results, rules, diagnostics, block.block_name)
    return rank_standings(standings, results, rules), detect_block_completion(results)


def _store_ranking(block: MatchBlock, standings: List[TeamStanding], source: str) -> None:
    block.team_rankings = dump_ranking(standings)
    block.ranking_source = source
    block.updated_at = datetime.utcnow()


def _recompute_block(session: Session, block: MatchBlock, diagnostics: Diagnostics) -> BlockRecalculation:
    ranked, completion = _computed_ranking(session, block, diagnostics)
    standings, source = ranked, RANKING_SOURCE_COMPUTED

    snapshot = load_ranking(block.team_rankings, block.ranking_source, diagnostics, block.block_name)
    if snapshot.is_manual:
        kept = reconcile_manual_ranking(snapshot.standings, ranked)
        if kept is not None:
            standings, source = kept, RANKING_SOURCE_MANUAL
            diagnostics.emit(RANKING_MANUAL_KEPT, block=block.block_name)
        else:
            diagnostics.emit(RANKING_MANUAL_DISCARDED, block=block.block_name)

    _store_ranking(block, standings, source)
    session.add(block)
    return BlockRecalculation(
        block_id=block.id,
        block_name=block.block_name,
        standings=standings,
        ranking_source=source,
        completion=completion,
    )


def _current_ranking(
    session: Session, block: MatchBlock, diagnostics: Diagnostics, persist: bool
) -> Tuple[List[TeamStanding], BlockCompletion]:
    """Stored snapshot when readable, otherwise a fresh computation."""
    snapshot = load_ranking(block.team_rankings, block.ranking_source, diagnostics, block.block_name)
    if snapshot.is_absent:
        if persist:
            recalculated = _recompute_block(session, block, diagnostics)
            return recalculated.standings, recalculated.completion
        return _computed_ranking(session, block, diagnostics)

    results = [to_match_result(m) for m in load_block_matches(session, block.id)]
    return snapshot.standings, detect_block_completion(results)


# ---------------------------------------------------------------------------
# Promotion
# ---------------------------------------------------------------------------


def _resolution_context(
    session: Session, tournament: Tournament, diagnostics: Diagnostics, persist: bool
) -> Tuple[ResolutionContext, List[Match], List[TieCondition]]:
    templates = load_bracket_templates(session, tournament)
    if not templates:
        raise TemplatesNotFoundError(
            f"No bracket-phase templates for format {tournament.format_id} (tournament {tournament.id})"
        )
    overrides = load_overrides(session, tournament.id)
    required = required_positions_by_block(effective_sources(templates, overrides))

    outcomes: List[BlockOutcome] = []
    ties: List[TieCondition] = []
    for block in load_blocks(session, tournament.id, PHASE_PRELIMINARY):
        standings, completion = _current_ranking(session, block, diagnostics, persist)
        positions = required_positions_for(block.block_name, required)
        if completion.is_complete:
            eligibility = analyze_promotion_eligibility(block.block_name, standings, positions, diagnostics)
            ties.extend(eligibility.ties)
            if persist:
                sync_tie_notification(session, tournament.id, eligibility)
        else:
            eligibility = PromotionEligibility(block_name=block.block_name, required_positions=positions)
            diagnostics.emit(
                BLOCK_INCOMPLETE,
                block=block.block_name,
                settled=completion.settled,
                total=completion.total,
            )
        outcomes.append(
            BlockOutcome(
                block_name=block.block_name,
                is_complete=completion.is_complete,
                standings=tuple(standings),
                eligibility=eligibility,
            )
        )

    bracket_rows = load_bracket_matches(session, tournament.id)
    context = ResolutionContext(
        templates=templates,
        overrides=overrides,
        blocks=outcomes,
        bracket_matches=[to_match_result(m) for m in bracket_rows],
        team_names=load_team_names(session, tournament.id),
    )
    return context, bracket_rows, ties


def _advance_byes(
    context: ResolutionContext, result: ResolutionResult, bracket_rows: List[Match]
) -> List[str]:
    """Confirm bracket matches that pair a resolved team with a BYE as walkovers."""
    templates: Dict[str, TemplateEntry] = {t.match_code: t for t in context.templates}
    advanced: List[str] = []
    for match in bracket_rows:
        template = templates.get(match.match_code)
        if template is None or (match.is_confirmed and not match.is_walkover):
            continue
        override = context.overrides.get(match.match_code)
        byes = {
            side
            for side in (SIDE_TEAM1, SIDE_TEAM2)
            if isinstance(try_parse_slot(effective_source(template, override, side)), Bye)
        }
        if len(byes) != 1:
            continue
        side = SIDE_TEAM2 if SIDE_TEAM1 in byes else SIDE_TEAM1
        team = result.expected.get((match.match_code, side))
        if team is None or (match.is_confirmed and match.winner_team_id == team.team_id):
            continue
        match.winner_team_id = team.team_id
        match.is_walkover = True
        match.is_draw = False
        match.status = MATCH_COMPLETED
        match.is_confirmed = True
        match.confirmed_at = datetime.utcnow()
        advanced.append(match.match_code)
    return advanced


def _rank_final_blocks(session: Session, tournament: Tournament, diagnostics: Diagnostics) -> None:
    """Placings of the bracket block from the templates' winner/loser positions."""
    rules = load_placement_rules(session, tournament)
    if not any(r.assigns_places for r in rules):
        return
    names = load_team_names(session, tournament.id)
    for block in load_blocks(session, tournament.id, PHASE_FINAL):
        if block.ranking_source == RANKING_SOURCE_MANUAL:
            diagnostics.emit(RANKING_MANUAL_KEPT, block=block.block_name)
            continue
        results = [to_match_result(m) for m in load_block_matches(session, block.id)]
        placings = rank_final_block(rules, results, names, diagnostics, block.block_name)
        _store_ranking(block, placings, RANKING_SOURCE_COMPUTED)
        session.add(block)


def _promote(session: Session, tournament: Tournament, diagnostics: Diagnostics) -> PromotionRun:
    """Resolve and write bracket slots until nothing more moves.

    A BYE walkover confirmed along the way releases a new ``_winner`` slot,
    so resolution repeats. A pass only repeats when it settled a BYE match
    differently, which bounds the loop by the bracket size.
    """
    run: Optional[PromotionRun] = None
    while True:
        context, bracket_rows, ties = _resolution_context(session, tournament, diagnostics, persist=True)
        result = resolve_with_fallback(context, diagnostics=diagnostics)
        changes = write_bracket_assignments(session, bracket_rows, result.expected, diagnostics, commit=False)
        advanced = _advance_byes(context, result, bracket_rows)
        if run is None:
            run = PromotionRun(tournament_id=tournament.id, strategy=result.strategy)
        run.strategy = result.strategy
        run.changes.extend(changes)
        run.ties = ties
        run.unresolved = result.unresolved
        run.auto_advanced.extend(advanced)
        session.flush()
        if not advanced:
            break

    _rank_final_blocks(session, tournament, diagnostics)
    logger.info(
        "Promotion for tournament %s: strategy=%s changes=%d ties=%d unresolved=%d",
        tournament.id,
        run.strategy,
        len(run.changes),
        len(run.ties),
        len(run.unresolved),
    )
    return run


def _promote_if_bracket(session: Session, tournament: Tournament, diagnostics: Diagnostics) -> Optional[PromotionRun]:
    """Promotion after a result change; formats without a bracket only rank blocks."""
    if not load_bracket_templates(session, tournament):
        logger.info("Tournament %s has no bracket-phase templates; promotion skipped", tournament.id)
        return None
    return _promote(session, tournament, diagnostics)


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------


def _get_block(session: Session, tournament_id: int, block_id: int) -> MatchBlock:
    block = session.get(MatchBlock, block_id)
    if block is None or block.tournament_id != tournament_id:
        raise NotFoundError(f"Block {block_id} not found in tournament {tournament_id}")
    return block


def recalculate_tournament(
    session: Session, tournament_id: int, diagnostics: Optional[Diagnostics] = None
) -> TournamentRecalculation:
    """Recompute every preliminary block, then promote."""
    diagnostics = diagnostics or default_diagnostics()
    with _tournament_transaction(session, tournament_id) as tournament:
        out = _recalculate_all(session, tournament, diagnostics)
    return out


def _recalculate_all(session: Session, tournament: Tournament, diagnostics: Diagnostics) -> TournamentRecalculation:
    out = TournamentRecalculation(tournament_id=tournament.id)
    for block in load_blocks(session, tournament.id, PHASE_PRELIMINARY):
        out.blocks.append(_recompute_block(session, block, diagnostics))
    session.flush()
    out.promotion = _promote_if_bracket(session, tournament, diagnostics)
    return out


def recalculate_block(
    session: Session, tournament_id: int, block_id: int, diagnostics: Optional[Diagnostics] = None
) -> Tuple[BlockRecalculation, Optional[PromotionRun]]:
    """Re-rank one block and promote. A bracket block is re-placed by the promotion pass."""
    diagnostics = diagnostics or default_diagnostics()
    with _tournament_transaction(session, tournament_id) as tournament:
        block = _get_block(session, tournament_id, block_id)
        if block.phase != PHASE_FINAL:
            recalculated = _recompute_block(session, block, diagnostics)
            session.flush()
            run = _promote_if_bracket(session, tournament, diagnostics)
        else:
            run = _promote_if_bracket(session, tournament, diagnostics)
            session.flush()
            snapshot = load_ranking(block.team_rankings, block.ranking_source, diagnostics, block.block_name)
            results = [to_match_result(m) for m in load_block_matches(session, block.id)]
            recalculated = BlockRecalculation(
                block_id=block.id,
                block_name=block.block_name,
                standings=snapshot.standings or [],
                ranking_source=block.ranking_source,
                completion=detect_block_completion(results),
            )
    return recalculated, run


def promote_tournament(
    session: Session, tournament_id: int, diagnostics: Optional[Diagnostics] = None
) -> PromotionRun:
    """Resolve and write bracket participants. Raises TemplatesNotFoundError without templates."""
    diagnostics = diagnostics or default_diagnostics()
    with _tournament_transaction(session, tournament_id) as tournament:
        run = _promote(session, tournament, diagnostics)
    return run


def apply_bracket_fix(
    session: Session, tournament_id: int, diagnostics: Optional[Diagnostics] = None
) -> PromotionRun:
    """Write the participants the validation report expects."""
    return promote_tournament(session, tournament_id, diagnostics)


def validate_tournament_bracket(
    session: Session, tournament_id: int, diagnostics: Optional[Diagnostics] = None
) -> ValidationReport:
    """Drift report; reads only, nothing is written."""
    diagnostics = diagnostics or default_diagnostics()
    tournament = session.get(Tournament, tournament_id)
    if tournament is None:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    context, bracket_rows, _ = _resolution_context(session, tournament, diagnostics, persist=False)
    result = resolve_with_fallback(context, diagnostics=diagnostics)
    return validate_bracket(
        result.expected,
        [to_bracket_state(m) for m in bracket_rows],
        {t.match_code: t for t in context.templates},
        diagnostics,
    )


def _settle(
    session: Session, tournament: Tournament, match: Match, diagnostics: Diagnostics
) -> TournamentRecalculation:
    out = TournamentRecalculation(tournament_id=tournament.id)
    block = session.get(MatchBlock, match.match_block_id)
    if block is not None and block.phase != PHASE_FINAL:
        out.blocks.append(_recompute_block(session, block, diagnostics))
    session.flush()
    out.promotion = _promote_if_bracket(session, tournament, diagnostics)
    return out


POINT_RULE_FIELDS = (
    "win_points",
    "draw_points",
    "loss_points",
    "walkover_winner_goals",
    "walkover_loser_goals",
)


def update_point_rules(
    session: Session,
    tournament_id: int,
    values: Mapping[str, int],
    diagnostics: Optional[Diagnostics] = None,
) -> Tuple[TournamentPointRules, TournamentRecalculation]:
    """Upsert point rules and re-rank every block under them."""
    diagnostics = diagnostics or default_diagnostics()
    unknown = set(values) - set(POINT_RULE_FIELDS)
    if unknown:
        raise InvalidResultError(f"Unknown point rule fields: {sorted(unknown)}")

    with _tournament_transaction(session, tournament_id) as tournament:
        row = session.exec(
            select(TournamentPointRules).where(TournamentPointRules.tournament_id == tournament_id)
        ).first()
        if row is None:
            row = TournamentPointRules(tournament_id=tournament_id)
        for name, value in values.items():
            setattr(row, name, value)
        row.updated_at = datetime.utcnow()
        session.add(row)
        session.flush()
        logger.info("Point rules updated for tournament %s", tournament_id)
        out = _recalculate_all(session, tournament, diagnostics)

    session.refresh(row)
    return row, out


def _require_template(session: Session, tournament: Tournament, match_code: str) -> None:
    if not any(t.match_code == match_code for t in load_bracket_templates(session, tournament)):
        raise NotFoundError(f"No bracket template for match code {match_code}")


def _find_override(session: Session, tournament_id: int, match_code: str) -> Optional[MatchOverride]:
    return session.exec(
        select(MatchOverride).where(
            MatchOverride.tournament_id == tournament_id,
            MatchOverride.match_code == match_code,
        )
    ).first()


def save_match_override(
    session: Session,
    tournament_id: int,
    match_code: str,
    team1_source: Optional[str],
    team2_source: Optional[str],
    reason: Optional[str] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> Tuple[MatchOverride, Optional[PromotionRun]]:
    """Replace one match's source keys and re-promote with them."""
    diagnostics = diagnostics or default_diagnostics()
    with _tournament_transaction(session, tournament_id) as tournament:
        _require_template(session, tournament, match_code)
        now = datetime.utcnow()
        row = _find_override(session, tournament_id, match_code)
        if row is None:
            row = MatchOverride(tournament_id=tournament_id, match_code=match_code, created_at=now)
        row.team1_source_override = team1_source or None
        row.team2_source_override = team2_source or None
        row.reason = reason
        row.updated_at = now
        session.add(row)
        session.flush()
        logger.info("Source override saved for tournament %s match %s", tournament_id, match_code)
        run = _promote_if_bracket(session, tournament, diagnostics)

    session.refresh(row)
    return row, run


def remove_match_override(
    session: Session,
    tournament_id: int,
    match_code: str,
    diagnostics: Optional[Diagnostics] = None,
) -> Optional[PromotionRun]:
    """Drop one match's override and re-promote from the template sources."""
    diagnostics = diagnostics or default_diagnostics()
    with _tournament_transaction(session, tournament_id) as tournament:
        row = _find_override(session, tournament_id, match_code)
        if row is None:
            raise NotFoundError(f"No override for match code {match_code}")
        session.delete(row)
        session.flush()
        logger.info("Source override removed for tournament %s match %s", tournament_id, match_code)
        run = _promote_if_bracket(session, tournament, diagnostics)
    return run


RESULT_FIELDS = (
    "team1_score",
    "team2_score",
    "winner_team_id",
    "is_draw",
    "is_walkover",
    "status",
    "is_confirmed",
)


def record_match_result(
    session: Session,
    tournament_id: int,
    match_id: int,
    changes: Mapping[str, Any],
    diagnostics: Optional[Diagnostics] = None,
) -> Tuple[Match, TournamentRecalculation]:
    """Update a match result and run the settlement chain in the same transaction."""
    diagnostics = diagnostics or default_diagnostics()
    unknown = set(changes) - set(RESULT_FIELDS)
    if unknown:
        raise InvalidResultError(f"Unknown result fields: {sorted(unknown)}")

    with _tournament_transaction(session, tournament_id) as tournament:
        match = session.get(Match, match_id)
        if match is None or match.tournament_id != tournament_id:
            raise NotFoundError(f"Match {match_id} not found in tournament {tournament_id}")

        was_confirmed = bool(match.is_confirmed)
        for name, value in changes.items():
            setattr(match, name, value)

        if match.status not in MATCH_STATUSES:
            raise InvalidResultError(f"Invalid status {match.status!r}")
        if match.is_draw:
            match.winner_team_id = None
        elif match.winner_team_id is not None and match.winner_team_id not in (match.team1_id, match.team2_id):
            raise InvalidResultError(f"Winner {match.winner_team_id} is not playing match {match.match_code}")
        if match.is_confirmed and match.status != MATCH_CANCELLED:
            if match.team1_id is None or match.team2_id is None:
                raise InvalidResultError(f"Match {match.match_code} has unresolved participants")
            if not match.is_draw and match.winner_team_id is None:
                raise InvalidResultError("A confirmed match needs a winner or a draw")

        if match.is_confirmed and not was_confirmed:
            match.confirmed_at = datetime.utcnow()
        elif not match.is_confirmed:
            match.confirmed_at = None
        match.updated_at = datetime.utcnow()
        session.add(match)

        out = _settle(session, tournament, match, diagnostics)

    session.refresh(match)
    return match, out


def set_manual_ranking(
    session: Session,
    tournament_id: int,
    block_id: int,
    positions: Mapping[int, int],
    diagnostics: Optional[Diagnostics] = None,
) -> Tuple[BlockRecalculation, Optional[PromotionRun]]:
    """Store an operator ranking for a block and re-run promotion."""
    diagnostics = diagnostics or default_diagnostics()
    with _tournament_transaction(session, tournament_id) as tournament:
        block = _get_block(session, tournament_id, block_id)
        ranked, completion = _computed_ranking(session, block, diagnostics)
        manual = build_manual_ranking(ranked, positions)
        _store_ranking(block, manual, RANKING_SOURCE_MANUAL)
        session.add(block)
        session.flush()
        logger.info("Manual ranking stored for tournament %s block %s", tournament_id, block.block_name)
        run = _promote_if_bracket(session, tournament, diagnostics)
        recalculated = BlockRecalculation(
            block_id=block.id,
            block_name=block.block_name,
            standings=manual,
            ranking_source=RANKING_SOURCE_MANUAL,
            completion=completion,
        )
    return recalculated, run
