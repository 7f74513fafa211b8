"""
Block standings: read the stored snapshots, force a recalculation of the
tournament or one block, set a manual ranking, and edit the tournament's
point rules.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from app.database import get_session
from app.models.match_block import MatchBlock
from app.models.tournament import Tournament
from app.models.tournament_point_rules import TournamentPointRules
from app.routes.errors import http_error
from app.services.block_completion import detect_block_completion
from app.services.errors import PromotionError
from app.services.match_source import load_block_matches, to_match_result
from app.services.promotion_service import (
    BlockRecalculation,
    PromotionRun,
    recalculate_block,
    recalculate_tournament,
    set_manual_ranking,
    update_point_rules,
)
from app.services.ranking_store import TeamStandingRecord, dump_ranking, load_ranking
from app.services.standings_calculator import DEFAULT_POINT_RULES, TeamStanding

router = APIRouter()


class BlockStandings(BaseModel):
    block_id: int
    block_name: str
    phase: str
    ranking_source: str
    is_complete: bool
    settled_matches: int
    total_matches: int
    standings: List[TeamStandingRecord]


class PromotionSummary(BaseModel):
    strategy: str
    changed_slots: int
    overwritten_confirmed: int
    unresolved_slots: int
    tied_blocks: List[str]
    auto_advanced: List[str] = []


class RecalculateResponse(BaseModel):
    blocks: List[BlockStandings]
    promotion: Optional[PromotionSummary] = None


class ManualRankingEntry(BaseModel):
    team_id: int
    position: int


class ManualRankingRequest(BaseModel):
    rankings: List[ManualRankingEntry]


class BlockUpdateResponse(BaseModel):
    block: BlockStandings
    promotion: Optional[PromotionSummary] = None


class PointRulesUpdate(BaseModel):
    win_points: Optional[int] = None
    draw_points: Optional[int] = None
    loss_points: Optional[int] = None
    walkover_winner_goals: Optional[int] = None
    walkover_loser_goals: Optional[int] = None


class PointRulesPayload(BaseModel):
    win_points: int = DEFAULT_POINT_RULES.win
    draw_points: int = DEFAULT_POINT_RULES.draw
    loss_points: int = DEFAULT_POINT_RULES.loss
    walkover_winner_goals: int = DEFAULT_POINT_RULES.walkover_winner_goals
    walkover_loser_goals: int = DEFAULT_POINT_RULES.walkover_loser_goals

    class Config:
        from_attributes = True


def _records(standings: List[TeamStanding]) -> List[TeamStandingRecord]:
    return [TeamStandingRecord.model_validate(item) for item in dump_ranking(standings)]


def _block_from_recalculation(block: MatchBlock, recalculated: BlockRecalculation) -> BlockStandings:
    return BlockStandings(
        block_id=block.id,
        block_name=block.block_name,
        phase=block.phase,
        ranking_source=recalculated.ranking_source,
        is_complete=recalculated.completion.is_complete,
        settled_matches=recalculated.completion.settled,
        total_matches=recalculated.completion.total,
        standings=_records(recalculated.standings),
    )


def promotion_summary(run: Optional[PromotionRun]) -> Optional[PromotionSummary]:
    if run is None:
        return None
    return PromotionSummary(
        strategy=run.strategy,
        changed_slots=len(run.changes),
        overwritten_confirmed=sum(1 for c in run.changes if c.was_confirmed),
        unresolved_slots=len(run.unresolved),
        tied_blocks=sorted({t.block_name for t in run.ties}),
        auto_advanced=run.auto_advanced,
    )


@router.get("/tournaments/{tournament_id}/standings", response_model=List[BlockStandings])
def get_standings(tournament_id: int, session: Session = Depends(get_session)):
    """Stored ranking snapshot of every block. Blocks never ranked show no rows."""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")

    blocks = session.exec(
        select(MatchBlock)
        .where(MatchBlock.tournament_id == tournament_id)
        .order_by(MatchBlock.phase.desc(), MatchBlock.block_name)
    ).all()

    out: List[BlockStandings] = []
    for block in blocks:
        snapshot = load_ranking(block.team_rankings, block.ranking_source, block_name=block.block_name)
        completion = detect_block_completion(to_match_result(m) for m in load_block_matches(session, block.id))
        out.append(
            BlockStandings(
                block_id=block.id,
                block_name=block.block_name,
                phase=block.phase,
                ranking_source=block.ranking_source,
                is_complete=completion.is_complete,
                settled_matches=completion.settled,
                total_matches=completion.total,
                standings=[] if snapshot.is_absent else _records(snapshot.standings),
            )
        )
    return out


@router.post("/tournaments/{tournament_id}/recalculate-standings", response_model=RecalculateResponse)
def recalculate_standings(tournament_id: int, session: Session = Depends(get_session)):
    try:
        result = recalculate_tournament(session, tournament_id)
    except PromotionError as exc:
        raise http_error(exc)

    blocks = [
        _block_from_recalculation(session.get(MatchBlock, b.block_id), b) for b in result.blocks
    ]
    return RecalculateResponse(blocks=blocks, promotion=promotion_summary(result.promotion))


@router.put(
    "/tournaments/{tournament_id}/blocks/{block_id}/manual-ranking",
    response_model=BlockUpdateResponse,
)
def put_manual_ranking(
    tournament_id: int,
    block_id: int,
    payload: ManualRankingRequest,
    session: Session = Depends(get_session),
):
    """Set positions by hand (e.g. after drawing lots) and re-run promotion."""
    positions = {}
    for entry in payload.rankings:
        if entry.team_id in positions:
            raise HTTPException(status_code=422, detail=f"Team {entry.team_id} listed twice")
        positions[entry.team_id] = entry.position

    try:
        recalculated, run = set_manual_ranking(session, tournament_id, block_id, positions)
    except PromotionError as exc:
        raise http_error(exc)

    block = session.get(MatchBlock, block_id)
    return BlockUpdateResponse(
        block=_block_from_recalculation(block, recalculated),
        promotion=promotion_summary(run),
    )


@router.post(
    "/tournaments/{tournament_id}/blocks/{block_id}/recalculate",
    response_model=BlockUpdateResponse,
)
def recalculate_block_standings(tournament_id: int, block_id: int, session: Session = Depends(get_session)):
    try:
        recalculated, run = recalculate_block(session, tournament_id, block_id)
    except PromotionError as exc:
        raise http_error(exc)

    block = session.get(MatchBlock, block_id)
    return BlockUpdateResponse(
        block=_block_from_recalculation(block, recalculated),
        promotion=promotion_summary(run),
    )


@router.get("/tournaments/{tournament_id}/point-rules", response_model=PointRulesPayload)
def get_point_rules(tournament_id: int, session: Session = Depends(get_session)):
    if not session.get(Tournament, tournament_id):
        raise HTTPException(status_code=404, detail="Tournament not found")
    row = session.exec(
        select(TournamentPointRules).where(TournamentPointRules.tournament_id == tournament_id)
    ).first()
    return PointRulesPayload.model_validate(row) if row else PointRulesPayload()


@router.put("/tournaments/{tournament_id}/point-rules", response_model=PointRulesPayload)
def put_point_rules(
    tournament_id: int,
    payload: PointRulesUpdate,
    session: Session = Depends(get_session),
):
    """Upsert point rules; every block is re-ranked and the bracket re-promoted."""
    values = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}
    try:
        row, _ = update_point_rules(session, tournament_id, values)
    except PromotionError as exc:
        raise http_error(exc)
    return PointRulesPayload.model_validate(row)
