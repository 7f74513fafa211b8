"""
Match results. Confirming, cancelling or un-confirming a match is a
settlement: the block is re-ranked and the bracket re-promoted in the
same request.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from app.database import get_session
from app.models.match import Match
from app.models.tournament import Tournament
from app.routes.errors import http_error
from app.routes.standings import PromotionSummary, promotion_summary
from app.services.errors import PromotionError
from app.services.promotion_service import record_match_result

router = APIRouter()

# Fields a client may reset to null
_CLEARABLE = {"team1_score", "team2_score", "winner_team_id"}


class MatchResultUpdate(BaseModel):
    team1_score: Optional[str] = None
    team2_score: Optional[str] = None
    winner_team_id: Optional[int] = None
    is_draw: Optional[bool] = None
    is_walkover: Optional[bool] = None
    status: Optional[str] = None
    is_confirmed: Optional[bool] = None


class MatchState(BaseModel):
    id: int
    tournament_id: int
    match_block_id: int
    match_code: str
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    team1_display_name: str
    team2_display_name: str
    team1_score: Optional[str] = None
    team2_score: Optional[str] = None
    winner_team_id: Optional[int] = None
    is_draw: bool
    is_walkover: bool
    status: str
    is_confirmed: bool
    confirmed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MatchResultResponse(BaseModel):
    match: MatchState
    recalculated_blocks: List[str] = []
    promotion: Optional[PromotionSummary] = None


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchState])
def list_matches(tournament_id: int, session: Session = Depends(get_session)):
    if not session.get(Tournament, tournament_id):
        raise HTTPException(status_code=404, detail="Tournament not found")
    matches = session.exec(
        select(Match).where(Match.tournament_id == tournament_id).order_by(Match.match_code)
    ).all()
    return [MatchState.model_validate(m) for m in matches]


@router.patch(
    "/tournaments/{tournament_id}/matches/{match_id}/result",
    response_model=MatchResultResponse,
)
def update_match_result(
    tournament_id: int,
    match_id: int,
    payload: MatchResultUpdate,
    session: Session = Depends(get_session),
):
    """Record score/winner/draw/walkover/status/confirmation. Only sent fields change."""
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in _CLEARABLE
    }
    try:
        match, result = record_match_result(session, tournament_id, match_id, changes)
    except PromotionError as exc:
        raise http_error(exc)

    return MatchResultResponse(
        match=MatchState.model_validate(match),
        recalculated_blocks=[b.block_name for b in result.blocks],
        promotion=promotion_summary(result.promotion),
    )
