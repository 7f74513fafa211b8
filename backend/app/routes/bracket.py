"""
Bracket phase: drift validation, explicit fix, per-tournament source
overrides and the open manual-ranking notifications.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from app.database import get_session
from app.models.match_override import MatchOverride
from app.models.tournament import Tournament
from app.routes.errors import http_error
from app.routes.standings import PromotionSummary, promotion_summary
from app.services.bracket_validation import ValidationReport
from app.services.errors import PromotionError
from app.services.promotion_service import (
    apply_bracket_fix,
    remove_match_override,
    save_match_override,
    validate_tournament_bracket,
)
from app.services.promotion_slots import InvalidSlotKey, parse_slot
from app.services.tie_notifications import list_open_notifications

router = APIRouter()


class MatchOverrideUpsert(BaseModel):
    team1_source_override: Optional[str] = None
    team2_source_override: Optional[str] = None
    reason: Optional[str] = None


class MatchOverrideResponse(BaseModel):
    id: int
    tournament_id: int
    match_code: str
    team1_source_override: Optional[str] = None
    team2_source_override: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    promotion: Optional[PromotionSummary] = None

    class Config:
        from_attributes = True


class NotificationResponse(BaseModel):
    id: int
    notification_type: str
    title: str
    message: str
    severity: str
    payload: Optional[Dict[str, Any]] = None
    is_resolved: bool
    created_at: datetime

    class Config:
        from_attributes = True


def _get_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


@router.get("/tournaments/{tournament_id}/bracket/validation", response_model=ValidationReport)
def get_bracket_validation(tournament_id: int, session: Session = Depends(get_session)):
    """Compare stored bracket participants with the expected ones. Read-only."""
    try:
        return validate_tournament_bracket(session, tournament_id)
    except PromotionError as exc:
        raise http_error(exc)


@router.post("/tournaments/{tournament_id}/bracket/apply", response_model=PromotionSummary)
def post_bracket_apply(tournament_id: int, session: Session = Depends(get_session)):
    """Write the expected participants into the bracket, confirmed matches included."""
    try:
        run = apply_bracket_fix(session, tournament_id)
    except PromotionError as exc:
        raise http_error(exc)
    return promotion_summary(run)


@router.get("/tournaments/{tournament_id}/match-overrides", response_model=List[MatchOverrideResponse])
def list_match_overrides(tournament_id: int, session: Session = Depends(get_session)):
    _get_tournament(session, tournament_id)
    rows = session.exec(
        select(MatchOverride)
        .where(MatchOverride.tournament_id == tournament_id)
        .order_by(MatchOverride.match_code)
    ).all()
    return [MatchOverrideResponse.model_validate(r) for r in rows]


@router.put(
    "/tournaments/{tournament_id}/match-overrides/{match_code}",
    response_model=MatchOverrideResponse,
)
def upsert_match_override(
    tournament_id: int,
    match_code: str,
    payload: MatchOverrideUpsert,
    session: Session = Depends(get_session),
):
    """Replace a template's source keys for one match and re-promote the bracket."""
    _get_tournament(session, tournament_id)
    for value in (payload.team1_source_override, payload.team2_source_override):
        try:
            parse_slot(value)
        except InvalidSlotKey as exc:
            raise HTTPException(status_code=422, detail=str(exc))

    try:
        row, run = save_match_override(
            session,
            tournament_id,
            match_code,
            payload.team1_source_override,
            payload.team2_source_override,
            payload.reason,
        )
    except PromotionError as exc:
        raise http_error(exc)

    response = MatchOverrideResponse.model_validate(row)
    response.promotion = promotion_summary(run)
    return response


@router.delete("/tournaments/{tournament_id}/match-overrides/{match_code}")
def delete_match_override(tournament_id: int, match_code: str, session: Session = Depends(get_session)):
    _get_tournament(session, tournament_id)
    try:
        run = remove_match_override(session, tournament_id, match_code)
    except PromotionError as exc:
        raise http_error(exc)
    summary = promotion_summary(run)
    return {
        "deleted": True,
        "match_code": match_code,
        "promotion": summary.model_dump() if summary else None,
    }


@router.get("/tournaments/{tournament_id}/notifications", response_model=List[NotificationResponse])
def get_open_notifications(tournament_id: int, session: Session = Depends(get_session)):
    _get_tournament(session, tournament_id)
    return [NotificationResponse.model_validate(n) for n in list_open_notifications(session, tournament_id)]
