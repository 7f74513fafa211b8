"""Operator-facing conditions raised by the engine (delivery happens elsewhere)."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, SQLModel

NOTIFICATION_MANUAL_RANKING = "manual_ranking_needed"


class TournamentNotification(SQLModel, table=True):
    __tablename__ = "tournament_notification"

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    notification_type: str  # manual_ranking_needed
    title: str
    message: str
    severity: str = Field(default="warning")  # info|warning|error
    # block_name, tied_teams, required_positions
    payload: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    is_resolved: bool = Field(default=False)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    resolved_at: Optional[datetime] = Field(default=None)
