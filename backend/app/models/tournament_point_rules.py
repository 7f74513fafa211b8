"""Per-tournament points and walkover scoring."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class TournamentPointRules(SQLModel, table=True):
    __tablename__ = "tournament_point_rules"

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", unique=True, index=True)

    win_points: int = Field(default=3)
    draw_points: int = Field(default=1)
    loss_points: int = Field(default=0)
    walkover_winner_goals: int = Field(default=3)
    walkover_loser_goals: int = Field(default=0)

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
