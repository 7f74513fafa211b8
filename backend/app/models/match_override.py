from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class MatchOverride(SQLModel, table=True):
    """Per-tournament replacement of a template's slot sources."""

    __table_args__ = (SAUniqueConstraint("tournament_id", "match_code", name="uq_override_tournament_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    match_code: str
    team1_source_override: Optional[str] = None
    team2_source_override: Optional[str] = None
    reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
