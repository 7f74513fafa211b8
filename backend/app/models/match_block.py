from datetime import datetime
from typing import TYPE_CHECKING, Any, List, Optional

from sqlalchemy import JSON, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.match import Match
    from app.models.tournament import Tournament

PHASE_PRELIMINARY = "preliminary"
PHASE_FINAL = "final"

RANKING_SOURCE_COMPUTED = "computed"
RANKING_SOURCE_MANUAL = "manual"


class MatchBlock(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "phase", "block_name", name="uq_tournament_phase_block"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    phase: str = Field(default=PHASE_PRELIMINARY)  # "preliminary" | "final"
    block_name: str
    display_round_name: Optional[str] = None

    # Ranking snapshot: list of TeamStanding dicts, always written as one value.
    # Read through app.services.ranking_store, never parsed ad hoc.
    team_rankings: Optional[Any] = Field(default=None, sa_column=Column(JSON, nullable=True))
    ranking_source: str = Field(default=RANKING_SOURCE_COMPUTED)  # "computed" | "manual"
    remarks: Optional[str] = None
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="blocks")
    matches: List["Match"] = Relationship(back_populates="block")
