from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.match import Match
    from app.models.tournament import Tournament


class Team(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "name", name="uq_tournament_team_name"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str  # Display name used in standings and bracket slots
    abbreviation: Optional[str] = Field(default=None)
    # Preliminary block this team plays in ("A", "B", ...); null until drawn
    assigned_block: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="teams")
    matches_as_team1: List["Match"] = Relationship(
        back_populates="team1", sa_relationship_kwargs={"foreign_keys": "Match.team1_id"}
    )
    matches_as_team2: List["Match"] = Relationship(
        back_populates="team2", sa_relationship_kwargs={"foreign_keys": "Match.team2_id"}
    )
