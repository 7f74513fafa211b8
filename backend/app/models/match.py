from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.match_block import MatchBlock
    from app.models.team import Team
    from app.models.tournament import Tournament

MATCH_SCHEDULED = "scheduled"
MATCH_ONGOING = "ongoing"
MATCH_COMPLETED = "completed"
MATCH_CANCELLED = "cancelled"

MATCH_STATUSES = (MATCH_SCHEDULED, MATCH_ONGOING, MATCH_COMPLETED, MATCH_CANCELLED)


class Match(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "match_code", name="uq_match_tournament_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    match_block_id: int = Field(foreign_key="matchblock.id", index=True)
    match_code: str

    # Participants (nullable until promoted into this match)
    team1_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team2_id: Optional[int] = Field(default=None, foreign_key="team.id")

    # Display text: a team name once resolved, otherwise the template label (e.g. "A1位")
    team1_display_name: str
    team2_display_name: str

    # Scores may be per-period, comma separated ("1,0,2")
    team1_score: Optional[str] = Field(default=None)
    team2_score: Optional[str] = Field(default=None)
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    is_draw: bool = Field(default=False)
    is_walkover: bool = Field(default=False)

    status: str = Field(default=MATCH_SCHEDULED)  # "scheduled" | "ongoing" | "completed" | "cancelled"
    is_confirmed: bool = Field(default=False)
    confirmed_at: Optional[datetime] = Field(default=None)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="matches")
    block: "MatchBlock" = Relationship(back_populates="matches")
    team1: Optional["Team"] = Relationship(
        back_populates="matches_as_team1", sa_relationship_kwargs={"foreign_keys": "Match.team1_id"}
    )
    team2: Optional["Team"] = Relationship(
        back_populates="matches_as_team2", sa_relationship_kwargs={"foreign_keys": "Match.team2_id"}
    )
