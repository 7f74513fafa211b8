from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.tournament_format import TournamentFormat


class MatchTemplate(SQLModel, table=True):
    """Format-level declaration of which slot feeds which match side."""

    __table_args__ = (SAUniqueConstraint("format_id", "match_code", name="uq_template_format_code"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    format_id: int = Field(foreign_key="tournamentformat.id", index=True)
    phase: str  # "preliminary" | "final"
    block_name: Optional[str] = None
    match_code: str

    # Slot keys: "A_1", "M5_winner", "M5_loser", "BYE"
    team1_source: Optional[str] = None
    team2_source: Optional[str] = None
    # Placeholder labels written into matches before promotion
    team1_display_name: str
    team2_display_name: str

    round_index: int = Field(default=1)
    round_name: Optional[str] = None

    # Final placings handed out when this match is settled
    winner_position: Optional[int] = None
    loser_position_start: Optional[int] = None
    loser_position_end: Optional[int] = None
    position_note: Optional[str] = None

    format: "TournamentFormat" = Relationship(back_populates="templates")
