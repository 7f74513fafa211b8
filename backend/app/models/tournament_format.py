from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from app.models.match_template import MatchTemplate
    from app.models.tournament import Tournament


class TournamentFormat(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    templates: List["MatchTemplate"] = Relationship(back_populates="format")
    tournaments: List["Tournament"] = Relationship(back_populates="format")
