from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from debate_draw.models.judge import Judge
    from debate_draw.models.round import Round
    from debate_draw.models.team import Team


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    format: str = Field(default="bp")  # format code, see services/format_catalog.py
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    teams: List["Team"] = Relationship(back_populates="tournament")
    judges: List["Judge"] = Relationship(back_populates="tournament")
    rounds: List["Round"] = Relationship(back_populates="tournament")
