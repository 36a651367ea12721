from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from debate_draw.models.draw import Draw
    from debate_draw.models.tournament import Tournament


class Round(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "round_number", name="uq_tournament_round_number"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_number: int
    motion: Optional[str] = Field(default=None)
    rooms: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))

    # Bumped on every committed generation/rollback; compared-and-swapped to serialise writers
    generation_version: int = Field(default=0)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="rounds")
    draws: List["Draw"] = Relationship(back_populates="round")
