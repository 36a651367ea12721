from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from debate_draw.models.tournament import Tournament


class Team(SQLModel, table=True):
    __table_args__ = (
        # Team names are unique within a tournament
        SAUniqueConstraint("tournament_id", "name", name="uq_tournament_team_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    institution: Optional[str] = Field(default=None)
    speakers: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    experience_level: Optional[str] = Field(default=None)  # novice | intermediate | open | pro
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    tournament: "Tournament" = Relationship(back_populates="teams")
