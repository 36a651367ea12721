from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from debate_draw.models.draw import Draw


class DrawGenerationHistory(SQLModel, table=True):
    __tablename__ = "draw_generation_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_id: int = Field(foreign_key="round.id", index=True)
    generation_method: str = Field(default="random")
    generation_params: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    # Rooms exactly as generated, used to restore them on rollback
    snapshot: Optional[List[Dict[str, Any]]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    generated_by: Optional[str] = None
    is_current: bool = Field(default=True, index=True)

    # Relationships
    draws: List["Draw"] = Relationship(back_populates="generation")
