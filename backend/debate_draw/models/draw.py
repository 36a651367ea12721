from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from debate_draw.models.generation_history import DrawGenerationHistory
    from debate_draw.models.round import Round

DRAW_STATUS_PENDING = "pending"
DRAW_STATUS_IN_PROGRESS = "in_progress"
DRAW_STATUS_COMPLETED = "completed"


class Draw(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    round_id: int = Field(foreign_key="round.id", index=True)
    room: str
    room_index: int  # position of the room label in the round's room list
    judge_id: Optional[int] = Field(default=None, foreign_key="judge.id")
    status: str = Field(default=DRAW_STATUS_PENDING)  # "pending" | "in_progress" | "completed"
    generation_history_id: Optional[int] = Field(default=None, foreign_key="draw_generation_history.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})

    # Relationships
    round: "Round" = Relationship(back_populates="draws")
    generation: Optional["DrawGenerationHistory"] = Relationship(back_populates="draws")
    slots: List["DrawSlot"] = Relationship(
        back_populates="draw",
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "DrawSlot.position"},
    )


class DrawSlot(SQLModel, table=True):
    """
    One role slot of a draw (e.g. "OG" or "Proposition").

    Slots are variable-arity: a two-team format stores two rows, a four-team
    format four. Swing teams are never Team rows, so team_id is NULL and
    swing_name carries the placeholder's display name.
    """

    __tablename__ = "draw_slot"
    __table_args__ = (SAUniqueConstraint("draw_id", "position", name="uq_draw_slot_position"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    draw_id: int = Field(foreign_key="draw.id", index=True)
    position: int
    role: str
    team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    swing_name: Optional[str] = Field(default=None)

    # Relationships
    draw: "Draw" = Relationship(back_populates="slots")

    @property
    def is_swing(self) -> bool:
        return self.team_id is None and self.swing_name is not None
