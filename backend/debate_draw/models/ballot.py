"""
Ballot Model - owned by the ballot-entry subsystem.

Only the status columns are read here: round completion is gated on every
draw having a confirmed ballot.
"""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

BALLOT_STATUS_DRAFT = "draft"
BALLOT_STATUS_SUBMITTED = "submitted"
BALLOT_STATUS_CONFIRMED = "confirmed"


class Ballot(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    draw_id: int = Field(foreign_key="draw.id", index=True)
    round_id: int = Field(foreign_key="round.id", index=True)
    judge_id: Optional[int] = Field(default=None, foreign_key="judge.id")
    status: str = Field(default=BALLOT_STATUS_DRAFT)  # "draft" | "submitted" | "confirmed"
    submitted_at: Optional[datetime] = Field(default=None)
    confirmed_at: Optional[datetime] = Field(default=None)
    confirmed_by: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
