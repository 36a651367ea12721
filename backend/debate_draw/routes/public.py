"""
Public read-only API endpoints.

No auth required. Only published draws (in progress or completed) are
visible; pending rooms are still under review.
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session

from debate_draw.database import get_session
from debate_draw.models.draw import DRAW_STATUS_COMPLETED, DRAW_STATUS_IN_PROGRESS
from debate_draw.models.tournament import Tournament
from debate_draw.routes.draws import DrawResponse, serialize_draws
from debate_draw.services.draw_rows import get_round_draws
from debate_draw.utils.round_guards import get_round_or_404

logger = logging.getLogger(__name__)

router = APIRouter()

PUBLISHED_STATUSES = (DRAW_STATUS_IN_PROGRESS, DRAW_STATUS_COMPLETED)


# ── Response models ──────────────────────────────────────────────────────

class PublicRoundDraw(BaseModel):
    tournament_name: str
    round_number: int
    motion: Optional[str] = None
    published: bool
    draws: List[DrawResponse]


# ── Endpoints ────────────────────────────────────────────────────────────

@router.get("/public/rounds/{round_id}/draws", response_model=PublicRoundDraw)
def get_public_round_draws(round_id: int, session: Session = Depends(get_session)):
    round_ = get_round_or_404(session, round_id)
    tournament = session.get(Tournament, round_.tournament_id)

    published = [draw for draw in get_round_draws(session, round_id) if draw.status in PUBLISHED_STATUSES]
    return PublicRoundDraw(
        tournament_name=tournament.name if tournament else "",
        round_number=round_.round_number,
        # The motion is released together with the draw
        motion=round_.motion if published else None,
        published=bool(published),
        draws=serialize_draws(session, published),
    )
