"""
Draw endpoints: generate, regenerate, accept, complete, list, history, rollback.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlmodel import Session, select

from debate_draw.database import get_session
from debate_draw.exceptions import DrawError
from debate_draw.models.draw import Draw
from debate_draw.models.judge import Judge
from debate_draw.models.team import Team
from debate_draw.services import draw_orchestrator
from debate_draw.services.draw_lifecycle import DrawLifecycle
from debate_draw.services.draw_rows import get_round_draws
from debate_draw.services.generation_history import GenerationHistoryStore
from debate_draw.utils.round_guards import (
    get_history_or_404,
    get_round_or_404,
    get_tournament_or_404,
    http_error_for,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class DrawGenerateRequest(BaseModel):
    method: Optional[str] = None  # random | power_pairing | swiss | balanced
    avoid_institution_clashes: Optional[bool] = None
    balance_experience: Optional[bool] = None
    leftover_policy: Optional[str] = None  # swing_fill | drop
    team_strengths: Optional[Dict[str, float]] = None
    seed: Optional[int] = None
    team_ids: Optional[List[int]] = None
    judge_ids: Optional[List[int]] = None
    rooms: Optional[List[str]] = None
    generated_by: Optional[str] = None


class DrawSlotResponse(BaseModel):
    position: int
    role: str
    team_id: Optional[int] = None
    team_name: Optional[str] = None
    institution: Optional[str] = None
    is_swing: bool = False


class DrawResponse(BaseModel):
    id: int
    round_id: int
    room: str
    room_index: int
    status: str
    judge_id: Optional[int] = None
    judge_name: Optional[str] = None
    generation_history_id: Optional[int] = None
    slots: List[DrawSlotResponse]


class GenerationHistoryResponse(BaseModel):
    id: int
    tournament_id: int
    round_id: int
    generation_method: str
    generation_params: Optional[Dict[str, Any]] = None
    generated_at: datetime
    generated_by: Optional[str] = None
    is_current: bool
    has_snapshot: bool = False


# ============================================================================
# Helper Functions
# ============================================================================


def serialize_draws(session: Session, draws: List[Draw]) -> List[DrawResponse]:
    """Render draws with team and judge names resolved."""
    team_ids = {slot.team_id for draw in draws for slot in draw.slots if slot.team_id is not None}
    judge_ids = {draw.judge_id for draw in draws if draw.judge_id is not None}
    teams = {team.id: team for team in session.exec(select(Team).where(Team.id.in_(team_ids))).all()} if team_ids else {}
    judges = (
        {judge.id: judge for judge in session.exec(select(Judge).where(Judge.id.in_(judge_ids))).all()}
        if judge_ids
        else {}
    )

    rendered = []
    for draw in draws:
        slots = []
        for slot in draw.slots:
            team = teams.get(slot.team_id) if slot.team_id is not None else None
            slots.append(
                DrawSlotResponse(
                    position=slot.position,
                    role=slot.role,
                    team_id=slot.team_id,
                    team_name=team.name if team else slot.swing_name,
                    institution=team.institution if team else None,
                    is_swing=slot.is_swing,
                )
            )
        judge = judges.get(draw.judge_id)
        rendered.append(
            DrawResponse(
                id=draw.id,
                round_id=draw.round_id,
                room=draw.room,
                room_index=draw.room_index,
                status=draw.status,
                judge_id=draw.judge_id,
                judge_name=judge.name if judge else None,
                generation_history_id=draw.generation_history_id,
                slots=slots,
            )
        )
    return rendered


def _run_generation(session: Session, round_id: int, request: DrawGenerateRequest, regenerate: bool) -> dict:
    get_round_or_404(session, round_id)
    try:
        result = draw_orchestrator.generate_round_draws(
            session=session,
            round_id=round_id,
            method=request.method,
            avoid_institution_clashes=request.avoid_institution_clashes,
            balance_experience=request.balance_experience,
            leftover_policy=request.leftover_policy,
            team_strengths=request.team_strengths,
            seed=request.seed,
            team_ids=request.team_ids,
            judge_ids=request.judge_ids,
            rooms=request.rooms,
            regenerate=regenerate,
            generated_by=request.generated_by,
        )
    except DrawError as e:
        raise http_error_for(e)
    return result.to_dict()


# ============================================================================
# Generation
# ============================================================================


@router.post("/rounds/{round_id}/draws/generate", status_code=201)
def generate_draws(round_id: int, request: Optional[DrawGenerateRequest] = None, session: Session = Depends(get_session)):
    """Generate the round's draw as pending rooms"""
    return _run_generation(session, round_id, request or DrawGenerateRequest(), regenerate=False)


@router.post("/rounds/{round_id}/draws/regenerate")
def regenerate_draws(round_id: int, request: Optional[DrawGenerateRequest] = None, session: Session = Depends(get_session)):
    """Discard the round's pending draws and generate again"""
    return _run_generation(session, round_id, request or DrawGenerateRequest(), regenerate=True)


# ============================================================================
# Lifecycle
# ============================================================================


@router.post("/rounds/{round_id}/draws/accept")
def accept_draws(round_id: int, session: Session = Depends(get_session)):
    """Publish pending draws (pending -> in_progress)"""
    get_round_or_404(session, round_id)
    try:
        return draw_orchestrator.accept_round_draws(session, round_id)
    except DrawError as e:
        raise http_error_for(e)


@router.get("/rounds/{round_id}/draws/completion")
def get_completion_status(round_id: int, session: Session = Depends(get_session)):
    """Evaluate whether the round can be completed right now"""
    get_round_or_404(session, round_id)
    return DrawLifecycle(session).check_completion(round_id).to_dict()


@router.post("/rounds/{round_id}/draws/complete")
def complete_draws(round_id: int, session: Session = Depends(get_session)):
    get_round_or_404(session, round_id)
    try:
        return draw_orchestrator.complete_round_draws(session, round_id)
    except DrawError as e:
        raise http_error_for(e)


@router.get("/rounds/{round_id}/draws", response_model=List[DrawResponse])
def list_draws(round_id: int, status: Optional[str] = Query(None), session: Session = Depends(get_session)):
    """List the round's draws in room order"""
    get_round_or_404(session, round_id)
    draws = get_round_draws(session, round_id)
    if status:
        draws = [draw for draw in draws if draw.status == status]
    return serialize_draws(session, draws)


# ============================================================================
# History / Rollback
# ============================================================================


@router.get("/tournaments/{tournament_id}/draw-history", response_model=List[GenerationHistoryResponse])
def list_draw_history(
    tournament_id: int,
    round_id: Optional[int] = Query(None),
    session: Session = Depends(get_session),
):
    """Generation records of a tournament, newest first"""
    get_tournament_or_404(session, tournament_id)
    store = GenerationHistoryStore(session)
    if round_id is not None:
        get_round_or_404(session, round_id, tournament_id)
        records = store.list_for_round(round_id)
    else:
        records = store.list_for_tournament(tournament_id)
    return [
        GenerationHistoryResponse(
            id=record.id,
            tournament_id=record.tournament_id,
            round_id=record.round_id,
            generation_method=record.generation_method,
            generation_params=record.generation_params,
            generated_at=record.generated_at,
            generated_by=record.generated_by,
            is_current=record.is_current,
            has_snapshot=bool(record.snapshot),
        )
        for record in records
    ]


@router.post("/draw-history/{history_id}/rollback")
def rollback_draw_history(history_id: int, session: Session = Depends(get_session)):
    """Restore the rooms of a past generation as pending draws"""
    get_history_or_404(session, history_id)
    try:
        result = draw_orchestrator.rollback_to_generation(session, history_id)
    except DrawError as e:
        raise http_error_for(e)
    return result.to_dict()
