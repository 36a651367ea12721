"""
Conversion between engine output, Draw rows and history snapshots.

A snapshot is the JSON list stored on DrawGenerationHistory.snapshot:

    [{"room": "Room A", "room_index": 0, "judge_id": 3,
      "slots": [{"position": 0, "role": "OG", "team_id": 12, "swing_name": None}, ...]}, ...]
"""

from typing import Any, Dict, List, Optional, Set

from sqlmodel import Session, select

from debate_draw.models.draw import DRAW_STATUS_PENDING, Draw, DrawSlot
from debate_draw.services.pairing_engine import DrawPlan
from debate_draw.services.swing_teams import is_swing_team


def snapshot_from_plan(plan: DrawPlan) -> List[Dict[str, Any]]:
    snapshot = []
    for assignment in plan.assignments:
        slots = []
        for position, (role, team) in enumerate(assignment.slots):
            swing = is_swing_team(team)
            slots.append(
                {
                    "position": position,
                    "role": role,
                    "team_id": None if swing else int(team.id),
                    "swing_name": team.name if swing else None,
                }
            )
        snapshot.append(
            {
                "room": assignment.room,
                "room_index": assignment.room_index,
                "judge_id": int(assignment.judge.id) if assignment.judge else None,
                "slots": slots,
            }
        )
    return snapshot


def draws_from_snapshot(
    snapshot: List[Dict[str, Any]],
    tournament_id: int,
    round_id: int,
    generation_history_id: Optional[int],
) -> List[Draw]:
    """Build unsaved pending Draw rows (with slots) from a snapshot."""
    draws = []
    for room in snapshot:
        draw = Draw(
            tournament_id=tournament_id,
            round_id=round_id,
            room=room["room"],
            room_index=room["room_index"],
            judge_id=room.get("judge_id"),
            status=DRAW_STATUS_PENDING,
            generation_history_id=generation_history_id,
        )
        draw.slots = [
            DrawSlot(
                position=slot["position"],
                role=slot["role"],
                team_id=slot.get("team_id"),
                swing_name=slot.get("swing_name"),
            )
            for slot in room["slots"]
        ]
        draws.append(draw)
    return draws


def snapshot_team_ids(snapshot: List[Dict[str, Any]]) -> Set[int]:
    return {slot["team_id"] for room in snapshot for slot in room["slots"] if slot.get("team_id") is not None}


def snapshot_judge_ids(snapshot: List[Dict[str, Any]]) -> Set[int]:
    return {room["judge_id"] for room in snapshot if room.get("judge_id") is not None}


def get_round_draws(session: Session, round_id: int) -> List[Draw]:
    return list(session.exec(select(Draw).where(Draw.round_id == round_id).order_by(Draw.room_index, Draw.id)).all())


def delete_round_draws(session: Session, round_id: int, status: Optional[str] = None) -> int:
    """Delete a round's draws (slots cascade). Optionally only those with the given status."""
    query = select(Draw).where(Draw.round_id == round_id)
    if status:
        query = query.where(Draw.status == status)
    existing = session.exec(query).all()
    for draw in existing:
        session.delete(draw)
    session.flush()
    return len(existing)
