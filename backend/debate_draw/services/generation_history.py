"""
Generation History Store

One DrawGenerationHistory record per generation run. The newest run for a
round is current; older runs are superseded, never deleted. Rollback makes
an older record current again and restores the rooms it produced exactly,
from its snapshot.

The store never commits; the caller owns the transaction.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlmodel import Session, select

from debate_draw.exceptions import ValidationError
from debate_draw.models.draw import Draw
from debate_draw.models.generation_history import DrawGenerationHistory
from debate_draw.models.judge import Judge
from debate_draw.models.team import Team
from debate_draw.services.draw_rows import (
    delete_round_draws,
    draws_from_snapshot,
    snapshot_judge_ids,
    snapshot_team_ids,
)

logger = logging.getLogger(__name__)

# Rebuilds a round's draws for a record that has no snapshot
RegenerateFn = Callable[[DrawGenerationHistory], List[Draw]]


class GenerationHistoryStore:
    def __init__(self, session: Session):
        self.session = session

    def record_generation(
        self,
        tournament_id: int,
        round_id: int,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        snapshot: Optional[List[Dict[str, Any]]] = None,
        generated_by: Optional[str] = None,
    ) -> int:
        """
        Create the current record for a round, superseding every sibling.

        Returns:
            The new record's id
        """
        self._clear_current(round_id)
        record = DrawGenerationHistory(
            tournament_id=tournament_id,
            round_id=round_id,
            generation_method=method,
            generation_params=params or {},
            snapshot=snapshot,
            generated_at=datetime.utcnow(),
            generated_by=generated_by,
            is_current=True,
        )
        self.session.add(record)
        self.session.flush()
        return record.id

    def get(self, history_id: int) -> DrawGenerationHistory:
        record = self.session.get(DrawGenerationHistory, history_id)
        if not record:
            raise ValidationError(f"Generation history {history_id} not found", code="HISTORY_NOT_FOUND")
        return record

    def list_for_tournament(self, tournament_id: int) -> List[DrawGenerationHistory]:
        """All records of a tournament, newest first."""
        return list(
            self.session.exec(
                select(DrawGenerationHistory)
                .where(DrawGenerationHistory.tournament_id == tournament_id)
                .order_by(DrawGenerationHistory.generated_at.desc(), DrawGenerationHistory.id.desc())
            ).all()
        )

    def list_for_round(self, round_id: int) -> List[DrawGenerationHistory]:
        return list(
            self.session.exec(
                select(DrawGenerationHistory)
                .where(DrawGenerationHistory.round_id == round_id)
                .order_by(DrawGenerationHistory.generated_at.desc(), DrawGenerationHistory.id.desc())
            ).all()
        )

    def current_for_round(self, round_id: int) -> Optional[DrawGenerationHistory]:
        return self.session.exec(
            select(DrawGenerationHistory).where(
                DrawGenerationHistory.round_id == round_id,
                DrawGenerationHistory.is_current == True,  # noqa: E712
            )
        ).first()

    def mark_current(self, record: DrawGenerationHistory) -> None:
        self._clear_current(record.round_id, keep_id=record.id)
        record.is_current = True
        self.session.add(record)
        self.session.flush()

    def rollback(self, history_id: int, regenerate: Optional[RegenerateFn] = None) -> List[Draw]:
        """
        Make a record current again and restore the draws it produced.

        The round's existing draws are deleted. Records carrying a snapshot
        are restored room for room; records without one are rebuilt through
        regenerate, which only reproduces the method, not the pairing.

        Raises:
            ValidationError: Record missing, no snapshot and no regenerate,
                or the snapshot references deleted teams/judges
        """
        record = self.get(history_id)

        if record.snapshot:
            self._check_snapshot_references(record)
        elif regenerate is None:
            raise ValidationError(
                f"Generation {history_id} has no snapshot and no regenerate fallback was given",
                code="NO_SNAPSHOT",
            )

        self.mark_current(record)
        removed = delete_round_draws(self.session, record.round_id)

        if record.snapshot:
            draws = draws_from_snapshot(record.snapshot, record.tournament_id, record.round_id, record.id)
        else:
            logger.warning(
                "ROLLBACK: generation %s has no snapshot; re-running method '%s'",
                history_id,
                record.generation_method,
            )
            draws = regenerate(record)
            for draw in draws:
                draw.generation_history_id = record.id

        for draw in draws:
            self.session.add(draw)
        self.session.flush()

        logger.info(
            "ROLLBACK: round %s to generation %s (%d draws removed, %d restored)",
            record.round_id,
            history_id,
            removed,
            len(draws),
        )
        return draws

    def _clear_current(self, round_id: int, keep_id: Optional[int] = None) -> None:
        current = self.session.exec(
            select(DrawGenerationHistory).where(
                DrawGenerationHistory.round_id == round_id,
                DrawGenerationHistory.is_current == True,  # noqa: E712
            )
        ).all()
        for record in current:
            if record.id == keep_id:
                continue
            record.is_current = False
            self.session.add(record)
        self.session.flush()

    def _check_snapshot_references(self, record: DrawGenerationHistory) -> None:
        team_ids = snapshot_team_ids(record.snapshot)
        if team_ids:
            found = set(self.session.exec(select(Team.id).where(Team.id.in_(team_ids))).all())
            missing = sorted(team_ids - found)
            if missing:
                raise ValidationError(
                    f"Generation {record.id} references deleted teams {missing}",
                    code="SNAPSHOT_STALE",
                )
        judge_ids = snapshot_judge_ids(record.snapshot)
        if judge_ids:
            found = set(self.session.exec(select(Judge.id).where(Judge.id.in_(judge_ids))).all())
            missing = sorted(judge_ids - found)
            if missing:
                raise ValidationError(
                    f"Generation {record.id} references deleted judges {missing}",
                    code="SNAPSHOT_STALE",
                )
