"""
Draw Lifecycle - pending -> in_progress -> completed.

- pending: just generated; the round may be regenerated wholesale
- in_progress: accepted and published
- completed: results are final

There is no backward transition. Completion is gated on ballot state,
which is evaluated on every attempt and never stored.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional

from sqlmodel import Session, select

from debate_draw.exceptions import LifecycleViolation
from debate_draw.models.ballot import BALLOT_STATUS_CONFIRMED, BALLOT_STATUS_DRAFT, BALLOT_STATUS_SUBMITTED, Ballot
from debate_draw.models.draw import DRAW_STATUS_COMPLETED, DRAW_STATUS_IN_PROGRESS, DRAW_STATUS_PENDING, Draw
from debate_draw.services.draw_rows import get_round_draws

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    DRAW_STATUS_PENDING: frozenset({DRAW_STATUS_IN_PROGRESS}),
    DRAW_STATUS_IN_PROGRESS: frozenset({DRAW_STATUS_COMPLETED}),
    DRAW_STATUS_COMPLETED: frozenset(),
}

# Round-level states derived from its draws
ROUND_STATE_EMPTY = "empty"
ROUND_STATE_MIXED = "mixed"


@dataclass
class CompletionCheck:
    """Result of evaluating the completion gate for a round."""
    round_id: int
    can_complete: bool
    draws_total: int = 0
    confirmed_draws: int = 0
    blockers: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "round_id": self.round_id,
            "can_complete": self.can_complete,
            "draws_total": self.draws_total,
            "confirmed_draws": self.confirmed_draws,
            "blockers": self.blockers,
        }


def transition(draw: Draw, new_status: str) -> None:
    """Set a draw's status if the transition is allowed, else raise LifecycleViolation."""
    allowed = ALLOWED_TRANSITIONS.get(draw.status, frozenset())
    if new_status not in allowed:
        raise LifecycleViolation(
            f"Draw {draw.id} cannot move from '{draw.status}' to '{new_status}'",
            code="INVALID_TRANSITION",
        )
    draw.status = new_status


class DrawLifecycle:
    def __init__(self, session: Session):
        self.session = session

    def round_state(self, round_id: int) -> str:
        """The common status of the round's draws, "empty" or "mixed"."""
        statuses = {draw.status for draw in get_round_draws(self.session, round_id)}
        if not statuses:
            return ROUND_STATE_EMPTY
        if len(statuses) > 1:
            return ROUND_STATE_MIXED
        return statuses.pop()

    def ensure_can_regenerate(self, round_id: int) -> None:
        """Regeneration is a silent overwrite: only allowed while every draw is pending."""
        draws = get_round_draws(self.session, round_id)
        locked = [draw for draw in draws if draw.status != DRAW_STATUS_PENDING]
        if locked:
            raise LifecycleViolation(
                f"Round {round_id} has {len(locked)} accepted draw(s); use rollback instead of regenerate",
                code="ROUND_NOT_PENDING",
            )
        if draws and self._round_ballots(round_id):
            raise LifecycleViolation(f"Round {round_id} already has ballots", code="BALLOTS_EXIST")

    def ensure_can_rollback(self, round_id: int) -> None:
        draws = get_round_draws(self.session, round_id)
        completed = [draw for draw in draws if draw.status == DRAW_STATUS_COMPLETED]
        if completed:
            raise LifecycleViolation(f"Round {round_id} is completed", code="ROUND_COMPLETED")
        if self._round_ballots(round_id):
            raise LifecycleViolation(
                f"Round {round_id} has ballots; rolling back would orphan them",
                code="BALLOTS_EXIST",
            )

    def accept(self, round_id: int, current_generation_id: Optional[int] = None) -> int:
        """
        Publish every pending draw of a round (pending -> in_progress).

        In-progress draws left from an earlier accept that do not belong to
        the current generation are removed first, so a room never appears
        twice.

        Returns:
            Number of draws accepted

        Raises:
            LifecycleViolation: No pending draws, the round is already completed,
                or a draw that would be replaced already has a ballot
        """
        draws = get_round_draws(self.session, round_id)
        pending = [draw for draw in draws if draw.status == DRAW_STATUS_PENDING]
        if not pending:
            raise LifecycleViolation(f"Round {round_id} has no pending draws to accept", code="NOTHING_TO_ACCEPT")
        if any(draw.status == DRAW_STATUS_COMPLETED for draw in draws):
            raise LifecycleViolation(f"Round {round_id} is completed", code="ROUND_COMPLETED")

        stale = [
            draw
            for draw in draws
            if draw.status == DRAW_STATUS_IN_PROGRESS
            and (current_generation_id is None or draw.generation_history_id != current_generation_id)
        ]
        stale_ids = {draw.id for draw in stale}
        if stale_ids and any(ballot.draw_id in stale_ids for ballot in self._round_ballots(round_id)):
            raise LifecycleViolation(
                f"Round {round_id} has ballots on published draws that accepting would replace",
                code="BALLOTS_EXIST",
            )
        for draw in stale:
            self.session.delete(draw)
        if stale:
            self.session.flush()
            logger.warning("ACCEPT: removed %d stale in-progress draw(s) for round %s", len(stale), round_id)

        for draw in pending:
            transition(draw, DRAW_STATUS_IN_PROGRESS)
            self.session.add(draw)
        self.session.flush()
        logger.info("ACCEPT: round %s, %d draw(s) now in progress", round_id, len(pending))
        return len(pending)

    def check_completion(self, round_id: int) -> CompletionCheck:
        draws = get_round_draws(self.session, round_id)
        ballots = self._round_ballots(round_id)
        check = CompletionCheck(round_id=round_id, can_complete=False, draws_total=len(draws))

        if not draws:
            check.blockers.append("Round has no draws")
            return check

        not_started = [draw for draw in draws if draw.status != DRAW_STATUS_IN_PROGRESS]
        if not_started:
            statuses = sorted({draw.status for draw in not_started})
            check.blockers.append(f"{len(not_started)} draw(s) are not in progress ({', '.join(statuses)})")

        confirmed_draw_ids = {ballot.draw_id for ballot in ballots if ballot.status == BALLOT_STATUS_CONFIRMED}
        check.confirmed_draws = sum(1 for draw in draws if draw.id in confirmed_draw_ids)
        if check.confirmed_draws < len(draws):
            check.blockers.append(f"{len(draws) - check.confirmed_draws} ballots need confirmation")

        unconfirmed = [b for b in ballots if b.status in (BALLOT_STATUS_DRAFT, BALLOT_STATUS_SUBMITTED)]
        if unconfirmed:
            check.blockers.append(f"{len(unconfirmed)} ballots pending confirmation")

        check.can_complete = not check.blockers
        return check

    def completion_blockers(self, round_id: int) -> List[str]:
        """Reasons the round cannot be completed yet; empty when it can."""
        return self.check_completion(round_id).blockers

    def complete(self, round_id: int) -> int:
        """
        Close a round (in_progress -> completed).

        Raises:
            LifecycleViolation: The completion gate is not satisfied
        """
        check = self.check_completion(round_id)
        if not check.can_complete:
            raise LifecycleViolation(
                f"Round {round_id} cannot be completed: {'; '.join(check.blockers)}",
                code="ROUND_NOT_COMPLETABLE",
            )

        draws = get_round_draws(self.session, round_id)
        for draw in draws:
            transition(draw, DRAW_STATUS_COMPLETED)
            self.session.add(draw)
        self.session.flush()
        logger.info("COMPLETE: round %s, %d draw(s) completed", round_id, len(draws))
        return len(draws)

    def has_ballots(self, round_id: int) -> bool:
        return bool(self._round_ballots(round_id))

    def _round_ballots(self, round_id: int) -> List[Ballot]:
        return list(self.session.exec(select(Ballot).where(Ballot.round_id == round_id)).all())
