"""
Draw Orchestrator - generate / accept / complete / rollback for one round.

Wraps the pure PairingEngine with the store:
1. Validate (round, tournament, format, lifecycle state)
2. Load teams and judges and freeze them into entries
3. Run the engine
4. Replace the round's pending draws and record the generation
5. Compare-and-swap Round.generation_version, then a single commit

Every write path holds the round's lock and commits once. Any store error
rolls the whole transaction back, so the round keeps its previous draws.
"""

import logging
import random
from itertools import combinations
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Set

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from debate_draw.exceptions import (
    DrawError,
    GenerationConflict,
    LifecycleViolation,
    PersistenceFailure,
    ValidationError,
)
from debate_draw.models import Draw, DrawGenerationHistory, Judge, Round, Team, Tournament
from debate_draw.models.draw import DRAW_STATUS_COMPLETED, DRAW_STATUS_PENDING
from debate_draw.services.draw_lifecycle import DrawLifecycle
from debate_draw.services.draw_rows import (
    delete_round_draws,
    draws_from_snapshot,
    get_round_draws,
    snapshot_from_plan,
)
from debate_draw.services.entries import JudgeEntry, TeamEntry, judge_entry_from_row, team_entry_from_row
from debate_draw.services.format_catalog import FormatSpec, get_format
from debate_draw.services.generation_history import GenerationHistoryStore
from debate_draw.services.pairing_engine import DrawOptions, DrawPlan, PairingEngine
from debate_draw.services.round_locks import round_locks

logger = logging.getLogger(__name__)

_engine = PairingEngine()

# ============================================================================
# Response Models
# ============================================================================


class GenerationWarning:
    """Non-fatal finding of a generation run"""

    def __init__(self, code: str, message: str, room_index: Optional[int] = None):
        self.code = code
        self.message = message
        self.room_index = room_index

    def to_dict(self):
        return {"code": self.code, "message": self.message, "room_index": self.room_index}


class DrawGenerationResult:
    """Complete result of a generation (or rollback) run"""

    def __init__(self):
        self.status = "success"  # success | validation_error | lifecycle_error | persistence_error
        self.tournament_id: Optional[int] = None
        self.round_id: Optional[int] = None
        self.generation_history_id: Optional[int] = None
        self.format_code: Optional[str] = None
        self.method: Optional[str] = None
        self.seed: Optional[int] = None
        self.regenerate = False
        self.draws_removed = 0
        self.draws_created = 0
        self.swing_teams = 0
        self.unplaced_team_ids: List[str] = []
        self.clash_score_before = 0
        self.clash_score_after = 0
        self.assignments: List[Dict[str, Any]] = []
        self.warnings: List[GenerationWarning] = []
        self.failed_step: Optional[str] = None
        self.error_message: Optional[str] = None

    def to_dict(self):
        result = {
            "status": self.status,
            "tournament_id": self.tournament_id,
            "round_id": self.round_id,
            "generation_history_id": self.generation_history_id,
            "format": self.format_code,
            "method": self.method,
            "seed": self.seed,
            "regenerate": self.regenerate,
            "summary": {
                "draws_removed": self.draws_removed,
                "draws_created": self.draws_created,
                "swing_teams": self.swing_teams,
                "unplaced_team_ids": self.unplaced_team_ids,
                "clash_score_before": self.clash_score_before,
                "clash_score_after": self.clash_score_after,
            },
            "assignments": self.assignments,
            "warnings": [w.to_dict() for w in self.warnings],
        }

        if self.failed_step:
            result["failed_step"] = self.failed_step
            result["error_message"] = self.error_message

        return result


_ERROR_STATUS = (
    (ValidationError, "validation_error"),
    (LifecycleViolation, "lifecycle_error"),
    (PersistenceFailure, "persistence_error"),
)


def _record_failure(result: DrawGenerationResult, error: DrawError) -> None:
    for error_type, status in _ERROR_STATUS:
        if isinstance(error, error_type):
            result.status = status
            break
    result.error_message = str(error)


# ============================================================================
# Loading
# ============================================================================


def load_team_entries(session: Session, tournament_id: int, team_ids: Optional[Sequence[int]] = None) -> List[TeamEntry]:
    """Teams of a tournament (optionally a subset), frozen in id order."""
    query = select(Team).where(Team.tournament_id == tournament_id)
    if team_ids is not None:
        query = query.where(Team.id.in_(list(team_ids)))
    rows = session.exec(query.order_by(Team.id)).all()
    if team_ids is not None:
        missing = sorted(set(team_ids) - {row.id for row in rows})
        if missing:
            raise ValidationError(f"Teams {missing} do not belong to tournament {tournament_id}", code="UNKNOWN_TEAM")
    return [team_entry_from_row(row) for row in rows]


def load_judge_entries(
    session: Session, tournament_id: int, judge_ids: Optional[Sequence[int]] = None
) -> List[JudgeEntry]:
    query = select(Judge).where(Judge.tournament_id == tournament_id)
    if judge_ids is not None:
        query = query.where(Judge.id.in_(list(judge_ids)))
    rows = session.exec(query.order_by(Judge.id)).all()
    if judge_ids is not None:
        missing = sorted(set(judge_ids) - {row.id for row in rows})
        if missing:
            raise ValidationError(
                f"Judges {missing} do not belong to tournament {tournament_id}", code="UNKNOWN_JUDGE"
            )
    return [judge_entry_from_row(row) for row in rows]


def met_before_pairs(session: Session, round_: Round) -> Set[FrozenSet[str]]:
    """Team id pairs that shared a room in any other round of the tournament."""
    draws = session.exec(
        select(Draw).where(Draw.tournament_id == round_.tournament_id, Draw.round_id != round_.id)
    ).all()
    pairs: Set[FrozenSet[str]] = set()
    for draw in draws:
        team_ids = [str(slot.team_id) for slot in draw.slots if slot.team_id is not None]
        pairs.update(frozenset(pair) for pair in combinations(team_ids, 2))
    return pairs


def _load_round(session: Session, round_id: int) -> Round:
    round_ = session.get(Round, round_id)
    if not round_:
        raise ValidationError(f"Round {round_id} not found", code="ROUND_NOT_FOUND")
    return round_


def _load_format(session: Session, round_: Round) -> FormatSpec:
    tournament = session.get(Tournament, round_.tournament_id)
    if not tournament:
        raise ValidationError(f"Tournament {round_.tournament_id} not found", code="TOURNAMENT_NOT_FOUND")
    return get_format(tournament.format)


def bump_generation_version(session: Session, round_id: int, expected_version: int) -> int:
    """
    Compare-and-swap the round's generation counter.

    Raises:
        GenerationConflict: Another writer committed a generation first
    """
    outcome = session.execute(
        update(Round)
        .where(Round.id == round_id, Round.generation_version == expected_version)
        .values(generation_version=expected_version + 1)
        .execution_options(synchronize_session=False)
    )
    if outcome.rowcount != 1:
        raise GenerationConflict(
            f"Round {round_id} changed while the draw was being generated (expected version {expected_version})"
        )
    return expected_version + 1


# ============================================================================
# Generation
# ============================================================================


def generate_round_draws(
    session: Session,
    round_id: int,
    method: Optional[str] = None,
    avoid_institution_clashes: Optional[bool] = None,
    balance_experience: Optional[bool] = None,
    leftover_policy: Optional[str] = None,
    team_strengths: Optional[Dict[str, float]] = None,
    seed: Optional[int] = None,
    team_ids: Optional[Sequence[int]] = None,
    judge_ids: Optional[Sequence[int]] = None,
    rooms: Optional[Sequence[str]] = None,
    regenerate: bool = False,
    generated_by: Optional[str] = None,
    rng: Optional[random.Random] = None,
    engine: Optional[PairingEngine] = None,
) -> DrawGenerationResult:
    """
    Generate (or regenerate) the draw of one round and persist it as pending.

    Options left as None take the format's defaults. Without a seed one is
    drawn from the system source and recorded, so the run can be reproduced.

    A first generation on a round whose draws are already accepted creates
    new pending draws next to them (the re-accept cycle); accept then drops
    the superseded ones. Regeneration replaces pending draws and is refused
    once any draw has been accepted.

    Args:
        session: Database session
        round_id: Round to draw
        team_ids / judge_ids: Subsets to draw from; all of the tournament's by default
        rooms: Room labels; the round's configured rooms by default
        regenerate: Discard the round's pending draws first
        rng: Random source overriding the seed (tests); no seed is recorded then
        engine: PairingEngine override

    Returns:
        DrawGenerationResult with status "success"

    Raises:
        ValidationError: Inputs cannot produce a draw (nothing written)
        LifecycleViolation: Round state does not allow this operation
        PersistenceFailure: Store error; the transaction was rolled back
    """
    result = DrawGenerationResult()
    result.round_id = round_id
    result.regenerate = regenerate
    engine = engine or _engine

    try:
        with round_locks.hold(round_id):
            # ================================================================
            # Step 0: Validate
            # ================================================================
            result.failed_step = "VALIDATE"

            round_ = _load_round(session, round_id)
            result.tournament_id = round_.tournament_id
            spec = _load_format(session, round_)
            result.format_code = spec.code
            expected_version = round_.generation_version

            lifecycle = DrawLifecycle(session)
            existing = get_round_draws(session, round_id)
            if regenerate:
                lifecycle.ensure_can_regenerate(round_id)
            else:
                _ensure_can_generate(lifecycle, round_id, existing)

            # ================================================================
            # Step 1: Load entries
            # ================================================================
            result.failed_step = "LOAD_ENTRIES"

            teams = load_team_entries(session, round_.tournament_id, team_ids)
            judges = load_judge_entries(session, round_.tournament_id, judge_ids)
            labels = list(rooms) if rooms is not None else list(round_.rooms or [])
            met_before = met_before_pairs(session, round_)

            options = DrawOptions.for_format(
                spec,
                method=method,
                avoid_institution_clashes=avoid_institution_clashes,
                balance_experience=balance_experience,
                leftover_policy=leftover_policy,
                team_strengths=team_strengths,
                seed=seed,
            )
            if rng is not None:
                # The injected source drives the shuffle, so no seed reproduces it
                options.seed = None
            elif options.seed is None:
                options.seed = random.SystemRandom().randrange(2**31)
            result.seed = options.seed

            # ================================================================
            # Step 2: Run the engine
            # ================================================================
            result.failed_step = "GENERATE"

            plan = engine.build_plan(teams, judges, labels, spec, options, rng=rng, met_before=met_before)
            _collect_plan(result, plan)

            # ================================================================
            # Step 3: Persist (single transaction)
            # ================================================================
            result.failed_step = "PERSIST"

            if regenerate:
                result.draws_removed = delete_round_draws(session, round_id, status=DRAW_STATUS_PENDING)

            snapshot = snapshot_from_plan(plan)
            params = _generation_params(spec, options, plan, teams, judges, labels)
            history_id = GenerationHistoryStore(session).record_generation(
                tournament_id=round_.tournament_id,
                round_id=round_id,
                method=plan.method,
                params=params,
                snapshot=snapshot,
                generated_by=generated_by,
            )
            draws = draws_from_snapshot(snapshot, round_.tournament_id, round_id, history_id)
            for draw in draws:
                session.add(draw)
            session.flush()

            bump_generation_version(session, round_id, expected_version)

            # ================================================================
            # Step 4: Commit
            # ================================================================
            result.failed_step = "COMMIT"
            session.commit()

        result.generation_history_id = history_id
        result.draws_created = len(draws)
        result.status = "success"
        result.failed_step = None
        logger.info(
            "GENERATE: round %s generation %s (%s, seed=%s, %d rooms, %d previous draws removed)",
            round_id,
            history_id,
            plan.method,
            options.seed,
            len(draws),
            result.draws_removed,
        )
        return result

    except DrawError as e:
        session.rollback()
        _record_failure(result, e)
        logger.info("GENERATE: round %s failed at %s: %s", round_id, result.failed_step, e)
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Draw generation failed, transaction rolled back")
        result.status = "persistence_error"
        result.error_message = f"Draw generation failed at step {result.failed_step}: {str(e)}"
        raise PersistenceFailure(result.error_message) from e


def _ensure_can_generate(lifecycle: DrawLifecycle, round_id: int, existing: List[Draw]) -> None:
    if any(draw.status == DRAW_STATUS_PENDING for draw in existing):
        raise LifecycleViolation(
            f"Round {round_id} already has pending draws; regenerate them instead",
            code="DRAWS_EXIST",
        )
    if any(draw.status == DRAW_STATUS_COMPLETED for draw in existing):
        raise LifecycleViolation(f"Round {round_id} is completed", code="ROUND_COMPLETED")
    if existing and lifecycle.has_ballots(round_id):
        # Re-accept cycle: accepted draws stay until the new ones are accepted
        raise LifecycleViolation(f"Round {round_id} already has ballots", code="BALLOTS_EXIST")


def _collect_plan(result: DrawGenerationResult, plan: DrawPlan) -> None:
    result.method = plan.method
    result.swing_teams = plan.swing_count
    result.unplaced_team_ids = [team.id for team in plan.unplaced]
    result.clash_score_before = plan.clash_score_before
    result.clash_score_after = plan.clash_score_after
    result.assignments = [assignment.to_dict() for assignment in plan.assignments]

    if plan.unplaced:
        result.warnings.append(
            GenerationWarning(
                code="TEAMS_UNPLACED",
                message=f"{len(plan.unplaced)} team(s) not drawn: {', '.join(t.name for t in plan.unplaced)}",
            )
        )
    for clash in plan.institution_clashes:
        result.warnings.append(
            GenerationWarning(
                code="INSTITUTION_CLASH",
                message=f"Teams {clash.team_a_id} and {clash.team_b_id} share institution '{clash.institution}'",
                room_index=clash.room_index,
            )
        )
    for conflict in plan.judge_conflicts:
        logger.warning(
            "GENERATE: judge %s conflicts with team %s in room %d (%s)",
            conflict.judge_id,
            conflict.team_id,
            conflict.room_index,
            conflict.institution,
        )
        result.warnings.append(
            GenerationWarning(
                code="JUDGE_CONFLICT",
                message=f"Judge {conflict.judge_id} and team {conflict.team_id}: {conflict.reason}",
                room_index=conflict.room_index,
            )
        )


def _generation_params(
    spec: FormatSpec,
    options: DrawOptions,
    plan: DrawPlan,
    teams: List[TeamEntry],
    judges: List[JudgeEntry],
    labels: List[str],
) -> Dict[str, Any]:
    params = options.to_params()
    params.update(
        {
            "format": spec.code,
            "applied_method": plan.method,
            "rooms": labels,
            "team_ids": [int(team.id) for team in teams],
            "judge_ids": [int(judge.id) for judge in judges],
            "teams_count": len(teams),
            "judges_count": len(judges),
            "rooms_count": len(plan.assignments),
            "swing_count": plan.swing_count,
            "unplaced_team_ids": [int(team.id) for team in plan.unplaced],
        }
    )
    return params


# ============================================================================
# Lifecycle operations
# ============================================================================


def accept_round_draws(session: Session, round_id: int) -> Dict[str, Any]:
    """Publish the round's pending draws. Commits."""
    with round_locks.hold(round_id):
        _load_round(session, round_id)
        try:
            current = GenerationHistoryStore(session).current_for_round(round_id)
            accepted = DrawLifecycle(session).accept(round_id, current.id if current else None)
            session.commit()
        except DrawError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Accept failed, transaction rolled back")
            raise PersistenceFailure(f"Accepting draws for round {round_id} failed: {str(e)}") from e
    return {"round_id": round_id, "accepted": accepted}


def complete_round_draws(session: Session, round_id: int) -> Dict[str, Any]:
    """Close the round once every ballot is confirmed. Commits."""
    with round_locks.hold(round_id):
        _load_round(session, round_id)
        try:
            completed = DrawLifecycle(session).complete(round_id)
            session.commit()
        except DrawError:
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            logger.exception("Complete failed, transaction rolled back")
            raise PersistenceFailure(f"Completing round {round_id} failed: {str(e)}") from e
    return {"round_id": round_id, "completed": completed}


def rollback_to_generation(
    session: Session,
    history_id: int,
    rng: Optional[random.Random] = None,
    engine: Optional[PairingEngine] = None,
) -> DrawGenerationResult:
    """
    Restore the rooms a past generation produced and make it current.

    Records without a snapshot are re-run from their recorded parameters
    (same method and seed over today's team and judge rows); the rebuilt
    rooms become that record's snapshot.

    Raises:
        ValidationError: Unknown record, or it references deleted rows
        LifecycleViolation: The round is completed or has ballots
        PersistenceFailure: Store error; the transaction was rolled back
    """
    store = GenerationHistoryStore(session)
    record = store.get(history_id)
    engine = engine or _engine

    result = DrawGenerationResult()
    result.tournament_id = record.tournament_id
    result.round_id = record.round_id
    result.generation_history_id = record.id

    def regenerate(target: DrawGenerationHistory) -> List[Draw]:
        round_ = _load_round(session, target.round_id)
        spec = _load_format(session, round_)
        params = dict(target.generation_params or {})
        options = DrawOptions.for_format(
            spec,
            method=params.get("method") or target.generation_method,
            avoid_institution_clashes=params.get("avoid_institution_clashes"),
            balance_experience=params.get("balance_experience"),
            leftover_policy=params.get("leftover_policy"),
            team_strengths=params.get("team_strengths"),
            seed=params.get("seed"),
        )
        teams = load_team_entries(session, round_.tournament_id, params.get("team_ids"))
        judges = load_judge_entries(session, round_.tournament_id, params.get("judge_ids"))
        labels = params.get("rooms") or list(round_.rooms or [])
        plan = engine.build_plan(teams, judges, labels, spec, options, rng=rng, met_before=met_before_pairs(session, round_))
        _collect_plan(result, plan)
        target.snapshot = snapshot_from_plan(plan)
        session.add(target)
        return draws_from_snapshot(target.snapshot, round_.tournament_id, round_.id, target.id)

    try:
        with round_locks.hold(record.round_id):
            result.failed_step = "VALIDATE"
            round_ = _load_round(session, record.round_id)
            expected_version = round_.generation_version
            DrawLifecycle(session).ensure_can_rollback(record.round_id)
            result.draws_removed = len(get_round_draws(session, record.round_id))

            result.failed_step = "RESTORE"
            draws = store.rollback(history_id, regenerate=regenerate)
            bump_generation_version(session, record.round_id, expected_version)

            result.failed_step = "COMMIT"
            session.commit()

        result.method = record.generation_method
        result.format_code = (record.generation_params or {}).get("format")
        result.seed = (record.generation_params or {}).get("seed")
        result.draws_created = len(draws)
        result.status = "success"
        result.failed_step = None
        return result

    except DrawError as e:
        session.rollback()
        _record_failure(result, e)
        logger.info("ROLLBACK: generation %s failed at %s: %s", history_id, result.failed_step, e)
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.exception("Rollback failed, transaction rolled back")
        result.status = "persistence_error"
        result.error_message = f"Rollback failed at step {result.failed_step}: {str(e)}"
        raise PersistenceFailure(result.error_message) from e
