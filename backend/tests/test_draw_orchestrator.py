"""
Tests for the draw orchestrator: persistence, atomic regeneration,
per-round serialisation, the re-accept cycle and rollback.
"""

import random

import pytest
from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from debate_draw.exceptions import GenerationConflict, LifecycleViolation, PersistenceFailure, ValidationError
from debate_draw.models.ballot import BALLOT_STATUS_DRAFT
from debate_draw.models.draw import DRAW_STATUS_IN_PROGRESS, DRAW_STATUS_PENDING, Draw
from debate_draw.models.generation_history import DrawGenerationHistory
from debate_draw.models.round import Round
from debate_draw.models.team import Team
from debate_draw.services import draw_orchestrator
from debate_draw.services.draw_orchestrator import (
    accept_round_draws,
    complete_round_draws,
    generate_round_draws,
    rollback_to_generation,
)
from debate_draw.services.draw_rows import get_round_draws
from debate_draw.services.generation_history import GenerationHistoryStore
from debate_draw.services.round_locks import round_locks
from tests.factories import IdentityShuffleRandom, confirm_ballot, seed_round


def _rooms(session: Session, round_id: int):
    return [[slot.team_id for slot in draw.slots] for draw in get_round_draws(session, round_id)]


class TestGenerate:
    def test_generate_persists_pending_draws_and_history(self, session: Session):
        round_ = seed_round(session)

        result = generate_round_draws(session, round_.id, rng=IdentityShuffleRandom(0), generated_by="tab")

        assert result.status == "success"
        assert result.draws_created == 2
        draws = get_round_draws(session, round_.id)
        assert [draw.room for draw in draws] == ["Room A", "Room B"]
        assert all(draw.status == DRAW_STATUS_PENDING for draw in draws)
        assert all(draw.generation_history_id == result.generation_history_id for draw in draws)
        assert [draw.judge_id is not None for draw in draws] == [True, True]

        record = session.get(DrawGenerationHistory, result.generation_history_id)
        assert record.is_current
        assert record.generated_by == "tab"
        assert record.generation_params["teams_count"] == 8
        assert record.generation_params["format"] == "bp"
        # The injected random source is not reproducible from a seed
        assert result.seed is None
        assert record.generation_params["seed"] is None
        assert len(record.snapshot) == 2

        session.refresh(round_)
        assert round_.generation_version == 1

    def test_seed_recorded_when_not_given(self, session: Session):
        round_ = seed_round(session)
        result = generate_round_draws(session, round_.id)
        assert isinstance(result.seed, int)

    def test_same_seed_same_draw(self, session: Session):
        round_ = seed_round(session)
        generate_round_draws(session, round_.id, seed=1234)
        first = _rooms(session, round_.id)
        generate_round_draws(session, round_.id, seed=1234, regenerate=True)
        assert _rooms(session, round_.id) == first

    def test_generate_twice_requires_regenerate(self, session: Session):
        round_ = seed_round(session)
        generate_round_draws(session, round_.id, seed=1)
        with pytest.raises(LifecycleViolation) as exc_info:
            generate_round_draws(session, round_.id, seed=2)
        assert exc_info.value.code == "DRAWS_EXIST"

    def test_validation_error_writes_nothing(self, session: Session):
        round_ = seed_round(session, rooms=())
        with pytest.raises(ValidationError) as exc_info:
            generate_round_draws(session, round_.id)
        assert exc_info.value.code == "NO_ROOMS"
        assert get_round_draws(session, round_.id) == []
        assert session.exec(select(DrawGenerationHistory)).all() == []

    def test_unknown_team_subset_rejected(self, session: Session):
        round_ = seed_round(session)
        with pytest.raises(ValidationError) as exc_info:
            generate_round_draws(session, round_.id, team_ids=[1, 2, 3, 9999])
        assert exc_info.value.code == "UNKNOWN_TEAM"

    def test_swing_slots_stored_without_team(self, session: Session):
        round_ = seed_round(session, team_count=5)
        result = generate_round_draws(session, round_.id, rng=IdentityShuffleRandom(0))

        assert result.swing_teams == 3
        last = get_round_draws(session, round_.id)[-1]
        assert [slot.is_swing for slot in last.slots] == [False, True, True, True]
        assert [slot.swing_name for slot in last.slots[1:]] == ["Swing Team B", "Swing Team C", "Swing Team D"]

    def test_drop_policy_reports_unplaced(self, session: Session):
        round_ = seed_round(session, team_count=5)
        result = generate_round_draws(session, round_.id, leftover_policy="drop", rng=IdentityShuffleRandom(0))

        assert result.draws_created == 1
        assert len(result.unplaced_team_ids) == 1
        assert [w.code for w in result.warnings] == ["TEAMS_UNPLACED"]

    def test_earlier_rounds_count_as_met_before(self, session: Session):
        round_1 = seed_round(session)
        generate_round_draws(session, round_1.id, rng=IdentityShuffleRandom(0))
        round_2 = seed_round(session, round_number=2, tournament=round_1.tournament)

        pairs = draw_orchestrator.met_before_pairs(session, round_2)
        # two rooms of four: six pairs each
        assert len(pairs) == 12


class TestAtomicity:
    def test_failed_regenerate_keeps_previous_draws(self, session: Session, monkeypatch):
        round_ = seed_round(session)
        generate_round_draws(session, round_.id, rng=IdentityShuffleRandom(0))
        before_ids = [draw.id for draw in get_round_draws(session, round_.id)]

        def broken_record(self, *args, **kwargs):
            raise OperationalError("INSERT INTO draw_generation_history", {}, Exception("disk I/O error"))

        monkeypatch.setattr(GenerationHistoryStore, "record_generation", broken_record)

        with pytest.raises(PersistenceFailure) as exc_info:
            generate_round_draws(session, round_.id, regenerate=True, seed=7)

        assert isinstance(exc_info.value.__cause__, OperationalError)
        assert exc_info.value.retryable
        assert [draw.id for draw in get_round_draws(session, round_.id)] == before_ids

    def test_concurrent_writer_detected_by_version(self, session: Session, monkeypatch):
        round_ = seed_round(session)
        real_met_before = draw_orchestrator.met_before_pairs

        def racing_met_before(session_, round_row):
            # Another writer commits a generation while this one is computing
            session_.execute(
                update(Round).where(Round.id == round_row.id).values(generation_version=Round.generation_version + 1)
            )
            return real_met_before(session_, round_row)

        monkeypatch.setattr(draw_orchestrator, "met_before_pairs", racing_met_before)

        with pytest.raises(GenerationConflict):
            generate_round_draws(session, round_.id, seed=3)
        assert get_round_draws(session, round_.id) == []

    def test_held_round_lock_times_out(self, session: Session, monkeypatch):
        round_ = seed_round(session)
        monkeypatch.setenv("DRAW_LOCK_TIMEOUT_SECONDS", "0.01")

        with round_locks.hold(round_.id):
            with pytest.raises(GenerationConflict) as exc_info:
                generate_round_draws(session, round_.id, seed=3)
        assert exc_info.value.code == "GENERATION_CONFLICT"

        # Released afterwards
        assert generate_round_draws(session, round_.id, seed=3).status == "success"

    def test_idle_round_locks_are_dropped(self, session: Session):
        round_ = seed_round(session)
        before = round_locks.tracked_rounds()

        with round_locks.hold(round_.id):
            assert round_locks.tracked_rounds() == before + 1
        generate_round_draws(session, round_.id, seed=3)

        assert round_locks.tracked_rounds() == before


class TestLifecycleFlow:
    def test_regenerate_after_accept_refused(self, session: Session):
        round_ = seed_round(session)
        generate_round_draws(session, round_.id, seed=1)
        accept_round_draws(session, round_.id)

        with pytest.raises(LifecycleViolation) as exc_info:
            generate_round_draws(session, round_.id, seed=2, regenerate=True)
        assert exc_info.value.code == "ROUND_NOT_PENDING"

    def test_reaccept_cycle_replaces_published_rooms(self, session: Session):
        round_ = seed_round(session)
        generate_round_draws(session, round_.id, seed=1)
        accept_round_draws(session, round_.id)

        second = generate_round_draws(session, round_.id, seed=2)
        assert len(get_round_draws(session, round_.id)) == 4

        assert accept_round_draws(session, round_.id) == {"round_id": round_.id, "accepted": 2}
        draws = get_round_draws(session, round_.id)
        assert len(draws) == 2
        assert all(draw.status == DRAW_STATUS_IN_PROGRESS for draw in draws)
        assert all(draw.generation_history_id == second.generation_history_id for draw in draws)

    def test_reaccept_refused_when_published_draw_has_ballot(self, session: Session):
        round_ = seed_round(session)
        first = generate_round_draws(session, round_.id, seed=1)
        accept_round_draws(session, round_.id)
        generate_round_draws(session, round_.id, seed=2)

        published = [d for d in get_round_draws(session, round_.id) if d.generation_history_id == first.generation_history_id]
        confirm_ballot(session, published[0].id, round_.id, status=BALLOT_STATUS_DRAFT)

        with pytest.raises(LifecycleViolation) as exc_info:
            accept_round_draws(session, round_.id)
        assert exc_info.value.code == "BALLOTS_EXIST"

        # Nothing was removed or published
        draws = get_round_draws(session, round_.id)
        assert len(draws) == 4
        assert sum(1 for draw in draws if draw.status == DRAW_STATUS_PENDING) == 2

    def test_complete_round(self, session: Session):
        round_ = seed_round(session)
        generate_round_draws(session, round_.id, seed=1)
        accept_round_draws(session, round_.id)
        for draw in get_round_draws(session, round_.id):
            confirm_ballot(session, draw.id, round_.id)

        assert complete_round_draws(session, round_.id)["completed"] == 2

        with pytest.raises(LifecycleViolation) as exc_info:
            generate_round_draws(session, round_.id, seed=5)
        assert exc_info.value.code == "ROUND_COMPLETED"


class TestRollback:
    def test_rollback_restores_earlier_generation(self, session: Session):
        round_ = seed_round(session, team_count=12, rooms=("A", "B", "C"))
        first = generate_round_draws(session, round_.id, rng=random.Random(1))
        first_rooms = _rooms(session, round_.id)
        generate_round_draws(session, round_.id, rng=random.Random(2), regenerate=True)

        result = rollback_to_generation(session, first.generation_history_id)

        assert result.status == "success"
        assert result.draws_created == 3
        assert _rooms(session, round_.id) == first_rooms
        current = GenerationHistoryStore(session).current_for_round(round_.id)
        assert current.id == first.generation_history_id
        session.refresh(round_)
        assert round_.generation_version == 3

    def test_rollback_reruns_records_without_snapshot(self, session: Session):
        round_ = seed_round(session)
        team_ids = list(session.exec(select(Team.id).order_by(Team.id)).all())
        store = GenerationHistoryStore(session)
        history_id = store.record_generation(
            round_.tournament_id,
            round_.id,
            "random",
            params={"method": "random", "seed": 7, "rooms": ["Room A", "Room B"], "team_ids": team_ids},
        )
        session.commit()

        result = rollback_to_generation(session, history_id)

        assert result.draws_created == 2
        record = session.get(DrawGenerationHistory, history_id)
        assert len(record.snapshot) == 2
        assert all(draw.generation_history_id == history_id for draw in get_round_draws(session, round_.id))

    def test_rollback_refused_once_ballots_exist(self, session: Session):
        round_ = seed_round(session)
        first = generate_round_draws(session, round_.id, seed=1)
        draw = get_round_draws(session, round_.id)[0]
        confirm_ballot(session, draw.id, round_.id)

        with pytest.raises(LifecycleViolation) as exc_info:
            rollback_to_generation(session, first.generation_history_id)
        assert exc_info.value.code == "BALLOTS_EXIST"
        assert session.exec(select(Draw).where(Draw.round_id == round_.id)).all() != []
