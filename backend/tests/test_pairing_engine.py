"""
Tests for the pairing engine: room counts, swing fill, leftover policy,
ranked methods and input validation.
"""

import random

import pytest

from debate_draw.exceptions import ValidationError
from debate_draw.services.entries import JudgeEntry, TeamEntry
from debate_draw.services.format_catalog import get_format
from debate_draw.services.pairing_engine import DrawOptions, PairingEngine, serpentine_deal
from debate_draw.services.swing_teams import is_swing_team, make_swing_team
from tests.factories import IdentityShuffleRandom, make_judges, make_teams

BP = get_format("bp")
PF = get_format("pf")


@pytest.fixture
def engine():
    return PairingEngine()


def _real_ids(plan):
    return [team.id for room in plan.assignments for team in room.teams if not is_swing_team(team)]


class TestScenarios:
    def test_eight_teams_two_bp_rooms(self, engine):
        """8 teams, no judges, 2 labels: two full rooms and no swing teams."""
        plan = engine.build_plan(make_teams(8), [], ["Room 1", "Room 2"], BP, DrawOptions(), rng=random.Random(1))

        assert [room.room for room in plan.assignments] == ["Room 1", "Room 2"]
        assert all(len(room.slots) == 4 for room in plan.assignments)
        assert [role for role, _ in plan.assignments[0].slots] == ["OG", "OO", "CG", "CO"]
        assert plan.swing_count == 0
        assert all(room.judge is None for room in plan.assignments)
        assert sorted(_real_ids(plan)) == sorted(str(i) for i in range(1, 9))

    def test_five_teams_one_label_benches_one(self, engine, identity_rng):
        plan = engine.build_plan(make_teams(5), [], ["Room 1"], BP, DrawOptions(), rng=identity_rng)

        assert len(plan.assignments) == 1
        assert [t.id for t in plan.assignments[0].teams] == ["1", "2", "3", "4"]
        assert [t.id for t in plan.unplaced] == ["5"]

    def test_five_teams_two_labels_swing_fill(self, engine, identity_rng):
        plan = engine.build_plan(make_teams(5), [], ["Room 1", "Room 2"], BP, DrawOptions(), rng=identity_rng)

        last = plan.assignments[1].teams
        assert [t.id for t in last[:1]] == ["5"]
        assert all(is_swing_team(t) for t in last[1:])
        assert [t.name for t in last[1:]] == ["Swing Team B", "Swing Team C", "Swing Team D"]
        assert plan.unplaced == []
        assert plan.swing_count == 3

    def test_five_teams_two_labels_drop(self, engine, identity_rng):
        options = DrawOptions(leftover_policy="drop")
        plan = engine.build_plan(make_teams(5), [], ["Room 1", "Room 2"], BP, options, rng=identity_rng)

        assert len(plan.assignments) == 1
        assert plan.swing_count == 0
        assert [t.id for t in plan.unplaced] == ["5"]

    def test_paired_institutions_reach_score_100(self, engine, identity_rng):
        teams = make_teams(6, ["A", "A", "B", "B", "C", "C"])
        plan = engine.build_plan(teams, [], ["R1", "R2", "R3"], PF, DrawOptions(), rng=identity_rng)

        assert plan.clash_score_before == 300
        assert plan.clash_score_after == 100
        assert len(plan.institution_clashes) == 1


class TestRoomCounts:
    @pytest.mark.parametrize(
        "team_count,labels,policy,expected_rooms",
        [
            (9, 10, "swing_fill", 3),
            (9, 10, "drop", 2),
            (9, 2, "swing_fill", 2),
            (16, 4, "swing_fill", 4),
            (17, 10, "drop", 4),
        ],
    )
    def test_room_count(self, engine, team_count, labels, policy, expected_rooms):
        rooms = [f"Room {i}" for i in range(labels)]
        options = DrawOptions(leftover_policy=policy)
        plan = engine.build_plan(make_teams(team_count), [], rooms, BP, options, rng=random.Random(3))

        assert len(plan.assignments) == expected_rooms
        placed = len(_real_ids(plan))
        assert placed + len(plan.unplaced) == team_count

    def test_no_team_drawn_twice(self, engine):
        rng = random.Random(11)
        for _ in range(30):
            n = rng.randint(4, 30)
            teams = make_teams(n, [rng.choice(["A", "B", "C"]) for _ in range(n)])
            rooms = [f"Room {i}" for i in range(rng.randint(1, 10))]
            plan = engine.build_plan(teams, [], rooms, BP, DrawOptions(seed=rng.randint(0, 10**6)))

            ids = _real_ids(plan) + [t.id for t in plan.unplaced]
            assert len(ids) == len(set(ids)) == n
            for room in plan.assignments[:-1]:
                assert not any(is_swing_team(t) for t in room.teams)


class TestJudges:
    def test_round_robin_over_rooms(self, engine):
        rooms = ["R1", "R2", "R3"]
        plan = engine.build_plan(make_teams(12), make_judges(2), rooms, BP, DrawOptions(), rng=random.Random(5))
        assert [room.judge.id for room in plan.assignments] == ["101", "102", "101"]

    def test_judge_conflicts_reported(self, engine, identity_rng):
        teams = make_teams(4)
        judges = [JudgeEntry(id="1", name="Conflicted", institution="Inst 1")]
        plan = engine.build_plan(teams, judges, ["R1"], BP, DrawOptions(), rng=identity_rng)
        assert [(c.judge_id, c.team_id) for c in plan.judge_conflicts] == [("1", "1")]


class TestMethods:
    def test_seed_reproduces_draw(self, engine):
        teams = make_teams(12)
        rooms = ["R1", "R2", "R3"]
        first = engine.build_plan(teams, [], rooms, BP, DrawOptions(seed=99))
        second = engine.build_plan(teams, [], rooms, BP, DrawOptions(seed=99))
        assert [a.to_dict() for a in first.assignments] == [a.to_dict() for a in second.assignments]

    def test_power_pairing_orders_by_strength(self, engine, identity_rng):
        strengths = {str(i): float(i) for i in range(1, 9)}
        options = DrawOptions(method="power_pairing", team_strengths=strengths)
        plan = engine.build_plan(make_teams(8), [], ["R1", "R2"], BP, options, rng=identity_rng)

        assert plan.method == "power_pairing"
        assert [t.id for t in plan.assignments[0].teams] == ["8", "7", "6", "5"]
        assert [t.id for t in plan.assignments[1].teams] == ["4", "3", "2", "1"]

    def test_ranked_method_without_strengths_falls_back_to_random(self, engine, identity_rng):
        plan = engine.build_plan(make_teams(8), [], ["R1", "R2"], BP, DrawOptions(method="swiss"), rng=identity_rng)
        assert plan.method == "random"

    def test_balanced_deals_serpentine(self, engine, identity_rng):
        strengths = {str(i): float(9 - i) for i in range(1, 9)}  # team 1 strongest
        options = DrawOptions(method="balanced", team_strengths=strengths)
        plan = engine.build_plan(make_teams(8), [], ["R1", "R2"], BP, options, rng=identity_rng)

        assert plan.method == "balanced"
        assert [t.id for t in plan.assignments[0].teams] == ["1", "4", "5", "8"]
        assert [t.id for t in plan.assignments[1].teams] == ["2", "3", "6", "7"]

    def test_balanced_uses_experience_levels(self, engine, identity_rng):
        levels = ["pro", "open", "intermediate", "novice"] * 2
        teams = [
            TeamEntry(id=str(i + 1), name=f"T{i + 1}", institution=f"I{i + 1}", experience_level=level)
            for i, level in enumerate(levels)
        ]
        options = DrawOptions(method="balanced", balance_experience=True)
        plan = engine.build_plan(teams, [], ["R1", "R2"], BP, options, rng=identity_rng)

        assert plan.method == "balanced"
        for room in plan.assignments:
            assert sorted(t.experience_level for t in room.teams) == ["intermediate", "novice", "open", "pro"]

    def test_serpentine_respects_short_last_room(self):
        teams = make_teams(6)
        dealt = serpentine_deal(teams, [4, 2])
        assert [t.id for t in dealt] == ["1", "4", "5", "6", "2", "3"]

    def test_options_from_format_defaults(self):
        options = DrawOptions.for_format(BP, method=None, seed=5)
        assert options.method == "power_pairing"
        assert options.balance_experience is True
        assert options.seed == 5
        assert DrawOptions.for_format(get_format("ld")).avoid_institution_clashes is False


class TestValidation:
    @pytest.mark.parametrize(
        "teams,rooms,options,code",
        [
            (make_teams(8), [], DrawOptions(), "NO_ROOMS"),
            (make_teams(8), ["R1", " "], DrawOptions(), "INVALID_ROOM_LABEL"),
            (make_teams(8), ["R1", "R1"], DrawOptions(), "DUPLICATE_ROOM"),
            ([], ["R1"], DrawOptions(), "NO_TEAMS"),
            (make_teams(3), ["R1"], DrawOptions(), "INSUFFICIENT_TEAMS"),
            (make_teams(8), ["R1"], DrawOptions(method="knockout"), "UNKNOWN_METHOD"),
            (make_teams(8), ["R1"], DrawOptions(leftover_policy="pad"), "UNKNOWN_LEFTOVER_POLICY"),
            (make_teams(7) + [make_swing_team(0)], ["R1"], DrawOptions(), "SWING_TEAM_INPUT"),
            (make_teams(7) + make_teams(1), ["R1"], DrawOptions(), "DUPLICATE_TEAM"),
        ],
    )
    def test_rejected_before_computation(self, engine, teams, rooms, options, code):
        with pytest.raises(ValidationError) as exc_info:
            engine.build_plan(teams, [], rooms, BP, options)
        assert exc_info.value.code == code

    def test_too_many_teams(self, engine):
        with pytest.raises(ValidationError) as exc_info:
            engine.build_plan(make_teams(65), [], ["R1"], get_format("ld"), DrawOptions())
        assert exc_info.value.code == "TOO_MANY_TEAMS"

    def test_inputs_not_mutated(self, engine):
        teams = make_teams(10)
        judges = make_judges(3)
        rooms = ["R1", "R2", "R3"]
        snapshot = (list(teams), list(judges), list(rooms))
        engine.generate(teams, judges, rooms, BP, DrawOptions(seed=1))
        assert (teams, judges, rooms) == snapshot
