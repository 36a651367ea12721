"""
Pairing Engine - Single source of truth for draw generation.

Given teams, judges, room labels and a format, produce one RoomAssignment
per room for a round:
1. Order the team pool (random shuffle, or strength order for ranked methods)
2. Decide how many rooms are used and bench whoever does not fit
3. Let the ClashOptimizer improve the room partition
4. Pad the final partial room with swing teams
5. Fill role slots in format order and allocate a judge per room

Pure computation: no sessions, no I/O. The only randomness comes from the
injected rng (or a random.Random seeded from options.seed).
"""

import logging
import math
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from debate_draw.exceptions import ValidationError
from debate_draw.services import judge_allocator
from debate_draw.services.clash_optimizer import ClashOptimizer, InstitutionClash
from debate_draw.services.entries import JudgeEntry, TeamEntry
from debate_draw.services.format_catalog import FORMATS, RANKED_METHODS, FormatSpec, validate_method
from debate_draw.services.judge_allocator import JudgeConflict
from debate_draw.services.swing_teams import is_swing_team, make_swing_team

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Constants
# -----------------------------------------------------------------------------

# swing_fill: the final partial room is padded with swing teams
# drop: only full rooms are drawn; the remainder is benched
LEFTOVER_POLICIES: Tuple[str, ...] = ("swing_fill", "drop")

# Experience levels as strength input for balanced draws (higher = stronger)
EXPERIENCE_RANK: Dict[str, int] = {
    "novice": 0,
    "intermediate": 1,
    "open": 2,
    "pro": 3,
}


# -----------------------------------------------------------------------------
# Data Models
# -----------------------------------------------------------------------------

@dataclass
class DrawOptions:
    method: str = "random"
    avoid_institution_clashes: bool = True
    balance_experience: bool = False
    leftover_policy: str = "swing_fill"
    team_strengths: Optional[Dict[str, float]] = None  # team id -> strength, supplied by the caller
    seed: Optional[int] = None

    @classmethod
    def for_format(cls, spec: FormatSpec, **overrides) -> "DrawOptions":
        """Options seeded from the format's defaults; None overrides are ignored."""
        values = {
            "method": spec.default_method,
            "avoid_institution_clashes": spec.avoid_institution_clashes,
            "balance_experience": spec.balance_experience,
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)

    def to_params(self) -> dict:
        return {
            "method": self.method,
            "avoid_institution_clashes": self.avoid_institution_clashes,
            "balance_experience": self.balance_experience,
            "leftover_policy": self.leftover_policy,
            "team_strengths": dict(self.team_strengths) if self.team_strengths else None,
            "seed": self.seed,
        }


@dataclass
class RoomAssignment:
    room: str
    room_index: int
    slots: List[Tuple[str, TeamEntry]]  # (role, team) in format role order
    judge: Optional[JudgeEntry] = None

    @property
    def teams(self) -> List[TeamEntry]:
        return [team for _, team in self.slots]

    def team_for(self, role: str) -> Optional[TeamEntry]:
        for slot_role, team in self.slots:
            if slot_role == role:
                return team
        return None

    def to_dict(self) -> dict:
        return {
            "room": self.room,
            "room_index": self.room_index,
            "slots": [
                {
                    "role": role,
                    "team_id": None if is_swing_team(team) else team.id,
                    "team_name": team.name,
                    "is_swing": is_swing_team(team),
                }
                for role, team in self.slots
            ],
            "judge_id": self.judge.id if self.judge else None,
            "judge_name": self.judge.name if self.judge else None,
        }


@dataclass
class DrawPlan:
    """Output of a generation run, with diagnostics."""
    format_code: str
    method: str  # method actually applied ("random" when ranked input was missing)
    assignments: List[RoomAssignment] = field(default_factory=list)
    unplaced: List[TeamEntry] = field(default_factory=list)
    clash_score_before: int = 0
    clash_score_after: int = 0
    institution_clashes: List[InstitutionClash] = field(default_factory=list)
    judge_conflicts: List[JudgeConflict] = field(default_factory=list)

    @property
    def swing_count(self) -> int:
        return sum(1 for room in self.assignments for team in room.teams if is_swing_team(team))


# -----------------------------------------------------------------------------
# Strategies
# -----------------------------------------------------------------------------

class PairingStrategy:
    """Per-format pairing rules: room size and role names come from the FormatSpec."""

    def __init__(self, spec: FormatSpec):
        self.spec = spec

    @property
    def teams_per_room(self) -> int:
        return self.spec.teams_per_room

    @property
    def roles(self) -> Tuple[str, ...]:
        return self.spec.roles

    def room_count(self, team_count: int, labels_available: int, leftover_policy: str) -> int:
        k = self.teams_per_room
        if leftover_policy == "drop":
            needed = team_count // k
        else:
            needed = math.ceil(team_count / k)
        return min(needed, labels_available)

    def order_pool(
        self, teams: Sequence[TeamEntry], options: DrawOptions, rng: random.Random
    ) -> Tuple[List[TeamEntry], str]:
        """
        Return the pool in draw order and the method actually applied.

        Ranked methods shuffle first, so teams on equal strength end up in
        random order after the stable sort.
        """
        pool = list(teams)
        rng.shuffle(pool)

        if options.method not in RANKED_METHODS:
            return pool, "random"

        strengths = resolve_strengths(pool, options)
        if strengths is None:
            logger.info("DRAW: %s requested without strength input, falling back to random", options.method)
            return pool, "random"

        pool.sort(key=lambda team: strengths.get(team.id, 0.0), reverse=True)
        return pool, options.method

    def deal_rooms(self, ordered: List[TeamEntry], method: str, room_count: int) -> List[TeamEntry]:
        """Arrange placed teams into room blocks; balanced spreads strength serpentine."""
        if method != "balanced" or room_count <= 1:
            return ordered
        k = self.teams_per_room
        capacities = [k] * (room_count - 1) + [len(ordered) - k * (room_count - 1)]
        return serpentine_deal(ordered, capacities)

    def fill_slots(self, group: Sequence[TeamEntry]) -> List[Tuple[str, TeamEntry]]:
        return list(zip(self.roles, group))


# Dispatch table: format code -> strategy
PAIRING_STRATEGIES: Dict[str, PairingStrategy] = {code: PairingStrategy(spec) for code, spec in FORMATS.items()}


def resolve_strengths(teams: Sequence[TeamEntry], options: DrawOptions) -> Optional[Dict[str, float]]:
    if options.team_strengths:
        return {str(team_id): float(value) for team_id, value in options.team_strengths.items()}

    if options.method == "balanced" and options.balance_experience:
        ranked = {
            team.id: float(EXPERIENCE_RANK[team.experience_level])
            for team in teams
            if team.experience_level in EXPERIENCE_RANK
        }
        if ranked:
            return ranked
    return None


def serpentine_deal(ordered: Sequence[TeamEntry], capacities: Sequence[int]) -> List[TeamEntry]:
    """Deal ordered teams to rooms 1..R, R..1, 1..R, skipping full rooms."""
    rooms: List[List[TeamEntry]] = [[] for _ in capacities]
    pending = deque(ordered)
    indexes = list(range(len(capacities)))
    forward = True
    while pending:
        for room_index in indexes if forward else reversed(indexes):
            if pending and len(rooms[room_index]) < capacities[room_index]:
                rooms[room_index].append(pending.popleft())
        forward = not forward
    return [team for room in rooms for team in room]


# -----------------------------------------------------------------------------
# Engine
# -----------------------------------------------------------------------------

class PairingEngine:
    def __init__(self, strategies: Optional[Dict[str, PairingStrategy]] = None):
        self.strategies = strategies if strategies is not None else PAIRING_STRATEGIES

    def strategy_for(self, spec: FormatSpec) -> PairingStrategy:
        if spec is None:
            raise ValidationError("A format is required", code="UNKNOWN_FORMAT")
        strategy = self.strategies.get(spec.code)
        if strategy is None:
            raise ValidationError(f"No pairing strategy for format '{spec.code}'", code="UNKNOWN_FORMAT")
        return strategy

    def generate(
        self,
        teams: Sequence[TeamEntry],
        judges: Sequence[JudgeEntry],
        rooms: Sequence[str],
        format_spec: FormatSpec,
        options: DrawOptions,
        rng: Optional[random.Random] = None,
    ) -> List[RoomAssignment]:
        return self.build_plan(teams, judges, rooms, format_spec, options, rng=rng).assignments

    def build_plan(
        self,
        teams: Sequence[TeamEntry],
        judges: Sequence[JudgeEntry],
        rooms: Sequence[str],
        format_spec: FormatSpec,
        options: DrawOptions,
        rng: Optional[random.Random] = None,
        met_before: Optional[Iterable[FrozenSet[str]]] = None,
    ) -> DrawPlan:
        """
        Generate a complete draw for one round.

        Args:
            teams: Real teams to draw (never modified)
            judges: Judge pool in allocation order (never modified)
            rooms: Room labels; room i of the result uses rooms[i]
            format_spec: Format from the catalog
            options: Method, clash avoidance, leftover policy, strengths, seed
            rng: Random source; defaults to random.Random(options.seed)
            met_before: Team id pairs that already shared a room this tournament

        Returns:
            DrawPlan with one RoomAssignment per used room, in label order

        Raises:
            ValidationError: If the inputs cannot produce a draw (nothing is computed)
        """
        strategy = self.strategy_for(format_spec)
        team_list = list(teams)
        judge_list = list(judges)
        labels = list(rooms)
        validate_inputs(team_list, labels, format_spec, options)

        rng = rng if rng is not None else random.Random(options.seed)
        k = strategy.teams_per_room

        ordered, method = strategy.order_pool(team_list, options, rng)
        room_count = strategy.room_count(len(ordered), len(labels), options.leftover_policy)
        if room_count == 0:
            raise ValidationError(
                f"{len(ordered)} teams cannot fill a {format_spec.short_name} room of {k}",
                code="INSUFFICIENT_TEAMS",
            )

        placed = ordered[: min(len(ordered), room_count * k)]
        unplaced = ordered[len(placed):]
        placed = strategy.deal_rooms(placed, method, room_count)

        optimizer = ClashOptimizer(met_before=met_before)
        score_before = optimizer.score(placed, k)
        if options.avoid_institution_clashes:
            placed = optimizer.optimize(placed, k)
        score_after = optimizer.score(placed, k)

        shortfall = room_count * k - len(placed)
        seated = placed + [make_swing_team(slot) for slot in range(k - shortfall, k)]

        plan = DrawPlan(
            format_code=format_spec.code,
            method=method,
            unplaced=unplaced,
            clash_score_before=score_before,
            clash_score_after=score_after,
            institution_clashes=optimizer.clashes(seated, k),
        )
        for room_index in range(room_count):
            group = seated[room_index * k:(room_index + 1) * k]
            judge = judge_allocator.assign(judge_list, room_index)
            plan.assignments.append(
                RoomAssignment(
                    room=labels[room_index],
                    room_index=room_index,
                    slots=strategy.fill_slots(group),
                    judge=judge,
                )
            )
            plan.judge_conflicts.extend(judge_allocator.find_conflicts(judge, group, room_index))

        if unplaced:
            logger.warning(
                "DRAW: %d team(s) unplaced (%d rooms available, policy=%s): %s",
                len(unplaced),
                len(labels),
                options.leftover_policy,
                ", ".join(team.name for team in unplaced),
            )
        logger.info(
            "DRAW: format=%s method=%s rooms=%d swing=%d clash_score %d -> %d",
            format_spec.code,
            method,
            room_count,
            plan.swing_count,
            score_before,
            score_after,
        )
        return plan


def validate_inputs(teams: List[TeamEntry], rooms: List[str], spec: FormatSpec, options: DrawOptions) -> None:
    """Reject inputs that cannot produce a draw, before any computation."""
    validate_method(options.method)
    if options.leftover_policy not in LEFTOVER_POLICIES:
        raise ValidationError(
            f"Unknown leftover policy '{options.leftover_policy}'. Supported: {', '.join(LEFTOVER_POLICIES)}",
            code="UNKNOWN_LEFTOVER_POLICY",
        )

    if not rooms:
        raise ValidationError("No rooms available for draw generation", code="NO_ROOMS")
    blank = [label for label in rooms if not label or not str(label).strip()]
    if blank:
        raise ValidationError("Room labels must not be blank", code="INVALID_ROOM_LABEL")
    duplicates = sorted({label for label in rooms if rooms.count(label) > 1})
    if duplicates:
        raise ValidationError(f"Duplicate room labels: {', '.join(duplicates)}", code="DUPLICATE_ROOM")

    if not teams:
        raise ValidationError("No teams available for draw generation", code="NO_TEAMS")
    if len(teams) < spec.min_teams:
        raise ValidationError(
            f"Minimum {spec.min_teams} teams required for {spec.name}, got {len(teams)}",
            code="INSUFFICIENT_TEAMS",
        )
    if len(teams) > spec.max_teams:
        raise ValidationError(
            f"Maximum {spec.max_teams} teams allowed for {spec.name}, got {len(teams)}",
            code="TOO_MANY_TEAMS",
        )

    seen = set()
    for team in teams:
        if is_swing_team(team):
            raise ValidationError(f"Swing team '{team.name}' cannot be drawn as a real team", code="SWING_TEAM_INPUT")
        if team.id in seen:
            raise ValidationError(f"Team {team.id} appears more than once", code="DUPLICATE_TEAM")
        seen.add(team.id)
