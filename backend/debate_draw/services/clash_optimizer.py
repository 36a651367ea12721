"""
Clash Optimizer - single-swap neighbourhood search over a draw order.

The draw order is a flat list of teams that is cut into rooms of
room_size consecutive teams. Cost counts, for every pair of teams that
share a room:
- CLASH_PENALTY if both teams come from the same (non-empty,
  case-insensitive) institution
- repeat_penalty if the pair already met in an earlier round

Search: every swap of two positions of the ORIGINAL order is scored once
and the strictly cheapest arrangement wins; the original order is kept
when nothing is cheaper. Swaps are not chained, so this is an
approximation and can stop above the global minimum (three clashing pairs
spread over three rooms only get down to one clash). Replacing it with an
exact solver changes published draws and has to be done on purpose.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, List, Optional, Sequence, Tuple

from debate_draw.services.entries import TeamEntry, normalize_institution
from debate_draw.services.swing_teams import is_swing_team

CLASH_PENALTY = 100
REPEAT_PENALTY = 50


@dataclass
class InstitutionClash:
    room_index: int
    team_a_id: str
    team_b_id: str
    institution: str


def same_institution(a: TeamEntry, b: TeamEntry) -> bool:
    """True when both teams name the same institution. Swing teams never clash."""
    if is_swing_team(a) or is_swing_team(b):
        return False
    institution = normalize_institution(a.institution)
    return bool(institution) and institution == normalize_institution(b.institution)


def pair_key(a: TeamEntry, b: TeamEntry) -> FrozenSet[str]:
    return frozenset((a.id, b.id))


class ClashOptimizer:
    def __init__(
        self,
        clash_penalty: int = CLASH_PENALTY,
        repeat_penalty: int = REPEAT_PENALTY,
        met_before: Optional[Iterable[FrozenSet[str]]] = None,
    ):
        self.clash_penalty = clash_penalty
        self.repeat_penalty = repeat_penalty
        self.met_before = frozenset(met_before or ())

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def pair_cost(self, a: TeamEntry, b: TeamEntry) -> int:
        cost = 0
        if same_institution(a, b):
            cost += self.clash_penalty
        if self.met_before and not (is_swing_team(a) or is_swing_team(b)) and pair_key(a, b) in self.met_before:
            cost += self.repeat_penalty
        return cost

    def room_score(self, room: Sequence[TeamEntry]) -> int:
        score = 0
        for i in range(len(room)):
            for j in range(i + 1, len(room)):
                score += self.pair_cost(room[i], room[j])
        return score

    def score(self, order: Sequence[TeamEntry], room_size: Optional[int] = None) -> int:
        """Total cost of an order; the whole order is one room when room_size is None."""
        return sum(self.room_score(room) for room in split_rooms(order, room_size))

    def clashes(self, order: Sequence[TeamEntry], room_size: Optional[int] = None) -> List[InstitutionClash]:
        """List same-institution pairs per room (for reporting; never raises)."""
        found: List[InstitutionClash] = []
        for room_index, room in enumerate(split_rooms(order, room_size)):
            for i in range(len(room)):
                for j in range(i + 1, len(room)):
                    if same_institution(room[i], room[j]):
                        found.append(
                            InstitutionClash(
                                room_index=room_index,
                                team_a_id=room[i].id,
                                team_b_id=room[j].id,
                                institution=(room[i].institution or "").strip(),
                            )
                        )
        return found

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def optimize(self, group: Sequence[TeamEntry], room_size: Optional[int] = None) -> List[TeamEntry]:
        """
        Return the cheapest single-swap rearrangement of group.

        Args:
            group: Teams in draw order (not modified)
            room_size: Teams per room; None treats the whole group as one room

        Returns:
            A new list holding the same teams
        """
        original = list(group)
        n = len(original)
        if n < 2:
            return original

        size = room_size if room_size and room_size > 0 else n
        rooms = split_rooms(original, size)
        room_scores = [self.room_score(room) for room in rooms]
        total = sum(room_scores)

        best_swap: Optional[Tuple[int, int]] = None
        best_score = total

        for i in range(n):
            for j in range(i + 1, n):
                room_i, room_j = i // size, j // size
                if room_i == room_j:
                    # Reordering inside one room leaves every co-membership unchanged
                    continue
                new_i = self._swapped_room_score(rooms[room_i], i % size, original[j])
                new_j = self._swapped_room_score(rooms[room_j], j % size, original[i])
                candidate = total - room_scores[room_i] - room_scores[room_j] + new_i + new_j
                if candidate < best_score:
                    best_score = candidate
                    best_swap = (i, j)

        if best_swap is None:
            return original

        i, j = best_swap
        best = original[:]
        best[i], best[j] = best[j], best[i]
        return best

    def _swapped_room_score(self, room: List[TeamEntry], position: int, incoming: TeamEntry) -> int:
        replaced = room[:]
        replaced[position] = incoming
        return self.room_score(replaced)


def split_rooms(order: Sequence[TeamEntry], room_size: Optional[int]) -> List[List[TeamEntry]]:
    items = list(order)
    if not room_size or room_size <= 0:
        return [items] if items else []
    return [items[start:start + room_size] for start in range(0, len(items), room_size)]
