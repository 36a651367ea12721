"""
Judge Allocator - round-robin judge per room.

Room i gets judges[i mod len(judges)]. Judge/team institution conflicts
are reported by find_conflicts but not avoided; the allocation stays a
pure function of room index and judge order.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

from debate_draw.services.entries import JudgeEntry, TeamEntry, normalize_institution
from debate_draw.services.swing_teams import is_swing_team


@dataclass
class JudgeConflict:
    room_index: int
    judge_id: str
    team_id: str
    institution: str
    reason: str


def assign(judges: Sequence[JudgeEntry], room_index: int) -> Optional[JudgeEntry]:
    if not judges:
        return None
    return judges[room_index % len(judges)]


def find_conflicts(judge: Optional[JudgeEntry], teams: Sequence[TeamEntry], room_index: int) -> List[JudgeConflict]:
    """Report teams in the room sharing the judge's institution."""
    if judge is None:
        return []
    institution = normalize_institution(judge.institution)
    if not institution:
        return []

    conflicts: List[JudgeConflict] = []
    for team in teams:
        if is_swing_team(team):
            continue
        if normalize_institution(team.institution) == institution:
            conflicts.append(
                JudgeConflict(
                    room_index=room_index,
                    judge_id=judge.id,
                    team_id=team.id,
                    institution=(judge.institution or "").strip(),
                    reason=f"Judge '{judge.name}' and team '{team.name}' are both from '{judge.institution.strip()}'",
                )
            )
    return conflicts
