"""
Read-only participant snapshots handed to the draw engine.

Team and Judge rows are converted into these before a generation run so
that later edits to the registries cannot be observed mid-computation.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from debate_draw.models.judge import Judge
from debate_draw.models.team import Team


@dataclass(frozen=True)
class TeamEntry:
    """Lightweight struct for pairing input."""
    id: str
    name: str
    institution: Optional[str] = None
    speakers: Tuple[str, ...] = field(default_factory=tuple)
    experience_level: Optional[str] = None
    is_swing: bool = False


@dataclass(frozen=True)
class JudgeEntry:
    id: str
    name: str
    institution: Optional[str] = None


def team_entry_from_row(team: Team) -> TeamEntry:
    return TeamEntry(
        id=str(team.id),
        name=team.name,
        institution=team.institution,
        speakers=tuple(team.speakers or ()),
        experience_level=team.experience_level,
    )


def judge_entry_from_row(judge: Judge) -> JudgeEntry:
    return JudgeEntry(id=str(judge.id), name=judge.name, institution=judge.institution)


def normalize_institution(value: Optional[str]) -> str:
    return (value or "").strip().casefold()
