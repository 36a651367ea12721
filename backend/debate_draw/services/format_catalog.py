"""
Format Catalog - debate formats the draw engine can pair for.

Static configuration: teams per room, speakers per team and the ordered
role slots of each format. All other modules must look formats up here.
"""

from dataclasses import dataclass
from typing import Dict, List, Literal, Tuple

from debate_draw.exceptions import ValidationError

# =============================================================================
# Draw methods
# =============================================================================

DrawMethod = Literal["random", "power_pairing", "swiss", "balanced"]

DRAW_METHODS: Tuple[str, ...] = ("random", "power_pairing", "swiss", "balanced")

# Strength-ordered methods; they fall back to "random" without strength input
RANKED_METHODS: Tuple[str, ...] = ("power_pairing", "swiss", "balanced")


# =============================================================================
# Format specifications
# =============================================================================


@dataclass(frozen=True)
class FormatSpec:
    code: str
    name: str
    short_name: str
    teams_per_room: int
    speakers_per_team: int
    roles: Tuple[str, ...]
    min_teams: int
    max_teams: int
    default_method: str = "random"
    avoid_institution_clashes: bool = True
    balance_experience: bool = False

    def __post_init__(self):
        if len(self.roles) != self.teams_per_room:
            raise ValueError(f"Format {self.code}: {len(self.roles)} roles for {self.teams_per_room} teams per room")

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "short_name": self.short_name,
            "teams_per_room": self.teams_per_room,
            "speakers_per_team": self.speakers_per_team,
            "roles": list(self.roles),
            "min_teams": self.min_teams,
            "max_teams": self.max_teams,
            "default_method": self.default_method,
            "avoid_institution_clashes": self.avoid_institution_clashes,
            "balance_experience": self.balance_experience,
        }


FORMATS: Dict[str, FormatSpec] = {
    "bp": FormatSpec(
        code="bp",
        name="British Parliamentary",
        short_name="BP",
        teams_per_room=4,
        speakers_per_team=2,
        roles=("OG", "OO", "CG", "CO"),
        min_teams=4,
        max_teams=400,
        default_method="power_pairing",
        balance_experience=True,
    ),
    "wsdc": FormatSpec(
        code="wsdc",
        name="World Schools Debate Championship",
        short_name="WSDC",
        teams_per_room=2,
        speakers_per_team=3,
        roles=("Proposition", "Opposition"),
        min_teams=4,
        max_teams=64,
        default_method="power_pairing",
    ),
    "ap": FormatSpec(
        code="ap",
        name="American Parliamentary",
        short_name="AP",
        teams_per_room=2,
        speakers_per_team=2,
        roles=("Government", "Opposition"),
        min_teams=4,
        max_teams=200,
        default_method="power_pairing",
        balance_experience=True,
    ),
    "cp": FormatSpec(
        code="cp",
        name="Canadian Parliamentary",
        short_name="CP",
        teams_per_room=4,
        speakers_per_team=2,
        roles=("Government Member", "Opposition Member", "Government Whip", "Opposition Whip"),
        min_teams=4,
        max_teams=300,
        default_method="power_pairing",
        balance_experience=True,
    ),
    "pf": FormatSpec(
        code="pf",
        name="Public Forum",
        short_name="PF",
        teams_per_room=2,
        speakers_per_team=2,
        roles=("Pro", "Con"),
        min_teams=4,
        max_teams=100,
    ),
    "ld": FormatSpec(
        code="ld",
        name="Lincoln-Douglas",
        short_name="LD",
        teams_per_room=2,
        speakers_per_team=1,
        roles=("Affirmative", "Negative"),
        min_teams=4,
        max_teams=64,
        avoid_institution_clashes=False,
    ),
    "policy": FormatSpec(
        code="policy",
        name="Policy Debate",
        short_name="Policy",
        teams_per_room=2,
        speakers_per_team=2,
        roles=("Affirmative", "Negative"),
        min_teams=4,
        max_teams=100,
    ),
}


def normalize_format_code(code: str) -> str:
    """Normalize a format code string to its catalog key."""
    return (code or "").strip().lower()


def get_format(code: str) -> FormatSpec:
    """
    Look up a format by code.

    Raises:
        ValidationError: If the code is not in the catalog
    """
    spec = FORMATS.get(normalize_format_code(code))
    if spec is None:
        raise ValidationError(
            f"Unknown format '{code}'. Supported: {', '.join(sorted(FORMATS))}",
            code="UNKNOWN_FORMAT",
        )
    return spec


def list_formats() -> List[FormatSpec]:
    return [FORMATS[code] for code in sorted(FORMATS)]


def validate_method(method: str) -> str:
    if method not in DRAW_METHODS:
        raise ValidationError(
            f"Unknown draw method '{method}'. Supported: {', '.join(DRAW_METHODS)}",
            code="UNKNOWN_METHOD",
        )
    return method
