"""
Swing teams - placeholders that fill the final room when the team count
does not divide by the room size.

Swing teams are never stored as Team rows. They are recognised by their
institution marker and by having no speakers, and never count as an
institution clash.
"""

from debate_draw.services.entries import TeamEntry

SWING_INSTITUTION = "Swing"
SWING_ID_PREFIX = "swing-"


def slot_letter(slot_index_in_room: int) -> str:
    if slot_index_in_room < 0 or slot_index_in_room >= 26:
        raise ValueError(f"slot index must be in 0..25, got {slot_index_in_room}")
    return chr(ord("A") + slot_index_in_room)


def make_swing_team(slot_index_in_room: int) -> TeamEntry:
    """Build the placeholder for the given slot: slot 0 -> "Swing Team A"."""
    letter = slot_letter(slot_index_in_room)
    return TeamEntry(
        id=f"{SWING_ID_PREFIX}{letter}",
        name=f"Swing Team {letter}",
        institution=SWING_INSTITUTION,
        speakers=(),
        is_swing=True,
    )


def is_swing_team(team: TeamEntry) -> bool:
    if team.is_swing:
        return True
    return team.institution == SWING_INSTITUTION and not team.speakers and team.id.startswith(SWING_ID_PREFIX)
