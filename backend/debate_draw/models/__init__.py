from debate_draw.models.ballot import Ballot
from debate_draw.models.draw import Draw, DrawSlot
from debate_draw.models.generation_history import DrawGenerationHistory
from debate_draw.models.judge import Judge
from debate_draw.models.round import Round
from debate_draw.models.team import Team
from debate_draw.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Team",
    "Judge",
    "Round",
    "Draw",
    "DrawSlot",
    "DrawGenerationHistory",
    "Ballot",
]
