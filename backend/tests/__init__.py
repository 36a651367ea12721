# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from debate_draw.models.ballot import Ballot  # noqa: F401
from debate_draw.models.draw import Draw, DrawSlot  # noqa: F401
from debate_draw.models.generation_history import DrawGenerationHistory  # noqa: F401
from debate_draw.models.judge import Judge  # noqa: F401
from debate_draw.models.round import Round  # noqa: F401
from debate_draw.models.team import Team  # noqa: F401
from debate_draw.models.tournament import Tournament  # noqa: F401
