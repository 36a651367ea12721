"""
Round Guards and Utilities

Reusable lookups for route handlers:
- 404 when a tournament, round or generation record does not exist
- ownership checks between a round and its tournament
- mapping of draw engine errors to HTTP responses
"""

from fastapi import HTTPException
from sqlmodel import Session

from debate_draw.exceptions import DrawError, GenerationConflict, LifecycleViolation, PersistenceFailure, ValidationError
from debate_draw.models.generation_history import DrawGenerationHistory
from debate_draw.models.round import Round
from debate_draw.models.tournament import Tournament


def get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


def get_round_or_404(session: Session, round_id: int, tournament_id: int = None) -> Round:
    """
    Load a round, optionally checking it belongs to a tournament.

    Raises:
        HTTPException 404: Round not found, or owned by another tournament
    """
    round_ = session.get(Round, round_id)

    if not round_:
        raise HTTPException(status_code=404, detail="Round not found")

    if tournament_id and round_.tournament_id != tournament_id:
        raise HTTPException(status_code=404, detail=f"Round {round_id} does not belong to tournament {tournament_id}")

    return round_


def get_history_or_404(session: Session, history_id: int) -> DrawGenerationHistory:
    record = session.get(DrawGenerationHistory, history_id)
    if not record:
        raise HTTPException(status_code=404, detail="Generation history record not found")
    return record


def http_error_for(error: DrawError) -> HTTPException:
    """Translate a draw engine error into the HTTPException a route should raise."""
    if isinstance(error, ValidationError):
        status_code = 422
    elif isinstance(error, (LifecycleViolation, GenerationConflict)):
        status_code = 409
    elif isinstance(error, PersistenceFailure):
        status_code = 503
    else:
        status_code = 500
    return HTTPException(status_code=status_code, detail=str(error))
