"""
Format catalogue endpoints (read-only).
"""

from typing import List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from debate_draw.exceptions import ValidationError
from debate_draw.services.format_catalog import get_format, list_formats

router = APIRouter()


class FormatResponse(BaseModel):
    code: str
    name: str
    short_name: str
    teams_per_room: int
    speakers_per_team: int
    roles: List[str]
    min_teams: int
    max_teams: int
    default_method: str
    avoid_institution_clashes: bool
    balance_experience: bool


@router.get("/formats", response_model=List[FormatResponse])
def get_formats():
    """List supported debate formats"""
    return [spec.to_dict() for spec in list_formats()]


@router.get("/formats/{code}", response_model=FormatResponse)
def get_format_detail(code: str):
    try:
        return get_format(code).to_dict()
    except ValidationError as e:
        raise HTTPException(status_code=404, detail=str(e))
