"""
Minimal registration endpoints: tournaments, teams, judges and rounds.

Just enough to feed the draw engine; the full registries live elsewhere.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from debate_draw.database import get_session
from debate_draw.exceptions import ValidationError
from debate_draw.models.judge import Judge
from debate_draw.models.round import Round
from debate_draw.models.team import Team
from debate_draw.models.tournament import Tournament
from debate_draw.services.format_catalog import get_format
from debate_draw.services.pairing_engine import EXPERIENCE_RANK
from debate_draw.utils.round_guards import get_tournament_or_404

router = APIRouter()


# ============================================================================
# Request/Response Models
# ============================================================================


class TournamentCreate(BaseModel):
    name: str
    format: str = "bp"

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()


class TournamentResponse(BaseModel):
    id: int
    name: str
    format: str
    created_at: datetime

    class Config:
        from_attributes = True


class TeamCreate(BaseModel):
    name: str
    institution: Optional[str] = None
    speakers: Optional[List[str]] = None
    experience_level: Optional[str] = None

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name is required")
        return v.strip()

    @field_validator("experience_level")
    @classmethod
    def validate_experience_level(cls, v):
        if v is None:
            return v
        level = v.strip().lower()
        if level not in EXPERIENCE_RANK:
            raise ValueError(f"experience_level must be one of {', '.join(EXPERIENCE_RANK)}")
        return level


class TeamResponse(BaseModel):
    id: int
    tournament_id: int
    name: str
    institution: Optional[str]
    speakers: Optional[List[str]] = None
    experience_level: Optional[str]

    class Config:
        from_attributes = True


class JudgeCreate(BaseModel):
    name: str
    institution: Optional[str] = None


class JudgeResponse(BaseModel):
    id: int
    tournament_id: int
    name: str
    institution: Optional[str]

    class Config:
        from_attributes = True


class RoundCreate(BaseModel):
    round_number: int
    motion: Optional[str] = None
    rooms: Optional[List[str]] = None

    @field_validator("rooms")
    @classmethod
    def normalize_rooms(cls, v):
        if v is None:
            return v
        return [label.strip() for label in v]


class RoundResponse(BaseModel):
    id: int
    tournament_id: int
    round_number: int
    motion: Optional[str]
    rooms: Optional[List[str]] = None
    generation_version: int

    class Config:
        from_attributes = True


# ============================================================================
# Tournaments
# ============================================================================


@router.get("/tournaments", response_model=List[TournamentResponse])
def list_tournaments(session: Session = Depends(get_session)):
    """List all tournaments"""
    return session.exec(select(Tournament).order_by(Tournament.id)).all()


@router.post("/tournaments", response_model=TournamentResponse, status_code=201)
def create_tournament(tournament_data: TournamentCreate, session: Session = Depends(get_session)):
    try:
        spec = get_format(tournament_data.format)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    tournament = Tournament(name=tournament_data.name, format=spec.code)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)
    return tournament


@router.get("/tournaments/{tournament_id}", response_model=TournamentResponse)
def get_tournament(tournament_id: int, session: Session = Depends(get_session)):
    return get_tournament_or_404(session, tournament_id)


# ============================================================================
# Teams / Judges
# ============================================================================


@router.get("/tournaments/{tournament_id}/teams", response_model=List[TeamResponse])
def list_teams(tournament_id: int, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    return session.exec(select(Team).where(Team.tournament_id == tournament_id).order_by(Team.id)).all()


@router.post("/tournaments/{tournament_id}/teams", response_model=TeamResponse, status_code=201)
def create_team(tournament_id: int, team_data: TeamCreate, session: Session = Depends(get_session)):
    tournament = get_tournament_or_404(session, tournament_id)

    speakers_per_team = get_format(tournament.format).speakers_per_team
    if team_data.speakers and len(team_data.speakers) > speakers_per_team:
        raise HTTPException(
            status_code=422,
            detail=(
                f"TOO_MANY_SPEAKERS: {len(team_data.speakers)} speakers given, "
                f"format '{tournament.format}' allows at most {speakers_per_team}"
            ),
        )

    team = Team(tournament_id=tournament_id, **team_data.model_dump())
    session.add(team)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=409,
            detail=f"DUPLICATE_TEAM_NAME: Team '{team_data.name}' already exists in this tournament",
        )
    session.refresh(team)
    return team


@router.get("/tournaments/{tournament_id}/judges", response_model=List[JudgeResponse])
def list_judges(tournament_id: int, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    return session.exec(select(Judge).where(Judge.tournament_id == tournament_id).order_by(Judge.id)).all()


@router.post("/tournaments/{tournament_id}/judges", response_model=JudgeResponse, status_code=201)
def create_judge(tournament_id: int, judge_data: JudgeCreate, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)

    judge = Judge(tournament_id=tournament_id, **judge_data.model_dump())
    session.add(judge)
    session.commit()
    session.refresh(judge)
    return judge


# ============================================================================
# Rounds
# ============================================================================


@router.get("/tournaments/{tournament_id}/rounds", response_model=List[RoundResponse])
def list_rounds(tournament_id: int, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    return session.exec(
        select(Round).where(Round.tournament_id == tournament_id).order_by(Round.round_number)
    ).all()


@router.post("/tournaments/{tournament_id}/rounds", response_model=RoundResponse, status_code=201)
def create_round(tournament_id: int, round_data: RoundCreate, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)

    round_ = Round(tournament_id=tournament_id, **round_data.model_dump())
    session.add(round_)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        raise HTTPException(
            status_code=409,
            detail=f"DUPLICATE_ROUND: Round {round_data.round_number} already exists in this tournament",
        )
    session.refresh(round_)
    return round_
