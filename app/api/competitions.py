"""Competition endpoints.

  GET  /v1/competitions                          public plus own, paginated
  POST /v1/competitions                          create (teacher, admin)
  PUT  /v1/competitions/{id}/status              owner or admin
  POST /v1/competitions/{id}/register            join while registration is open
  POST /v1/competitions/{id}/entries             record a finished submission
  GET  /v1/competitions/{id}/leaderboard         read-through cached
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from app.api.dependencies import (
    Page,
    get_leaderboard_engine,
    page_params,
    require_any_role,
    require_user,
)
from app.api.schemas import CompetitionIn, CompetitionStatusIn, EntryIn
from app.db.documents import dump_competition, dump_leaderboard
from app.models.competition import CompetitionStatus
from app.models.principal import ADMIN, TEACHER, Principal
from app.services.leaderboard_service import LeaderboardEngine

router = APIRouter(prefix="/v1/competitions", tags=["competitions"])

_require_organizer = require_any_role({TEACHER, ADMIN})


@router.get("")
async def list_competitions(
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[LeaderboardEngine, Depends(get_leaderboard_engine)],
    page: Annotated[Page, Depends(page_params)],
    status_filter: Annotated[CompetitionStatus | None, Query(alias="status")] = None,
) -> dict:
    competitions = await engine.list_competitions(principal, status=status_filter)
    return page.render(competitions, dump_competition)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_competition(
    payload: CompetitionIn,
    principal: Annotated[Principal, Depends(_require_organizer)],
    engine: Annotated[LeaderboardEngine, Depends(get_leaderboard_engine)],
) -> dict:
    competition = await engine.create_competition(
        principal,
        title=payload.title,
        quiz_id=payload.quiz_id,
        schedule=payload.schedule.to_domain(),
        description=payload.description,
        type=payload.type,
        status=payload.status,
        max_participants=payload.max_participants,
        settings=payload.settings.to_domain(),
    )
    return dump_competition(competition)


@router.put("/{competition_id}/status")
async def set_competition_status(
    competition_id: str,
    payload: CompetitionStatusIn,
    principal: Annotated[Principal, Depends(_require_organizer)],
    engine: Annotated[LeaderboardEngine, Depends(get_leaderboard_engine)],
) -> dict:
    competition = await engine.set_status(competition_id, principal, payload.status)
    return dump_competition(competition)


@router.post("/{competition_id}/register")
async def register(
    competition_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[LeaderboardEngine, Depends(get_leaderboard_engine)],
) -> dict:
    competition = await engine.register(competition_id, principal.user_id)
    return dump_competition(competition)


@router.post("/{competition_id}/entries")
async def record_entry(
    competition_id: str,
    payload: EntryIn,
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[LeaderboardEngine, Depends(get_leaderboard_engine)],
) -> dict:
    competition = await engine.record_entry(
        competition_id, principal.user_id, payload.submission_id
    )
    return {
        "competition_id": competition.id,
        "leaderboard": dump_leaderboard(competition.leaderboard),
        "statistics": dump_competition(competition)["statistics"],
    }


@router.get("/{competition_id}/leaderboard")
async def get_leaderboard(
    competition_id: str,
    principal: Annotated[Principal, Depends(require_user)],
    engine: Annotated[LeaderboardEngine, Depends(get_leaderboard_engine)],
) -> dict:
    entries = await engine.get_leaderboard(competition_id, principal)
    return {"competition_id": competition_id, "leaderboard": dump_leaderboard(entries)}
