from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.api.dependencies import require_user
from app.db.documents import dump_user_stats
from app.models.principal import Principal
from app.models.user_stats import UserStats
from app.repos.store import user_stats_repo

# GET /v1/users/me/stats: rolling quiz statistics for the caller

router = APIRouter(prefix="/v1/users", tags=["users"])


@router.get("/me/stats")
async def my_stats(
    principal: Annotated[Principal, Depends(require_user)],
) -> dict:
    stats = await user_stats_repo.get(principal.user_id)
    return dump_user_stats(stats or UserStats(user_id=principal.user_id))
