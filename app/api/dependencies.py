from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Annotated, TypeVar

import jwt
from fastapi import Depends, HTTPException, Query, status
from fastapi.security import OAuth2PasswordBearer

from app.core.config import SETTINGS
from app.models.principal import Principal
from app.repos.store import competition_repo, quiz_repo, submission_repo, user_stats_repo
from app.services import token_service
from app.services.ai_client import ai_client
from app.services.attempt_service import AttemptManager, AttemptPolicy
from app.services.cache import cache_service
from app.services.evaluation_service import EvaluationWorkflow
from app.services.leaderboard_service import LeaderboardEngine
from app.services.quiz_service import QuizCatalog
from app.services.stats_service import StatsAggregator

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Tokens are minted by the external sign-in service; tokenUrl only feeds the
# OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/oauth/token")


def require_user(
    raw_token: Annotated[str, Depends(oauth2_scheme)],
) -> Principal:
    """Extract and validate the JWT bearer token. Returns a Principal."""
    try:
        claims = token_service.decode_access_token(raw_token)
    except jwt.ExpiredSignatureError:
        logger.warning("Expired token rejected")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token expired",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None
    except jwt.InvalidTokenError as e:
        logger.warning("Invalid token rejected: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from None

    principal = Principal(
        user_id=claims["sub"],
        roles=frozenset(claims.get("roles", [])),
    )
    logger.debug(
        "Token validated for user=%s roles=%s",
        principal.user_id,
        sorted(principal.roles),
    )
    return principal


def require_any_role(roles: set[str]):
    """Dependency factory: demand at least one of the given roles.

    Usage: Depends(require_any_role({"teacher", "admin"}))
    """

    def _guard(
        principal: Annotated[Principal, Depends(require_user)],
    ) -> Principal:
        if not principal.has_any_role(roles):
            logger.warning(
                "Access denied: user=%s has none of roles=%s",
                principal.user_id,
                sorted(roles),
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permissions",
            )
        return principal

    return _guard


# ---------------------------------------------------------------------------
# List pagination: ?page=1&limit=10
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Page:
    page: int = 1
    limit: int = 10

    def render(self, items: Sequence[T], dump: Callable[[T], dict]) -> dict:
        start = (self.page - 1) * self.limit
        return {
            "items": [dump(item) for item in items[start : start + self.limit]],
            "pagination": {
                "page": self.page,
                "limit": self.limit,
                "total": len(items),
                "pages": math.ceil(len(items) / self.limit),
            },
        }


def page_params(
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> Page:
    return Page(page=page, limit=limit)


# ---------------------------------------------------------------------------
# Service singletons, wired from the repository and cache singletons
# ---------------------------------------------------------------------------

stats_aggregator = StatsAggregator(quiz_repo, user_stats_repo)

attempt_manager = AttemptManager(
    quiz_repo,
    submission_repo,
    stats_aggregator,
    policy=AttemptPolicy(
        drop_unmatched_answers=SETTINGS.drop_unmatched_answers,
        grace_seconds=SETTINGS.submission_grace_seconds,
    ),
)

evaluation_workflow = EvaluationWorkflow(
    quiz_repo,
    submission_repo,
    ai_client,
    ai_timeout=SETTINGS.ai_timeout_seconds,
)

leaderboard_engine = LeaderboardEngine(
    competition_repo,
    quiz_repo,
    submission_repo,
    cache_service,
    cache_ttl=SETTINGS.leaderboard_cache_ttl,
)

quiz_catalog = QuizCatalog(quiz_repo, ai_client)


def get_attempt_manager() -> AttemptManager:
    return attempt_manager


def get_evaluation_workflow() -> EvaluationWorkflow:
    return evaluation_workflow


def get_leaderboard_engine() -> LeaderboardEngine:
    return leaderboard_engine


def get_quiz_catalog() -> QuizCatalog:
    return quiz_catalog
