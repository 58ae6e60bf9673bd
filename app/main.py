from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.competitions import router as competitions_router
from app.api.health import router as health_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.quizzes import router as quizzes_router
from app.api.submissions import router as submissions_router
from app.api.users import router as users_router
from app.core.config import SETTINGS
from app.core.errors import QuizServiceError
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.db.redis import lifespan_redis
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware
from app.services.ai_client import lifespan_ai

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    # Nested so teardown runs in reverse order.
    async with lifespan_db():
        async with lifespan_redis():
            async with lifespan_ai():
                yield


app = FastAPI(
    title="quiz-assessment-service",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)

# Last-added runs first: RequestContext (outermost) -> Metrics -> route
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)


@app.exception_handler(QuizServiceError)
async def quiz_service_error_handler(
    _request: Request, exc: QuizServiceError
) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(quizzes_router)
app.include_router(submissions_router)
app.include_router(competitions_router)
app.include_router(users_router)

logger.info(
    "quiz-assessment-service started  env=%s log_level=%s port=%d docs=%s ai=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
    "on" if SETTINGS.ai_enabled else "off",
)
