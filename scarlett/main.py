"""
Scarlett Scheduler Service
FastAPI service for spaced-repetition quiz sessions
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import redis.asyncio as redis
from redis.exceptions import RedisError
import logging

from scarlett.adaptive.fsrs import FSRSAlgorithm, FSRSParameters
from scarlett.adaptive.selection import QuestionSelector
from scarlett.core.config import settings
from scarlett.core.logging import setup_logging
from scarlett.routers import study
from scarlett.services.progress_store import RedisProgressStore
from scarlett.services.question_bank import HttpQuestionBank
from scarlett.services.session_store import RedisSessionStore
from scarlett.services.study_session import StudySessionService


logger = logging.getLogger(__name__)


def build_study_service(redis_conn: redis.Redis, question_bank) -> StudySessionService:
    """Wire the scheduling core to its stores from settings"""
    algorithm = FSRSAlgorithm(
        FSRSParameters(
            request_retention=settings.REQUEST_RETENTION,
            maximum_interval=settings.MAXIMUM_INTERVAL,
            enable_fuzz=settings.ENABLE_FUZZ,
        )
    )
    return StudySessionService(
        question_bank=question_bank,
        progress_store=RedisProgressStore(redis_conn, history_limit=settings.PROGRESS_HISTORY_LIMIT),
        session_store=RedisSessionStore(redis_conn, ttl_seconds=settings.SESSION_TTL_SECONDS),
        algorithm=algorithm,
        selector=QuestionSelector(session_size=settings.SESSION_SIZE),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle - startup and shutdown events"""
    setup_logging()
    logger.info("Starting Scarlett Scheduler")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    redis_client = redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
    )
    question_bank = HttpQuestionBank(
        settings.CONTENT_BASE_URL,
        timeout=settings.CONTENT_TIMEOUT_SECONDS,
    )
    app.state.redis = redis_client
    app.state.study_service = build_study_service(redis_client, question_bank)

    yield

    logger.info("Shutting down Scarlett Scheduler")
    await question_bank.aclose()
    await redis_client.aclose()


app = FastAPI(
    title=settings.APP_NAME,
    description="Spaced-repetition question scheduling for song quizzes",
    version=settings.APP_VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(study.router, prefix="/api/study", tags=["study"])


@app.get("/")
async def root():
    return JSONResponse(
        content={
            "service": settings.APP_NAME,
            "status": "operational",
            "version": settings.APP_VERSION,
        }
    )


@app.get("/health")
async def health_check(request: Request):
    """
    Health check endpoint with Redis connectivity verification
    """
    health_status = {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "version": settings.APP_VERSION,
        "services": {},
    }

    redis_client = getattr(request.app.state, "redis", None)
    if redis_client is None:
        health_status["status"] = "degraded"
        health_status["services"]["redis"] = "not configured"
        return health_status

    try:
        await redis_client.ping()
        health_status["services"]["redis"] = "healthy"
    except RedisError as e:
        logger.error(f"Redis health check failed: {e}")
        health_status["status"] = "degraded"
        health_status["services"]["redis"] = "unhealthy"

    return health_status


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
