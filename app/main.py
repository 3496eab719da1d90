import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from app.api.base_plan import router as base_plan_router
from app.api.checkins import router as checkins_router
from app.api.daily_plan import router as daily_plan_router
from app.api.plan_jobs import router as plan_jobs_router
from app.config.settings import settings
from app.core.logger import setup_logger
from app.db.session import init_db

setup_logger(level=settings.log_level, log_file=settings.log_file or None)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Ensure tables exist before serving requests."""
    if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = settings.openai_api_key
    elif not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set. Plan generation will fail.")

    init_db()
    logger.info("Plan engine started")
    yield
    logger.info("Plan engine shutting down")


app = FastAPI(title="Plan Engine", lifespan=lifespan)

app.include_router(plan_jobs_router)
app.include_router(base_plan_router)
app.include_router(checkins_router)
app.include_router(daily_plan_router)


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
