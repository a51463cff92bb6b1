"""
League Assistant - FastAPI Application

Main entry point for the backend API.
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI

from agent.graph import LeagueAgent, create_agent
from api.dependencies import get_league_agent, get_optional_agent
from api.routers import announcements, chat

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

APP_NAME = "League Assistant"
APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting League Assistant API...")

    # Initialize Sentry for error monitoring
    try:
        from observability.sentry_integration import init_sentry
        environment = os.getenv("ENVIRONMENT", "development")
        sentry_enabled = init_sentry(
            environment=environment,
            traces_sample_rate=0.1 if environment == "production" else 1.0,
        )
        if sentry_enabled:
            logger.info("Sentry error monitoring initialized")
    except Exception as e:
        logger.warning(f"Failed to initialize Sentry: {e}")

    # Reference data, database pool, LLM router
    try:
        app.state.agent = await create_agent()
        logger.info("League agent initialized")
    except Exception as e:
        logger.warning(f"Failed to initialize league agent: {e}")
        app.state.agent = None

    logger.info("API startup complete")

    yield

    logger.info("Shutting down API...")

    agent = getattr(app.state, "agent", None)
    if agent is not None:
        try:
            await agent.database.close()
        except Exception as e:
            logger.warning(f"Error closing database pool: {e}")


app = FastAPI(
    title=APP_NAME,
    description="Chat assistant for a sim racing league, backed by the league database",
    version=APP_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Include routers
app.include_router(chat.router, prefix="/api/v1/chat", tags=["chat"])
app.include_router(announcements.router, prefix="/api/v1/announcements", tags=["announcements"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "status": "running",
        "docs": "/docs",
    }


@app.get("/healthcheck")
async def liveness():
    """Liveness check; does not touch the database."""
    return {"status": "ok"}


@app.get("/api/v1/health")
async def health_check(agent: LeagueAgent | None = Depends(get_optional_agent)):
    """Health check endpoint."""
    if agent is None:
        return {
            "status": "degraded",
            "checks": {"api": "healthy", "agent": "not_initialized", "database": "not_connected"},
            "reference": None,
        }

    database_ok = await agent.database.ping()
    checks = {
        "api": "healthy",
        "agent": "healthy",
        "database": "healthy" if database_ok else "not_connected",
    }
    overall = "healthy" if all(v == "healthy" for v in checks.values()) else "degraded"

    return {
        "status": overall,
        "checks": checks,
        "reference": agent.database.reference.counts(),
        "llm_providers": [p.value for p in agent.llm_router.get_available_providers()],
    }


@app.post("/api/v1/reference/reload")
async def reload_reference(agent: LeagueAgent = Depends(get_league_agent)):
    """Re-read the track, vehicle and class catalogs from disk."""
    reference = agent.database.reference
    await asyncio.to_thread(reference.reload)
    counts = reference.counts()
    logger.info(f"Reference data reloaded: {counts}")
    return {"status": "reloaded", "counts": counts}
