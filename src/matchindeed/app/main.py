"""FastAPI application entry point for the MatchIndeed API."""

import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from matchindeed.app.config import get_settings
from matchindeed.infra.database import async_session, init_db
from matchindeed.services.meeting_monitor import run_monitor_pass

logger = logging.getLogger(__name__)


async def meeting_monitor_loop():
    """Complete elapsed meetings, send due reminders and flag urgent reviews."""
    interval = get_settings().monitor_interval_minutes * 60
    while True:
        try:
            async with async_session() as db:
                await run_monitor_pass(db)
        except Exception as e:
            logger.error("Meeting monitor error: %s", e, exc_info=True)
        await asyncio.sleep(interval)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database and start the monitor."""
    await init_db()
    monitor = asyncio.create_task(meeting_monitor_loop())
    yield
    monitor.cancel()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="MatchIndeed API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware: any origin in debug mode
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from matchindeed.app.routes.auth import router as auth_router
from matchindeed.app.routes.matches import router as matches_router
from matchindeed.app.routes.meetings import router as meetings_router
from matchindeed.app.routes.admin_meetings import router as admin_meetings_router

app.include_router(auth_router)
app.include_router(matches_router)
app.include_router(meetings_router)
app.include_router(admin_meetings_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "matchindeed"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "matchindeed.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
