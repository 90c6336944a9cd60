import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flowme.config import get_settings
from flowme.routers import health, auth, settings as settings_router, diagrams, ai, events
from flowme.services.confluence import close_confluence_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    logger.info("FlowMe starting up")

    if not settings.confluence_base_url:
        logger.warning("CONFLUENCE_BASE_URL not set - diagram endpoints will not work!")
    if not settings.jwt_secret:
        logger.warning("JWT_SECRET not set - admin settings will not be reachable!")

    yield

    await close_confluence_client()

    logger.info("FlowMe shutting down")


app = FastAPI(
    title="FlowMe Diagram API",
    description="Draw.io diagrams stored as Confluence page attachments, with AI generation",
    version="0.1.0",
    lifespan=lifespan,
)

# The macro UI is served from the Confluence site
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(settings_router.router)
app.include_router(diagrams.router)
app.include_router(ai.router)
app.include_router(events.router)
