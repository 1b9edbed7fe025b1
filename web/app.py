"""
FastAPI application for the ops console record API.

Production deployment configuration via environment variables.
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.access import AccessPolicy, ActorDirectory
from core.records import RECORD_DEFINITIONS, RecordClass
from core.store import InMemoryRecordStore, LiveCollection, RecordStore, RestRecordStore
from utils.config import Config
from web.record_routes import router as record_router


logger = logging.getLogger(__name__)


# =============================================================================
# Environment Configuration
# =============================================================================

# Production mode detection
IS_PRODUCTION = os.getenv("PRODUCTION", "").lower() == "true"

# CORS configuration - locked down for production
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "").split(",") if os.getenv("ALLOWED_ORIGINS") else []
if not ALLOWED_ORIGINS and not IS_PRODUCTION:
    # Development fallback only
    ALLOWED_ORIGINS = ["http://localhost:8000", "http://127.0.0.1:8000"]

APP_VERSION = "0.1.0"


def build_store(config: Config) -> RecordStore:
    """Create the record store selected by STORE_BACKEND."""
    if config.store_backend == "rest":
        logger.info("Using hosted record store at %s", config.store_url)
        return RestRecordStore(
            config.store_url,
            config.store_api_key,
            timeout=config.request_timeout,
        )

    logger.info("Using in-memory record store persisted to %s", config.store_file)
    return InMemoryRecordStore(persist_path=config.store_file)


def build_directory(config: Config) -> ActorDirectory:
    if not config.actors_file:
        logger.warning("ACTORS_FILE not set; no actor can call the API")
        return ActorDirectory()
    return ActorDirectory.from_file(config.actors_file)


def build_live_views(store: RecordStore, config: Config) -> dict[RecordClass, LiveCollection]:
    """One live view per record collection. Views open on first read."""
    return {
        record_class: LiveCollection(store, definition.collection, max_age=config.live_max_age)
        for record_class, definition in RECORD_DEFINITIONS.items()
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    for view in app.state.live.values():
        view.close()


def create_app(
    config: Optional[Config] = None,
    store: Optional[RecordStore] = None,
    actors: Optional[ActorDirectory] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Settings; loaded from the environment when omitted
        store: Record store; built from config when omitted
        actors: Known actors; loaded from ACTORS_FILE when omitted
    """
    config = config or Config.load()

    app = FastAPI(
        title="Ops Console",
        description="Delivery bookings, complaints and quality calls",
        version=APP_VERSION,
        # Production settings: disable docs/redoc for private deployment
        docs_url=None if IS_PRODUCTION else "/docs",
        redoc_url=None if IS_PRODUCTION else "/redoc",
        openapi_url=None if IS_PRODUCTION else "/openapi.json",
        debug=config.debug and not IS_PRODUCTION,
        lifespan=lifespan,
    )

    # Healthcheck first: synchronous, no IO
    @app.get("/", include_in_schema=False)
    def root():
        return {"status": "ok"}

    @app.get("/api/health")
    def health():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": APP_VERSION,
            "store": config.store_backend,
            "environment": "production" if IS_PRODUCTION else "development",
        }

    if ALLOWED_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT"],
            allow_headers=["*"],
        )

    app.state.config = config
    app.state.store = store if store is not None else build_store(config)
    app.state.actors = actors if actors is not None else build_directory(config)
    app.state.permissions = AccessPolicy()
    app.state.live = build_live_views(app.state.store, config)

    app.include_router(record_router)

    logger.info("Ops console ready (%d actors)", len(app.state.actors))
    return app


# Create app instance for uvicorn
app = create_app()
