"""FastAPI server for the Ralph control dashboard."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import router
from src.config import APP_NAME, APP_VERSION, DashboardConfig, build_dashboard_config
from src.runtime.cache import StatusCache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Resolve configuration once on startup."""
    config: DashboardConfig | None = getattr(app.state, "config", None)
    if config is None:
        config = build_dashboard_config()
        app.state.config = config

    if config.cache_dir is not None:
        app.state.status_cache = StatusCache(config.cache_dir)
        logger.info("Status cache enabled at %s", config.cache_dir)
    else:
        app.state.status_cache = None
        logger.info("Status cache disabled")

    logger.info(
        "Dashboard ready — providers=%s default=%s codex_home=%s",
        ",".join(p.id for p in config.providers.providers),
        config.default_provider,
        config.codex_home,
    )

    yield


def create_app(config: DashboardConfig | None = None) -> FastAPI:
    app = FastAPI(
        title="Ralph Control",
        version=APP_VERSION,
        lifespan=lifespan,
    )
    if config is not None:
        app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    logger.debug("%s app created", APP_NAME)
    return app


app = create_app()
