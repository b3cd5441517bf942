from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from windserver import __version__
from windserver.api.status import router as status_router
from windserver.api.tiles import router as tiles_router
from windserver.config import Settings, settings as default_settings
from windserver.logging_config import configure_logging
from windserver.scheduler import UpdateScheduler
from windserver.services.pipeline import UpdatePipeline, initialize_directories

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings: Settings = app.state.settings
    configure_logging(settings.log_level, settings.log_file)
    initialize_directories(settings)

    scheduler = UpdateScheduler(app.state.pipeline, settings.update_schedule)
    initial_delay = None
    if not settings.current_path.exists():
        initial_delay = settings.initial_update_delay_seconds
    scheduler.start(initial_update_delay=initial_delay)
    app.state.scheduler = scheduler

    logger.info("Wind server listening on %s:%s", settings.host, settings.port)
    logger.info("Pressure levels: %s", ", ".join(settings.level_names))
    logger.info("Forecast hours: %s", ", ".join(settings.forecast_labels))
    logger.info("Max zoom level: %s", settings.max_zoom_level)
    try:
        yield
    finally:
        scheduler.stop()


def create_app(
    settings: Settings | None = None,
    *,
    pipeline: UpdatePipeline | None = None,
    run_scheduler: bool = True,
) -> FastAPI:
    settings = settings or default_settings
    app = FastAPI(
        title="Wind Tile Server",
        version=__version__,
        lifespan=lifespan if run_scheduler else None,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline or UpdatePipeline(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )
    app.include_router(tiles_router)
    app.include_router(status_router)
    # Mounted last so API routes win over files of the same name.
    app.mount(
        "/",
        StaticFiles(directory=settings.static_path, html=True, check_dir=False),
        name="static",
    )
    return app


app = create_app()
