from __future__ import annotations
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api import router
from logging_config import configure_logging
from services.aggregation import build_default_service
from services.simulator import build_default_scheduler


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    build_default_service()
    scheduler = build_default_scheduler()
    try:
        yield
    finally:
        scheduler.shutdown()
        build_default_scheduler.cache_clear()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Sensor Aggregation Service",
        description="Real-time sensor history, statistics and threshold alerting.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app

app = create_app()
