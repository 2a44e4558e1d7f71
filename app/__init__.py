import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from .database import init_db
from .routes import SCHEDULE_VARIANT, WARM_SCHEDULE_CACHE, router, schedule_cache

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover
    init_db()
    if WARM_SCHEDULE_CACHE:
        schedule_cache.warm(SCHEDULE_VARIANT)
        logger.info("Precomputed %d %s schedules", len(schedule_cache), SCHEDULE_VARIANT.value)
    yield


def create_app() -> FastAPI:
    """Application factory for the court rotation scheduler."""
    base_dir = Path(__file__).resolve().parent
    app = FastAPI(title="Court Rotation", lifespan=lifespan)
    app.include_router(router)
    static_dir = base_dir / "static"
    app.mount("/static", StaticFiles(directory=static_dir), name="static")
    return app


app = create_app()
