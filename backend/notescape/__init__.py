import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from notescape.config import settings
from notescape.db import init_all_databases

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_all_databases(settings.data_dir)
    from notescape.services import events
    from notescape.services.ledger import on_review_completed

    events.subscribe(on_review_completed)
    logger.info("NoteScape backend ready (data dir %s)", settings.data_dir)
    yield
    events.unsubscribe(on_review_completed)


def create_app() -> FastAPI:
    application = FastAPI(
        title="NoteScape Backend", version="0.1.0", lifespan=lifespan
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from notescape.routers import flashcards, health, stats

    application.include_router(health.router)
    application.include_router(
        flashcards.router, prefix="/flashcards", tags=["flashcards"]
    )
    application.include_router(
        stats.router, prefix="/stats", tags=["stats"]
    )

    return application


app = create_app()
