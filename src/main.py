import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.router import router
from src.config import settings
from src.core.exceptions import register_exception_handlers
from src.core.logging import setup_logging
from src.db import mongo
from src.middleware.body_limit import BodyLimitMiddleware
from src.middleware.request_id import RequestIDMiddleware
from src.services import blob_storage, upload_journal, upload_pipeline

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    await upload_journal.ensure_indexes()

    stop = asyncio.Event()
    sweeper = asyncio.create_task(upload_pipeline.run_journal_sweeper(stop))
    logger.info("service_started", app=settings.app_name)
    try:
        yield
    finally:
        stop.set()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
        await blob_storage.close_client()
        mongo.close_client()
        logger.info("service_stopped", app=settings.app_name)


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )
    app.add_middleware(BodyLimitMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)
    app.include_router(router)
    return app


app = create_app()
