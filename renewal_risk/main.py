"""
Renewal Risk — renewal risk detection and notification feed.

Assembles the FastAPI app: logging, routers and the background scheduler.
The schema is managed by Alembic (alembic upgrade head), not created here.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from .config import settings
from .logging_config import setup_logging
from .routers import notifications, risk


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    from .scheduler import configure_scheduler, scheduler

    started = False
    if settings.scheduler_enabled and not os.getenv("TESTING"):
        configure_scheduler()
        scheduler.start()
        started = True
        logger.info("Scheduler started")
    yield
    if started:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


app = FastAPI(title="Renewal Risk", version="1.0.0", lifespan=lifespan)
app.include_router(notifications.router)
app.include_router(risk.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
