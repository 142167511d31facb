# app/main.py

import logging
import os
import subprocess
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.core import logging_config  # noqa: F401  configures logging on import
from app import models  # noqa: F401  registers tables on Base.metadata
from app.routes import connections, health, mappings, scheduler as schedules, sync
from app.scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Run migrations on startup
    if os.getenv('RUN_MIGRATIONS', 'false').lower() == 'true':
        logger.info("Running database migrations...")
        result = subprocess.run(['alembic', 'upgrade', 'head'], capture_output=True, text=True)
        if result.returncode == 0:
            logger.info("Migrations completed successfully")
        else:
            logger.error(f"Migration failed: {result.stderr}")

    app.state.sync_scheduler = await start_scheduler()
    try:
        yield  # This is where the app runs
    finally:
        await stop_scheduler()

app = FastAPI(
    title="Store Sync Service",
    lifespan=lifespan
)

app.include_router(connections.router)
app.include_router(sync.router)
app.include_router(mappings.router)
app.include_router(schedules.router)
app.include_router(health.router)
