from fastapi import FastAPI
from contextlib import asynccontextmanager
from config.settings import get_settings
from database import init_database
from api import status, users, auth, files, jobs
from services.worker_pool import WorkerPool
from utils.logging_utils import configure_logging
import logging

logger = logging.getLogger(__name__)

settings = get_settings()

# Global worker pool reference
_worker_pool: WorkerPool | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan - startup and shutdown"""
    global _worker_pool

    # Startup
    configure_logging(settings.log_dir, settings.log_level)
    init_database()
    settings.storage_path.mkdir(parents=True, exist_ok=True)

    if settings.embedded_workers and settings.worker_count > 0:
        logger.info("Starting embedded thumbnail workers...")
        _worker_pool = WorkerPool(settings)
        await _worker_pool.start()
    else:
        logger.info("Embedded workers disabled; run `python worker.py` to process thumbnails")

    yield

    # Shutdown
    logger.info("Shutting down...")
    if _worker_pool is not None:
        await _worker_pool.stop()
        _worker_pool = None
    logger.info("✅ Shutdown complete")


app = FastAPI(title="Files Manager", lifespan=lifespan)

app.include_router(status.router, tags=["status"])
app.include_router(users.router, tags=["users"])
app.include_router(auth.router, tags=["auth"])
app.include_router(files.router, tags=["files"])
app.include_router(jobs.router, tags=["jobs"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
