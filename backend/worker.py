"""
Standalone thumbnail worker process.

Run alongside the API (with FILES_MANAGER_EMBEDDED_WORKERS=false) to scale
thumbnail rendering separately:

    python worker.py

SIGINT/SIGTERM stop new claims; the job being rendered is finished first.
"""
import asyncio
import signal
import logging

from config.settings import get_settings
from database import init_database
from services.worker_pool import WorkerPool
from utils.logging_utils import configure_logging

logger = logging.getLogger(__name__)


async def main():
    settings = get_settings()
    configure_logging(settings.log_dir, settings.log_level, log_name="worker.log")
    init_database()

    pool = WorkerPool(settings)
    shutdown = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    await pool.start()
    logger.info(f"Worker process running {len(pool.workers)} thumbnail workers")

    await shutdown.wait()
    logger.info("Signal received, draining workers...")
    await pool.stop()


if __name__ == "__main__":
    asyncio.run(main())
