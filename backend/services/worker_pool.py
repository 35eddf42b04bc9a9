import asyncio
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from sqlalchemy.orm import Session
from config.settings import Settings
from database import SessionLocal
from exceptions import StoreUnavailableError
from services.blob_storage import LocalBlobStorage
from services.interfaces import IBlobStorage, IImageRenderer
from services.job_queue import JobQueue
from services.session_store import SessionStore
from services.thumbnail_generator import PillowRenderer
from utils.uuid_helper import utcnow
from workers.thumbnail_worker import ThumbnailWorker
import logging

logger = logging.getLogger(__name__)


class WorkerPool:
    """Manages worker tasks that process jobs from the queue"""

    def __init__(
        self,
        settings: Settings,
        session_factory: Callable[[], Session] = SessionLocal,
        storage: Optional[IBlobStorage] = None,
        renderer: Optional[IImageRenderer] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.settings = settings
        self.session_factory = session_factory
        self.storage = storage or LocalBlobStorage(settings.storage_path)
        self.renderer = renderer or PillowRenderer()
        self.clock = clock

        queue_options = {
            'max_retries': settings.job_max_retries,
            'backoff_seconds': settings.job_backoff_seconds,
            'visibility_timeout': settings.job_visibility_timeout_seconds,
            'poll_interval': settings.worker_poll_interval,
        }
        self.workers: List[ThumbnailWorker] = [
            ThumbnailWorker(
                session_factory=session_factory,
                storage=self.storage,
                renderer=self.renderer,
                worker_id=f"thumbnail-{index + 1}",
                queue_options=queue_options,
                clock=clock
            )
            for index in range(settings.worker_count)
        ]

        self.tasks: List[asyncio.Task] = []
        self.stop_event: Optional[asyncio.Event] = None
        self.running = False

    async def start(self):
        """Start every worker loop plus the maintenance loop"""
        if self.running:
            logger.warning("Worker pool already running")
            return

        self.stop_event = asyncio.Event()
        self.running = True

        for worker in self.workers:
            self.tasks.append(asyncio.create_task(worker.run(self.stop_event), name=worker.worker_id))
        self.tasks.append(asyncio.create_task(self._maintenance_loop(), name="maintenance"))

        logger.info(f"Worker pool started with {len(self.workers)} thumbnail workers")

    async def stop(self):
        """
        Stop picking up new jobs and wait for in-flight ones to finish.

        Nothing is cancelled: a job being rendered runs to ack or failure.
        """
        if not self.running:
            return

        logger.info("Stopping worker pool...")
        self.stop_event.set()
        results = await asyncio.gather(*self.tasks, return_exceptions=True)
        for task, result in zip(self.tasks, results):
            if isinstance(result, Exception):
                logger.error(f"Worker task {task.get_name()} ended with error: {result}")

        self.tasks = []
        self.running = False
        logger.info("Worker pool stopped")

    def run_maintenance(self) -> dict:
        """
        Drop expired sessions and old completed jobs.

        Returns:
            Counts of removed rows
        """
        db = self.session_factory()
        try:
            sessions = SessionStore(db, clock=self.clock).purge_expired()
            jobs = JobQueue(db, clock=self.clock).purge_completed(
                timedelta(hours=self.settings.job_retention_hours)
            )
            return {'sessions': sessions, 'jobs': jobs}
        finally:
            db.close()

    async def _maintenance_loop(self):
        logger.info("Maintenance loop started")
        while not self.stop_event.is_set():
            try:
                self.run_maintenance()
            except StoreUnavailableError as e:
                logger.warning(f"Maintenance skipped: {e.message}")
            except Exception as e:
                logger.error(f"Maintenance error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(
                    self.stop_event.wait(),
                    timeout=self.settings.maintenance_interval_seconds
                )
            except asyncio.TimeoutError:
                pass
        logger.info("Maintenance loop stopped")
