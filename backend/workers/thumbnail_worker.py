"""
Thumbnail Worker

Queue consumer that renders width-bounded renditions of uploaded images.

Per job: received → validating → rendering → persisting → acked | failed.
Renditions are written to deterministic paths and attached with an upsert,
so a redelivered job simply overwrites what an earlier attempt produced.
"""

import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Iterable, Optional

from sqlalchemy.orm import Session

from constants import FailureCategory
from exceptions import NotFoundError, BlobNotFoundError, NonRetryableJobError
from models import Job
from services.file_catalog import FileCatalog
from services.interfaces import IBlobStorage, IImageRenderer
from services.job_queue import JobQueue
from services.thumbnail_generator import thumbnail_path
from utils.logging_utils import set_logging_context, clear_logging_context
from utils.uuid_helper import utcnow
from workers.base_worker import WorkerBase

logger = logging.getLogger(__name__)


class ThumbnailWorker(WorkerBase):
    """
    Pulls thumbnail jobs from the queue until told to stop.

    Each loop iteration opens its own database session; the in-flight job is
    always finished before the stop event is honoured.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        storage: IBlobStorage,
        renderer: IImageRenderer,
        worker_id: str = "thumbnail-1",
        queue_options: Optional[dict] = None,
        clock: Callable[[], datetime] = utcnow,
        error_delay: float = 5.0
    ):
        """
        Args:
            session_factory: Returns a new SQLAlchemy session
            storage: Blob storage holding originals and renditions
            renderer: Image resize implementation
            worker_id: Name recorded on claimed jobs and in logs
            queue_options: Extra JobQueue keyword arguments (retries, backoff, lease, poll)
            clock: Source of naive UTC timestamps
            error_delay: Seconds to back off after an unexpected loop error
        """
        super().__init__(worker_id)
        self.session_factory = session_factory
        self.storage = storage
        self.renderer = renderer
        self.queue_options = queue_options or {}
        self.clock = clock
        self.error_delay = error_delay

    def make_queue(self, db: Session) -> JobQueue:
        return JobQueue(db, clock=self.clock, worker_id=self.worker_id, **self.queue_options)

    async def run(self, stop_event: asyncio.Event):
        """Consume jobs until stop_event is set."""
        logger.info(f"🖼️ Thumbnail worker {self.worker_id} started")

        while not stop_event.is_set():
            db = self.session_factory()
            try:
                queue = self.make_queue(db)
                job = await queue.dequeue(stop_event)
                if job is None:
                    break
                await self.process_job(db, queue, job)
            except Exception as e:
                logger.error(f"Thumbnail worker {self.worker_id} loop error: {e}", exc_info=True)
                try:
                    await asyncio.wait_for(stop_event.wait(), timeout=self.error_delay)
                except asyncio.TimeoutError:
                    pass
            finally:
                db.close()

        logger.info(f"🛑 Thumbnail worker {self.worker_id} stopped ({self.metrics})")

    async def run_once(self) -> Optional[str]:
        """
        Claim and process at most one job.

        Returns:
            "acked", "failed", or None when the queue had nothing available
        """
        db = self.session_factory()
        try:
            queue = self.make_queue(db)
            job = queue.try_dequeue()
            if job is None:
                return None
            return await self.process_job(db, queue, job)
        finally:
            db.close()

    async def process_job(self, db: Session, queue: JobQueue, job: Job) -> str:
        """
        Drive one delivered job to ack or failure.

        Returns:
            "acked" or "failed"
        """
        # Snapshot before any commit expires the instance
        job_id, file_id, user_id = job.id, job.file_id, job.user_id
        sizes = job.size_list

        set_logging_context(job_id=job_id, file_id=file_id, worker=self.worker_id)
        stage = 'received'
        try:
            stage = 'validating'
            if not file_id:
                raise NonRetryableJobError(job_id, "Missing fileId", FailureCategory.JOB_MALFORMED)
            if not user_id:
                raise NonRetryableJobError(job_id, "Missing userId", FailureCategory.JOB_MALFORMED)

            catalog = FileCatalog(db, self.storage, clock=self.clock)
            try:
                entry = catalog.get_owned(file_id, user_id)
            except NotFoundError as e:
                raise NonRetryableJobError(job_id, "File not found", FailureCategory.SOURCE_MISSING) from e
            if entry.storage_ref is None:
                raise NonRetryableJobError(job_id, "File has no content", FailureCategory.JOB_MALFORMED)
            storage_ref = entry.storage_ref

            try:
                source = await asyncio.to_thread(self.storage.get, storage_ref)
            except BlobNotFoundError as e:
                raise NonRetryableJobError(job_id, "Original file missing", FailureCategory.SOURCE_MISSING) from e

            stage = 'rendering'
            renditions = await self._render_sizes(storage_ref, source, sizes)

            stage = 'persisting'
            if renditions:
                catalog.attach_thumbnails(file_id, renditions)
            else:
                logger.warning(f"No thumbnail could be rendered for {file_id}")

            queue.ack(job_id)
            self.metrics['acked'] += 1
            logger.info(f"✅ Thumbnails ready for {file_id}: {sorted(renditions, reverse=True)}")
            return 'acked'

        except Exception as e:
            logger.debug(f"Job {job_id} failed while {stage}")
            self.handle_failure(queue, job_id, e)
            return 'failed'
        finally:
            clear_logging_context()

    async def _render_sizes(self, storage_ref: str, source: bytes, sizes: Iterable[int]) -> Dict[int, str]:
        """
        Render and store every size independently.

        A size that fails is logged and left out; the others still count.

        Returns:
            size → storage path for each rendition that was written
        """
        renditions: Dict[int, str] = {}

        for size in sizes:
            path = thumbnail_path(storage_ref, size)
            try:
                data = await asyncio.to_thread(self.renderer.render, source, size)
                await asyncio.to_thread(self.storage.put, path, data)
            except Exception as e:
                logger.error(f"Thumbnail {size}px failed for {storage_ref}: {e}", exc_info=True)
                continue
            renditions[size] = path

        return renditions
