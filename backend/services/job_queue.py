"""
Job Queue

Durable, table-backed work queue between uploads (producer) and thumbnail
workers (consumers).

Delivery is at-least-once:
- a claim is a conditional QUEUED → RUNNING update, so exactly one consumer
  holds a job at a time
- a claimed job carries a lease; if the holder neither acks nor fails it
  before the lease runs out, the job is requeued as a failed attempt
- retryable failures are redelivered with exponential backoff until
  max_retries is used up, then dead-lettered
- non-retryable failures are dead-lettered straight away without using a retry
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from constants import THUMBNAIL_SIZES, JobState, JobKind, JobFailOutcome, FailureCategory
from exceptions import NotFoundError, ValidationError, JobLeaseLostError
from models import Job
from repositories.job_repository import JobRepository
from services.failure_classifier import FailureClassifier
from utils.error_handlers import guard_store
from utils.uuid_helper import generate_uuid, utcnow

logger = logging.getLogger(__name__)


class JobQueue:
    """Queue operations over the jobs table for one consumer (or producer)."""

    def __init__(
        self,
        db: Session,
        max_retries: int = 3,
        backoff_seconds: float = 2.0,
        visibility_timeout: float = 300,
        poll_interval: float = 0.5,
        clock: Callable[[], datetime] = utcnow,
        worker_id: Optional[str] = None
    ):
        """
        Args:
            db: Database session owned by the caller
            max_retries: Retryable failures allowed before dead-lettering
            backoff_seconds: Delay before the first redelivery; doubles per retry
            visibility_timeout: Lease length in seconds for a claimed job
            poll_interval: Seconds between claim attempts in dequeue()
            clock: Source of naive UTC timestamps
            worker_id: Name recorded on claimed jobs
        """
        self.db = db
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.visibility_timeout = timedelta(seconds=visibility_timeout)
        self.poll_interval = poll_interval
        self.clock = clock
        self.worker_id = worker_id or f"worker-{generate_uuid()[:8]}"
        self.job_repo = JobRepository(db)

    # ------------------------------------------------------------------
    # Producer side
    # ------------------------------------------------------------------

    @guard_store("Enqueue job")
    def enqueue(
        self,
        file_id: Optional[str],
        user_id: Optional[str],
        sizes: Iterable[int] = THUMBNAIL_SIZES
    ) -> Job:
        """
        Record a thumbnail job. Returns as soon as the row is committed.

        file_id/user_id are not validated here; a malformed job is
        dead-lettered by the first worker that receives it.
        """
        now = self.clock()
        job = self.job_repo.create(Job(
            kind=JobKind.THUMBNAIL.value,
            file_id=file_id,
            user_id=user_id,
            sizes=",".join(str(int(size)) for size in sizes),
            state=JobState.QUEUED.value,
            max_retries=self.max_retries,
            available_at=now,
            created_at=now
        ))
        self.db.commit()
        logger.info(f"Enqueued job {job.id} for file {file_id}")
        return job

    # ------------------------------------------------------------------
    # Consumer side
    # ------------------------------------------------------------------

    @guard_store("Dequeue job")
    def try_dequeue(self) -> Optional[Job]:
        """
        Claim the oldest available job without waiting.

        Expired leases are returned to the queue first so their jobs can be
        picked up here.

        Returns:
            The claimed job (state RUNNING), or None if nothing is available
        """
        now = self.clock()
        self._reclaim_expired(now)

        lease_until = now + self.visibility_timeout
        for job_id in self.job_repo.next_available_ids(now):
            if self.job_repo.claim(job_id, self.worker_id, now, lease_until):
                self.db.commit()
                job = self.job_repo.get_by_id(job_id)
                logger.info(
                    f"Job {job.id} delivered to {self.worker_id} "
                    f"(delivery {job.deliveries}, retries {job.retries}/{job.max_retries})"
                )
                return job
            # Another consumer won this one; try the next candidate

        self.db.commit()
        return None

    async def dequeue(self, stop_event: Optional[asyncio.Event] = None) -> Optional[Job]:
        """
        Wait until a job can be claimed.

        Args:
            stop_event: When set, stop waiting and return None

        Returns:
            The claimed job, or None once stop_event is set
        """
        while stop_event is None or not stop_event.is_set():
            job = self.try_dequeue()
            if job is not None:
                return job

            if stop_event is None:
                await asyncio.sleep(self.poll_interval)
                continue
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass
        return None

    @guard_store("Ack job")
    def ack(self, job_id: str) -> Job:
        """
        Mark a delivered job as done. It is never delivered again.

        Raises:
            NotFoundError: Unknown job
            JobLeaseLostError: Job is not held by this consumer (already acked,
                failed, or reclaimed after its lease expired)
        """
        now = self.clock()
        updated = self.job_repo.transition(job_id, JobState.RUNNING.value, {
            Job.state: JobState.DONE.value,
            Job.completed_at: now,
            Job.lease_expires_at: None,
            Job.error_message: None,
            Job.failure_category: None,
        }, worker_id=self.worker_id)
        self.db.commit()
        if not updated:
            self._raise_not_held(job_id)

        logger.info(f"Job {job_id} acknowledged")
        return self.job_repo.get_by_id(job_id)

    @guard_store("Fail job")
    def fail(
        self,
        job_id: str,
        reason: str,
        retryable: bool = True,
        category: Optional[FailureCategory] = None
    ) -> JobFailOutcome:
        """
        Report a failed attempt on a delivered job.

        Args:
            job_id: Job UUID
            reason: Human-readable failure message, stored on the job
            retryable: False dead-letters immediately without using a retry
            category: Failure classification for operators

        Returns:
            REQUEUED or DEAD_LETTERED

        Raises:
            NotFoundError: Unknown job
            JobLeaseLostError: Job is not held by this consumer
        """
        job = self.job_repo.get_by_id(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        if job.state != JobState.RUNNING.value or job.worker_id != self.worker_id:
            raise JobLeaseLostError(job_id, job.state)

        outcome = self._record_failure(
            job, reason, retryable, category, self.clock(), worker_id=self.worker_id
        )
        self.db.commit()
        if outcome is None:
            self._raise_not_held(job_id)
        return outcome

    # ------------------------------------------------------------------
    # Operator side
    # ------------------------------------------------------------------

    @guard_store("Get job")
    def get(self, job_id: str) -> Job:
        job = self.job_repo.get_by_id(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        return job

    @guard_store("List dead letters")
    def dead_letters(self, user_id: Optional[str] = None) -> List[Job]:
        if user_id is None:
            return self.job_repo.get_by_state(JobState.DEAD.value)
        return self.job_repo.get_for_user(user_id, JobState.DEAD.value)

    @guard_store("Requeue dead letter")
    def requeue_dead_letter(self, job_id: str) -> Job:
        """
        Put a dead-lettered job back in the queue with a fresh retry budget.

        Raises:
            NotFoundError: Unknown job
            ValidationError: Job is not dead-lettered
        """
        job = self.job_repo.get_by_id(job_id)
        if job is None:
            raise NotFoundError("job", job_id)

        updated = self.job_repo.transition(job_id, JobState.DEAD.value, {
            Job.state: JobState.QUEUED.value,
            Job.retries: 0,
            Job.available_at: self.clock(),
            Job.dead_lettered_at: None,
            Job.worker_id: None,
        })
        self.db.commit()
        if not updated:
            raise ValidationError("Job is not dead-lettered", {"state": job.state})

        logger.info(f"Dead-lettered job {job_id} requeued by operator")
        self.db.refresh(job)
        return job

    @guard_store("Queue stats")
    def stats(self) -> Dict[str, int]:
        """Job counts for every state, zeros included."""
        counts = self.job_repo.count_by_state()
        return {state.value: counts.get(state.value, 0) for state in JobState}

    @guard_store("Purge completed jobs")
    def purge_completed(self, older_than: timedelta) -> int:
        """Delete DONE jobs completed more than older_than ago."""
        purged = self.job_repo.delete_done_before(self.clock() - older_than)
        self.db.commit()
        if purged:
            logger.info(f"Purged {purged} completed jobs")
        return purged

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _reclaim_expired(self, now: datetime) -> None:
        """Count each expired lease as a failed attempt on its job."""
        for job in self.job_repo.expired_leases(now):
            outcome = self._record_failure(
                job,
                f"Lease expired (held by {job.worker_id})",
                retryable=True,
                category=FailureCategory.LEASE_EXPIRED,
                now=now,
                lease_expires_at=job.lease_expires_at
            )
            if outcome is not None:
                logger.warning(f"Job {job.id} lease expired on {job.worker_id}: {outcome.value}")

    def _record_failure(
        self,
        job: Job,
        reason: str,
        retryable: bool,
        category: Optional[FailureCategory],
        now: datetime,
        lease_expires_at: Optional[datetime] = None,
        worker_id: Optional[str] = None
    ) -> Optional[JobFailOutcome]:
        """
        Apply the retry policy to a RUNNING job.

        Returns:
            The outcome, or None if the job left RUNNING concurrently
        """
        category_value = category.value if category is not None else None
        retries = job.retries + 1 if retryable else job.retries

        if retryable and retries <= job.max_retries:
            delay = FailureClassifier.get_backoff_seconds(self.backoff_seconds, retries)
            values = {
                Job.state: JobState.QUEUED.value,
                Job.retries: retries,
                Job.available_at: now + timedelta(seconds=delay),
                Job.lease_expires_at: None,
                Job.worker_id: None,
                Job.error_message: reason,
                Job.failure_category: category_value,
            }
            outcome = JobFailOutcome.REQUEUED
        else:
            values = {
                Job.state: JobState.DEAD.value,
                Job.retries: retries,
                Job.lease_expires_at: None,
                Job.error_message: reason,
                Job.failure_category: category_value,
                Job.dead_lettered_at: now,
            }
            outcome = JobFailOutcome.DEAD_LETTERED

        if not self.job_repo.transition(job.id, JobState.RUNNING.value, values, lease_expires_at, worker_id):
            return None

        if outcome is JobFailOutcome.REQUEUED:
            logger.warning(
                f"Job {job.id} failed (retry {retries}/{job.max_retries}), "
                f"redelivering in {delay:.1f}s: {reason}"
            )
        else:
            logger.error(
                f"Job {job.id} dead-lettered after {job.deliveries} deliveries "
                f"(retryable={retryable}): {reason}"
            )
        return outcome

    def _raise_not_held(self, job_id: str) -> None:
        job = self.job_repo.get_by_id(job_id)
        if job is None:
            raise NotFoundError("job", job_id)
        raise JobLeaseLostError(job_id, job.state)
