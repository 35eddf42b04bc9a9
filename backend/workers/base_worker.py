"""
Base Worker Class with Classified Failure Handling

Provides common functionality for queue consumers:
- Failure classification into retryable / non-retryable
- Reporting failures back through the JobQueue, which owns retry policy
- Tolerating jobs whose lease was lost to another consumer
"""
from typing import Optional
import logging

from constants import JobFailOutcome
from exceptions import JobLeaseLostError, StoreUnavailableError, NotFoundError
from services.failure_classifier import FailureClassifier
from services.job_queue import JobQueue

logger = logging.getLogger(__name__)


class WorkerBase:
    """
    Base class for queue consumers.

    Workers catch everything around a job and call handle_failure(); they never
    decide on retries themselves.
    """

    def __init__(self, worker_id: str):
        self.worker_id = worker_id
        self.metrics = {
            'acked': 0,
            'requeued': 0,
            'dead_lettered': 0,
            'lost': 0,
        }

    def handle_failure(self, queue: JobQueue, job_id: str, error: Exception) -> Optional[JobFailOutcome]:
        """
        Classify error and report it to the queue.

        Returns:
            The queue's decision, or None if the failure could not be recorded
            (lease lost, or the store is down; the lease timeout then returns
            the job to the queue)
        """
        category, message = FailureClassifier.classify(error)
        retryable = FailureClassifier.is_retryable(error, category)

        logger.warning(
            f"Job {job_id} failed ({category.value}, retryable={retryable}): {message}"
        )

        try:
            outcome = queue.fail(job_id, message, retryable=retryable, category=category)
        except (JobLeaseLostError, NotFoundError) as e:
            logger.warning(f"Job {job_id} no longer held by {self.worker_id}: {e.message}")
            self.metrics['lost'] += 1
            return None
        except StoreUnavailableError as e:
            logger.error(f"Could not record failure of job {job_id}, leaving it to lease expiry: {e.message}")
            return None

        if outcome is JobFailOutcome.REQUEUED:
            self.metrics['requeued'] += 1
        else:
            self.metrics['dead_lettered'] += 1
        return outcome
