"""
Thumbnail job inspection

Users only ever see jobs for their own uploads.
"""
from fastapi import APIRouter, Depends
from typing import List
from dependencies import get_current_user_id, get_job_queue
from exceptions import NotFoundError
from schemas import DeadLetterResponse, QueueStatsResponse
from services.job_queue import JobQueue
from utils.error_handlers import handle_api_errors
import logging

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/jobs/dead-letters", response_model=List[DeadLetterResponse])
@handle_api_errors("List dead letters")
def list_dead_letters(
    user_id: str = Depends(get_current_user_id),
    queue: JobQueue = Depends(get_job_queue)
):
    """Thumbnail jobs for the caller's files that gave up"""
    return [DeadLetterResponse.from_job(job) for job in queue.dead_letters(user_id)]


@router.post("/jobs/dead-letters/{job_id}/requeue", response_model=DeadLetterResponse)
@handle_api_errors("Requeue dead letter")
def requeue_dead_letter(
    job_id: str,
    user_id: str = Depends(get_current_user_id),
    queue: JobQueue = Depends(get_job_queue)
):
    """
    Retry a dead-lettered job with a fresh retry budget

    Raises:
        HTTPException: 404 if the job isn't the caller's; 400 if it isn't dead-lettered
    """
    if queue.get(job_id).user_id != user_id:
        raise NotFoundError("job", job_id)
    return DeadLetterResponse.from_job(queue.requeue_dead_letter(job_id))


@router.get("/jobs/stats", response_model=QueueStatsResponse)
@handle_api_errors("Queue stats")
def queue_stats(
    user_id: str = Depends(get_current_user_id),
    queue: JobQueue = Depends(get_job_queue)
):
    """Queue depth by state (all users)"""
    return QueueStatsResponse(counts=queue.stats())
