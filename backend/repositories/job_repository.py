"""
Job repository for queue-specific data access operations.

Every state transition is a conditional UPDATE keyed on the state the caller
observed, so two consumers racing for the same row can't both win.
"""

from datetime import datetime
from typing import List, Optional, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy import func

from models import Job as JobModel
from .base_repository import BaseRepository


class JobRepository(BaseRepository[JobModel]):
    """Repository for Job model operations."""

    def __init__(self, db: Session):
        super().__init__(db, JobModel)

    def get_by_state(self, state: str) -> List[JobModel]:
        """
        Get all jobs with a specific state, oldest first.

        Args:
            state: Job state (QUEUED, RUNNING, DONE, DEAD)

        Returns:
            List of jobs in the specified state
        """
        return self.db.query(self.model).filter(
            self.model.state == state
        ).order_by(self.model.created_at).all()

    def get_for_user(self, user_id: str, state: Optional[str] = None) -> List[JobModel]:
        query = self.db.query(self.model).filter(self.model.user_id == user_id)
        if state:
            query = query.filter(self.model.state == state)
        return query.order_by(self.model.created_at).all()

    def next_available_ids(self, now: datetime, limit: int = 5) -> List[str]:
        """
        Ids of QUEUED jobs whose backoff has elapsed, oldest first.

        Args:
            now: Current time
            limit: Maximum candidates to return
        """
        rows = self.db.query(self.model.id).filter(
            self.model.state == 'QUEUED',
            self.model.available_at <= now
        ).order_by(self.model.available_at, self.model.created_at).limit(limit).all()
        return [row.id for row in rows]

    def expired_leases(self, now: datetime) -> List[JobModel]:
        """Get RUNNING jobs whose consumer stopped renewing its lease."""
        return self.db.query(self.model).filter(
            self.model.state == 'RUNNING',
            self.model.lease_expires_at < now
        ).all()

    def claim(self, job_id: str, worker_id: str, now: datetime, lease_until: datetime) -> bool:
        """
        Move a QUEUED job to RUNNING if nobody else got there first.

        Returns:
            True if this caller now holds the lease
        """
        updated = self.db.query(self.model).filter(
            self.model.id == job_id,
            self.model.state == 'QUEUED',
            self.model.available_at <= now
        ).update(
            {
                self.model.state: 'RUNNING',
                self.model.worker_id: worker_id,
                self.model.started_at: now,
                self.model.lease_expires_at: lease_until,
                self.model.deliveries: self.model.deliveries + 1,
            },
            synchronize_session=False
        )
        return updated == 1

    def transition(
        self,
        job_id: str,
        from_state: str,
        values: Dict[Any, Any],
        lease_expires_at: Optional[datetime] = None,
        worker_id: Optional[str] = None
    ) -> bool:
        """
        Apply values to a job only if it is still in from_state.

        Args:
            job_id: Job UUID
            from_state: State the caller last observed
            values: Column → value mapping
            lease_expires_at: When given, the lease must also be unchanged
            worker_id: When given, the job must still be held by this consumer

        Returns:
            True if the row was updated
        """
        query = self.db.query(self.model).filter(
            self.model.id == job_id,
            self.model.state == from_state
        )
        if lease_expires_at is not None:
            query = query.filter(self.model.lease_expires_at == lease_expires_at)
        if worker_id is not None:
            query = query.filter(self.model.worker_id == worker_id)
        return query.update(values, synchronize_session=False) == 1

    def delete_done_before(self, cutoff: datetime) -> int:
        return self.db.query(self.model).filter(
            self.model.state == 'DONE',
            self.model.completed_at < cutoff
        ).delete(synchronize_session=False)

    def count_by_state(self) -> Dict[str, int]:
        """
        Count jobs grouped by state.

        Returns:
            Mapping of state → count (states without jobs are omitted)
        """
        state_counts = self.db.query(
            self.model.state,
            func.count(self.model.id).label('count')
        ).group_by(self.model.state).all()
        return {state: count for state, count in state_counts}
