"""In-memory job queue shared by callers and the dispatch worker."""

import logging
import threading
import uuid
from collections import deque
from typing import Deque, Dict, List, Optional, Set

from .exceptions import QueueError
from .models import Job, JobStatus, utcnow

logger = logging.getLogger(__name__)


class JobQueue:
    """FIFO of pending job ids plus a lookup table of every job ever submitted.

    A single lock guards both structures. Jobs are stored and handed out as
    snapshots, so no caller holds a reference to the stored record. A job
    that has been taken by the worker is only marked for cancellation; the
    worker records the terminal status at its next group boundary.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._pending: Deque[str] = deque()
        self._jobs: Dict[str, Job] = {}
        self._cancel_requested: Set[str] = set()

    def submit(self, job: Job) -> str:
        """Admit a job and return its id."""
        if job.status.is_terminal:
            raise QueueError(f"Cannot submit job {job.job_id} in terminal status {job.status.value}")

        stored = job.snapshot()
        if not stored.job_id:
            stored.job_id = str(uuid.uuid4())
        stored.status = JobStatus.QUEUED
        stored.created_at = utcnow()

        with self._lock:
            if stored.job_id in self._jobs:
                raise QueueError(f"Job {stored.job_id} already submitted")
            self._jobs[stored.job_id] = stored
            self._pending.append(stored.job_id)

        job.job_id = stored.job_id
        job.status = stored.status
        job.created_at = stored.created_at
        logger.info("Job %s enqueued with %s groups", stored.job_id, stored.total_groups)
        return stored.job_id

    def try_take_next(self) -> Optional[Job]:
        """Pop the oldest pending job without blocking."""
        with self._lock:
            if not self._pending:
                return None
            job_id = self._pending.popleft()
            return self._jobs[job_id].snapshot()

    def get(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.snapshot() if job is not None else None

    def update(self, job: Job) -> None:
        """Replace the stored record for ``job.job_id``.

        A stored terminal status, and its error message, are kept when the
        incoming record carries a different status.
        """
        incoming = job.snapshot()
        with self._lock:
            current = self._jobs.get(incoming.job_id)
            if current is not None and current.status.is_terminal and incoming.status != current.status:
                logger.debug(
                    "Job %s keeps terminal status %s over %s",
                    incoming.job_id, current.status.value, incoming.status.value,
                )
                incoming.status = current.status
                incoming.error_message = current.error_message
                if incoming.completed_at is None:
                    incoming.completed_at = current.completed_at
                incoming.current_group = ""
            self._jobs[incoming.job_id] = incoming
            if incoming.status.is_terminal:
                self._cancel_requested.discard(incoming.job_id)

    def cancel(self, job_id: str) -> bool:
        """Cancel a queued job now, or ask the worker to stop a running one.

        A job still waiting in the queue leaves it and becomes CANCELLED
        immediately. A job the worker has taken keeps its status until the
        worker reaches the next group boundary.
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status.is_terminal:
                return False
            if job.status == JobStatus.QUEUED and job_id in self._pending:
                self._pending.remove(job_id)
                cancelled = job.snapshot()
                cancelled.status = JobStatus.CANCELLED
                cancelled.completed_at = utcnow()
                cancelled.current_group = ""
                self._jobs[job_id] = cancelled
                logger.info("Job %s cancelled before it started", job_id)
                return True
            self._cancel_requested.add(job_id)
        logger.info("Cancellation requested for running job %s", job_id)
        return True

    def is_cancelled(self, job_id: str) -> bool:
        """Whether the job is cancelled or has a pending cancellation request."""
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return False
            return job.status == JobStatus.CANCELLED or job_id in self._cancel_requested

    def list_jobs(self) -> List[Job]:
        """All known jobs, newest first."""
        with self._lock:
            jobs = [job.snapshot() for job in self._jobs.values()]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
