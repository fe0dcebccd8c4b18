"""Facade exposing job submission, status polling and cancellation."""

import logging
from typing import List, Optional

from .config import WorkerConfig
from .grouping import group_recipients
from .models import Job
from .queue import JobQueue
from .transports.base import BaseTransport
from .worker import DispatchWorker

logger = logging.getLogger(__name__)


class DispatchService:
    """Owns the job queue and its single dispatch worker."""

    def __init__(
        self,
        transport: BaseTransport,
        worker_config: Optional[WorkerConfig] = None,
        queue: Optional[JobQueue] = None,
    ):
        """Initialize the service.

        Args:
            transport: Transport used for every delivery attempt
            worker_config: Poll interval and retry settings
            queue: Queue to use (a new one by default)
        """
        config = worker_config or WorkerConfig()
        self.queue = queue or JobQueue()
        self.worker = DispatchWorker(
            self.queue,
            transport,
            poll_interval=config.poll_interval,
            max_attempts=config.max_attempts,
            backoff_factor=config.backoff_factor,
            error_pause=config.error_pause,
        )

    def start(self) -> None:
        self.worker.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        self.worker.stop(timeout)

    def __enter__(self) -> "DispatchService":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def submit_job(self, job: Job) -> str:
        """Queue a job for dispatch and return its id."""
        job.total_groups = len(group_recipients(job.recipients))
        return self.queue.submit(job)

    def get_job(self, job_id: str) -> Optional[Job]:
        """Current snapshot of a job, or None if the id is unknown."""
        return self.queue.get(job_id)

    def cancel_job(self, job_id: str) -> bool:
        """Request cancellation; False when the job is unknown or already finished."""
        return self.queue.cancel(job_id)

    def list_jobs(self) -> List[Job]:
        return self.queue.list_jobs()

    def queued_count(self) -> int:
        return len(self.queue)
