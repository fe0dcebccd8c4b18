"""Background worker that drains the job queue."""

import logging
import threading
from typing import Callable, Optional, Tuple

from .attachments import NO_ATTACHMENT_REASON, resolve_attachments
from .composer import compose_message
from .exceptions import DispatchError, TemplateError, TransportError
from .grouping import RecipientGroup, group_recipients
from .models import DeliveryResult, GroupResult, Job, JobStatus, OutboundMessage, utcnow
from .queue import JobQueue
from .transports.base import BaseTransport

logger = logging.getLogger(__name__)


class DispatchWorker:
    """Single loop that takes one job at a time and sends it group by group.

    ``sleep`` is used for retry backoff; it receives a delay in seconds and
    returns True when shutdown was requested during the wait. It defaults to
    waiting on the worker's stop event.
    """

    def __init__(
        self,
        queue: JobQueue,
        transport: BaseTransport,
        poll_interval: float = 0.5,
        max_attempts: int = 3,
        backoff_factor: float = 1.0,
        error_pause: float = 1.0,
        sleep: Optional[Callable[[float], bool]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.queue = queue
        self.transport = transport
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.backoff_factor = backoff_factor
        self.error_pause = error_pause
        self._stop_event = threading.Event()
        self._sleep = sleep or self._stop_event.wait
        self._thread: Optional[threading.Thread] = None

    # -- lifecycle -------------------------------------------------------------

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, name="dispatch-worker", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal shutdown and wait for the loop to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Dispatch worker did not stop within %ss", timeout)
            else:
                self._thread = None

    def run(self) -> None:
        logger.info("Dispatch worker started (poll_interval=%ss)", self.poll_interval)
        while not self.stop_requested:
            try:
                if not self.tick():
                    self._stop_event.wait(self.poll_interval)
            except Exception:
                logger.exception("Error in dispatch worker loop")
                self._stop_event.wait(self.error_pause)
        logger.info("Dispatch worker stopped")

    def tick(self) -> bool:
        """Process the next pending job, if any. Returns whether one was taken."""
        job = self.queue.try_take_next()
        if job is None:
            return False
        logger.info("Processing job %s", job.job_id, extra={"job_id": job.job_id})
        self.process_job(job)
        return True

    # -- per job ---------------------------------------------------------------

    def process_job(self, job: Job) -> Job:
        """Run every group of ``job`` and publish progress after each change."""
        try:
            self._transition(job, JobStatus.RUNNING)
            job.started_at = utcnow()
            self._publish(job)

            if job.template is None:
                raise TemplateError(f"Job {job.job_id} has no template")

            groups = group_recipients(job.recipients)
            job.total_groups = len(groups)
            self._publish(job)

            for group in groups:
                if self._cancel_requested(job):
                    logger.info("Job %s cancelled", job.job_id)
                    self._finish(job, JobStatus.CANCELLED)
                    return job

                job.current_group = group.key
                self._publish(job)

                self._process_group(job, group)
                self._publish(job)

            # A cancel that arrived during the last group still wins.
            final = JobStatus.CANCELLED if self.queue.is_cancelled(job.job_id) else JobStatus.COMPLETED
            self._finish(job, final)
            logger.info(
                "Job %s %s. Sent: %s, Failed: %s, Skipped: %s",
                job.job_id, final.value, job.sent_count, job.failed_count, job.skipped_count,
            )
        except Exception as exc:
            logger.exception("Error processing job %s", job.job_id)
            if job.status.can_transition_to(JobStatus.FAILED):
                job.error_message = str(exc) or type(exc).__name__
                self._finish(job, JobStatus.FAILED)
            else:
                job.current_group = ""
                self._publish(job)
        return job

    def _process_group(self, job: Job, group: RecipientGroup) -> None:
        entry = job.catalog.get(group.key) if job.catalog is not None else None
        attachments = resolve_attachments(job.template.category, entry)
        if not attachments:
            logger.info("Skipping group %s: %s", group.key, NO_ATTACHMENT_REASON)
            job.results.skipped.append(GroupResult(group_key=group.key, message=NO_ATTACHMENT_REASON))
            job.skipped_count += 1
            return

        message = compose_message(job.template, group.key, group.members, attachments, job.transport)
        result, attempts, interrupted = self._deliver_with_retry(group.key, message, job)

        if result.ok:
            job.results.sent.append(
                GroupResult(
                    group_key=group.key,
                    recipients=tuple(group.primary_addresses),
                    message="Sent",
                    attempts=attempts,
                )
            )
            job.sent_count += 1
            return

        if interrupted:
            reason = f"interrupted by shutdown after {attempts} attempts: {result.error}"
        else:
            reason = f"Failed after {attempts} attempts: {result.error}"
        job.results.failed.append(
            GroupResult(
                group_key=group.key,
                recipients=tuple(group.primary_addresses),
                message=reason,
                attempts=attempts,
            )
        )
        job.failed_count += 1

    def _deliver_with_retry(
        self, group_key: str, message: OutboundMessage, job: Job
    ) -> Tuple[DeliveryResult, int, bool]:
        """Deliver with bounded retry.

        Returns:
            Tuple of (last result, attempts used, interrupted by shutdown)
        """
        result = DeliveryResult.failure("not attempted")
        for attempt in range(1, self.max_attempts + 1):
            result = self._attempt(message, job)
            if result.ok:
                logger.info("Email sent to group %s (attempt %s)", group_key, attempt)
                return result, attempt, False

            if attempt == self.max_attempts:
                logger.error(
                    "Failed to send email to group %s after %s attempts: %s",
                    group_key, self.max_attempts, result.error,
                )
                break

            delay = self.backoff_delay(attempt)
            logger.warning(
                "Failed to send email to group %s. Retry %s/%s in %ss. Error: %s",
                group_key, attempt, self.max_attempts, delay, result.error,
            )
            if self._sleep(delay):
                logger.warning("Shutdown requested while retrying group %s", group_key)
                return result, attempt, True

        return result, self.max_attempts, False

    def _attempt(self, message: OutboundMessage, job: Job) -> DeliveryResult:
        try:
            return self.transport.deliver(message, job.transport)
        except TransportError as e:
            return DeliveryResult.failure(e.message)

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return self.backoff_factor * (2 ** attempt)

    # -- state -----------------------------------------------------------------

    def _cancel_requested(self, job: Job) -> bool:
        return (
            self.stop_requested
            or job.status == JobStatus.CANCELLED
            or self.queue.is_cancelled(job.job_id)
        )

    def _transition(self, job: Job, target: JobStatus) -> None:
        if not job.status.can_transition_to(target):
            raise DispatchError(
                f"Invalid status transition {job.status.value} -> {target.value}",
                context={"job_id": job.job_id},
            )
        job.status = target

    def _finish(self, job: Job, status: JobStatus) -> None:
        self._transition(job, status)
        job.completed_at = utcnow()
        job.current_group = ""
        self._publish(job)

    def _publish(self, job: Job) -> None:
        self.queue.update(job)
