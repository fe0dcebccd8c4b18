"""Tests for the dispatch worker."""

import time

import pytest

from mail_dispatch.attachments import NO_ATTACHMENT_REASON
from mail_dispatch.exceptions import TransportError
from mail_dispatch.models import (
    AttachmentCatalog,
    DeliveryResult,
    JobStatus,
    MessageTemplate,
    TemplateCategory,
)
from mail_dispatch.transports.mock import MockTransport


def _run(queue, worker, job):
    job_id = queue.submit(job)
    assert worker.tick() is True
    return queue.get(job_id)


class TestProcessJob:
    """Tests for a job running to completion."""

    def test_sends_group_with_attachments(self, queue, make_worker, make_job, attachment_files):
        """Test the happy path for a group with invoice and statement files."""
        transport = MockTransport()
        worker = make_worker(transport)

        job = _run(queue, worker, make_job())

        assert job.status == JobStatus.COMPLETED
        assert job.sent_count == 1
        assert job.skipped_count == 1
        assert job.failed_count == 0
        assert job.current_group == ""
        assert job.started_at is not None
        assert job.completed_at is not None

        message = transport.delivered[0]
        assert message.to == ["a@x.com"]
        assert message.cc == ["b@x.com", "audit@example.com"]
        assert message.bcc == ["c@x.com"]
        assert message.subject == "SOA 3000-AT502 - Acme"
        assert message.attachments == [
            str(attachment_files["3000-AT502 INV 12345.pdf"]),
            str(attachment_files["3000-AT502 SOA 12345.pdf"]),
        ]

        sent = job.results.sent[0]
        assert sent.group_key == "3000-AT502"
        assert sent.recipients == ("a@x.com",)
        assert sent.message == "Sent"
        assert sent.attempts == 1

    def test_group_without_matching_files_is_skipped(self, queue, make_worker, make_job):
        """Test that a group whose files do not match the category is skipped."""
        job = _run(queue, make_worker(), make_job())

        skipped = job.results.skipped[0]
        assert skipped.group_key == "3000-BX100"
        assert skipped.message == NO_ATTACHMENT_REASON

    def test_overdue_template_uses_od_files(self, queue, make_worker, make_job):
        """Test that the overdue category sends only the group with OD files."""
        template = MessageTemplate(TemplateCategory.OVERDUE, "Overdue {debtor code}", "body")
        transport = MockTransport()

        job = _run(queue, make_worker(transport), make_job(template=template))

        assert [r.group_key for r in job.results.sent] == ["3000-BX100"]
        assert [r.group_key for r in job.results.skipped] == ["3000-AT502"]
        assert transport.delivered[0].subject == "Overdue 3000-BX100"

    def test_empty_catalog_skips_every_group(self, queue, make_worker, make_job):
        """Test that no catalog means every group is skipped and nothing is sent."""
        transport = MockTransport()

        job = _run(queue, make_worker(transport), make_job(catalog=AttachmentCatalog()))

        assert job.status == JobStatus.COMPLETED
        assert job.skipped_count == 2
        assert transport.attempts == []

    def test_no_recipients(self, queue, make_worker, make_job):
        """Test that a job with no recipients completes with zero groups."""
        job = _run(queue, make_worker(), make_job(recipients=[]))

        assert job.status == JobStatus.COMPLETED
        assert job.total_groups == 0
        assert job.processed_count == 0

    def test_counters_match_results(self, queue, make_worker, make_job):
        """Test that counters equal the lengths of the result lists."""
        job = _run(queue, make_worker(MockTransport(always_fail="down")), make_job())

        assert job.sent_count == len(job.results.sent)
        assert job.failed_count == len(job.results.failed)
        assert job.skipped_count == len(job.results.skipped)
        assert job.processed_count == job.total_groups

    def test_missing_template_fails_job(self, queue, make_worker, make_job):
        """Test that a job without a template ends Failed."""
        job = _run(queue, make_worker(), make_job(template=None))

        assert job.status == JobStatus.FAILED
        assert "no template" in job.error_message
        assert job.completed_at is not None

    def test_unexpected_error_fails_job(self, queue, make_worker, make_job):
        """Test that an exception other than TransportError fails the job."""
        class BrokenTransport(MockTransport):
            def deliver(self, message, config):
                raise RuntimeError("socket exploded")

        job = _run(queue, make_worker(BrokenTransport()), make_job())

        assert job.status == JobStatus.FAILED
        assert job.error_message == "socket exploded"

    def test_progress_visible_during_delivery(self, queue, make_worker, make_job):
        """Test that readers see Running and the current group mid-job."""
        seen = []

        class PeekingTransport(MockTransport):
            def deliver(self, message, config):
                seen.append(queue.get(job_id))
                return super().deliver(message, config)

        job = make_job()
        job_id = queue.submit(job)
        make_worker(PeekingTransport()).tick()

        assert seen[0].status == JobStatus.RUNNING
        assert seen[0].current_group == "3000-AT502"
        assert seen[0].total_groups == 2

    def test_every_snapshot_is_consistent(self, queue, make_worker, make_job, monkeypatch):
        """Test that counters never run ahead of the results or the group count."""
        published = []
        update = queue.update

        def recording_update(job):
            update(job)
            published.append(queue.get(job.job_id))

        monkeypatch.setattr(queue, "update", recording_update)
        transport = MockTransport(failures=["down", "down", "down"])
        job_id = queue.submit(make_job())
        make_worker(transport).tick()

        assert published
        for snapshot in published:
            assert snapshot.processed_count <= snapshot.total_groups
            assert snapshot.sent_count == len(snapshot.results.sent)
            assert snapshot.failed_count == len(snapshot.results.failed)
            assert snapshot.skipped_count == len(snapshot.results.skipped)
        assert published[-1].status == JobStatus.COMPLETED
        assert queue.get(job_id).processed_count == 2

    def test_finished_job_is_not_given_an_error(self, make_worker, make_job):
        """Test that a job already Completed keeps its status and gets no error message."""
        job = make_job(status=JobStatus.COMPLETED)

        make_worker().process_job(job)

        assert job.status == JobStatus.COMPLETED
        assert job.error_message is None

    def test_jobs_processed_in_submission_order(self, queue, make_worker, make_job):
        """Test that J1 finishes before J2 starts."""
        transport = MockTransport()
        worker = make_worker(transport)
        first = queue.submit(make_job(template=MessageTemplate(TemplateCategory.SOA_INV, "J1", "b")))
        second = queue.submit(make_job(template=MessageTemplate(TemplateCategory.SOA_INV, "J2", "b")))

        assert worker.tick() is True
        assert queue.get(first).status == JobStatus.COMPLETED
        assert queue.get(second).status == JobStatus.QUEUED

        assert worker.tick() is True
        assert worker.tick() is False
        assert [m.subject for m in transport.delivered] == ["J1", "J2"]


class TestRetry:
    """Tests for bounded retry with backoff."""

    def test_succeeds_on_third_attempt(self, queue, make_worker, make_job, sleeps):
        """Test two failures then success, with 2s and 4s waits."""
        transport = MockTransport(failures=["busy", "busy"])

        job = _run(queue, make_worker(transport), make_job())

        assert job.sent_count == 1
        assert job.results.sent[0].attempts == 3
        assert len(transport.attempts) == 3
        assert sleeps == [2.0, 4.0]

    def test_gives_up_after_three_attempts(self, queue, make_worker, make_job, sleeps):
        """Test that a group fails after exactly three attempts."""
        transport = MockTransport(always_fail="connection refused")

        job = _run(queue, make_worker(transport), make_job())

        assert job.failed_count == 1
        failed = job.results.failed[0]
        assert failed.group_key == "3000-AT502"
        assert failed.attempts == 3
        assert failed.message == "Failed after 3 attempts: connection refused"
        assert failed.recipients == ("a@x.com",)
        assert len(transport.attempts) == 3
        assert sleeps == [2.0, 4.0]

    def test_transport_error_counts_as_failed_attempt(self, queue, make_worker, make_job):
        """Test that a raised TransportError is retried like a failed result."""
        class FlakyTransport(MockTransport):
            calls = 0

            def deliver(self, message, config):
                FlakyTransport.calls += 1
                if FlakyTransport.calls == 1:
                    raise TransportError("not configured yet")
                return DeliveryResult.success()

        job = _run(queue, make_worker(FlakyTransport()), make_job())

        assert job.status == JobStatus.COMPLETED
        assert job.results.sent[0].attempts == 2

    def test_backoff_delay(self, make_worker):
        """Test the exponential backoff schedule."""
        worker = make_worker(backoff_factor=1.0)

        assert worker.backoff_delay(1) == 2.0
        assert worker.backoff_delay(2) == 4.0
        assert make_worker(backoff_factor=0.5).backoff_delay(2) == 2.0

    def test_invalid_max_attempts(self, make_worker):
        """Test that at least one attempt is required."""
        with pytest.raises(ValueError):
            make_worker(max_attempts=0)


class TestCancellation:
    """Tests for cancellation and shutdown."""

    def test_cancelled_while_queued(self, queue, make_worker, make_job):
        """Test that a job cancelled before it starts never sends."""
        transport = MockTransport()
        job_id = queue.submit(make_job())
        queue.cancel(job_id)

        make_worker(transport).tick()
        job = queue.get(job_id)

        assert job.status == JobStatus.CANCELLED
        assert job.started_at is None
        assert transport.attempts == []

    def test_cancelled_between_groups(self, queue, make_worker, make_job):
        """Test that cancellation stops the job at the next group boundary."""
        class CancellingTransport(MockTransport):
            def deliver(self, message, config):
                queue.cancel(job_id)
                return super().deliver(message, config)

        job_id = queue.submit(make_job())
        make_worker(CancellingTransport()).tick()
        job = queue.get(job_id)

        assert job.status == JobStatus.CANCELLED
        assert job.sent_count == 1
        assert job.processed_count == 1
        assert job.total_groups == 2
        assert job.current_group == ""

    def test_cancel_mid_group_stays_running_until_boundary(self, queue, make_worker, make_job):
        """Test that a cancel during delivery is only finalized after the group is recorded."""
        seen = []

        class CancellingTransport(MockTransport):
            def deliver(self, message, config):
                queue.cancel(job_id)
                seen.append(queue.get(job_id))
                return super().deliver(message, config)

        job_id = queue.submit(make_job())
        make_worker(CancellingTransport()).tick()
        job = queue.get(job_id)

        assert seen[0].status == JobStatus.RUNNING
        assert seen[0].current_group == "3000-AT502"
        assert seen[0].completed_at is None
        assert job.status == JobStatus.CANCELLED
        assert len(job.results.sent) == 1
        assert job.completed_at is not None

    def test_cancel_during_last_group_stays_cancelled(self, queue, make_worker, make_job, sample_recipients):
        """Test that a cancel during the final group is not overwritten by Completed."""
        class CancellingTransport(MockTransport):
            def deliver(self, message, config):
                queue.cancel(job_id)
                return super().deliver(message, config)

        job_id = queue.submit(make_job(recipients=sample_recipients[:3]))
        make_worker(CancellingTransport()).tick()
        job = queue.get(job_id)

        assert job.status == JobStatus.CANCELLED
        assert job.sent_count == 1

    def test_shutdown_during_backoff(self, queue, make_worker, make_job):
        """Test that shutdown while waiting records the group and stops the job."""
        holder = {}

        def sleep(delay):
            holder["worker"].stop()
            return True

        transport = MockTransport(always_fail="down")
        holder["worker"] = make_worker(transport, sleep=sleep)

        job = _run(queue, holder["worker"], make_job())

        assert job.status == JobStatus.CANCELLED
        assert job.failed_count == 1
        failed = job.results.failed[0]
        assert failed.attempts == 1
        assert failed.message == "interrupted by shutdown after 1 attempts: down"
        assert len(transport.attempts) == 1


class TestLifecycle:
    """Tests for the background thread."""

    def test_start_and_stop(self, queue, make_worker, make_job):
        """Test that the thread drains the queue and stops on request."""
        worker = make_worker(poll_interval=0.01)
        job_id = queue.submit(make_job())

        worker.start()
        try:
            for _ in range(500):
                if queue.get(job_id).is_terminal:
                    break
                time.sleep(0.01)
        finally:
            worker.stop(timeout=5)

        assert queue.get(job_id).status == JobStatus.COMPLETED
        assert worker.is_running is False
