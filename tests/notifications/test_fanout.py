"""Tests for NotificationFanout — batch boundaries and per-batch job policy."""
from editions.services.email.types import EmailType
from editions.services.notifications.service import RELEASE_EMAIL_JOB, NotificationFanout, Recipient
from tests.factories import FakeQueue


class FailingBatchQueue(FakeQueue):
    """Raises on the n-th enqueue call (1-based), like a broker dropping one connection."""

    def __init__(self, fail_on: int):
        super().__init__()
        self.fail_on = fail_on
        self.calls = 0

    def enqueue(self, queue_name, job_name, payload, options=None):
        self.calls += 1
        if self.calls == self.fail_on:
            raise ConnectionError("broker unavailable")
        return super().enqueue(queue_name, job_name, payload, options)


def _recipients(n: int) -> list[Recipient]:
    return [Recipient(user_id=f"u{i}", email=f"u{i}@example.com", name=f"User {i}") for i in range(n)]


class TestSendEditionReleaseEmails:
    def test_250_users_make_three_batches(self):
        queue = FakeQueue()

        result = NotificationFanout(queue, batch_size=100).send_edition_release_emails(
            7, _recipients(250), EmailType.NEW_EDITION_RELEASED
        )

        assert result.enqueued == 3
        assert result.batch_count == 3
        assert result.failed_batches == []
        sizes = [len(job["payload"]["recipients"]) for job in queue.jobs]
        assert sizes == [100, 100, 50]
        assert {job["queue"] for job in queue.jobs} == {"emails"}
        assert {job["job_name"] for job in queue.jobs} == {RELEASE_EMAIL_JOB}

    def test_every_user_lands_in_exactly_one_batch(self):
        queue = FakeQueue()
        NotificationFanout(queue, batch_size=100).send_edition_release_emails(7, _recipients(250))

        user_ids = [r["user_id"] for job in queue.jobs for r in job["payload"]["recipients"]]
        assert len(user_ids) == 250
        assert len(set(user_ids)) == 250

    def test_batch_jobs_carry_email_retry_policy(self):
        queue = FakeQueue()
        NotificationFanout(queue).send_edition_release_emails(7, _recipients(1))

        options = queue.jobs[0]["options"]
        assert options.max_attempts == 3
        assert options.backoff_delay == 60
        assert options.dedup_key == "NEW_EDITION_RELEASED:7:0"
        assert queue.jobs[0]["payload"]["edition_number"] == 7
        assert queue.jobs[0]["payload"]["email_type"] == "NEW_EDITION_RELEASED"

    def test_zero_users_enqueue_nothing(self):
        queue = FakeQueue()

        assert NotificationFanout(queue).send_edition_release_emails(7, []).enqueued == 0
        assert queue.jobs == []

    def test_repeated_fanout_is_deduplicated(self):
        queue = FakeQueue()
        fanout = NotificationFanout(queue)

        fanout.send_edition_release_emails(7, _recipients(120))
        again = fanout.send_edition_release_emails(7, _recipients(120))

        assert again.enqueued == 0
        assert again.failed_batches == []
        assert len(queue.jobs) == 2

    def test_failed_batch_does_not_block_later_batches(self):
        queue = FailingBatchQueue(fail_on=2)

        result = NotificationFanout(queue, batch_size=100).send_edition_release_emails(7, _recipients(250))

        assert queue.calls == 3
        assert result.enqueued == 2
        assert result.failed_batches == [1]
        assert [len(job["payload"]["recipients"]) for job in queue.jobs] == [100, 50]
        assert [job["options"].dedup_key for job in queue.jobs] == [
            "NEW_EDITION_RELEASED:7:0",
            "NEW_EDITION_RELEASED:7:2",
        ]

    def test_failed_batch_can_be_enqueued_on_a_later_fanout(self):
        queue = FailingBatchQueue(fail_on=2)
        fanout = NotificationFanout(queue, batch_size=100)
        fanout.send_edition_release_emails(7, _recipients(250))

        retry = fanout.send_edition_release_emails(7, _recipients(250))

        assert retry.enqueued == 1
        assert queue.jobs[-1]["options"].dedup_key == "NEW_EDITION_RELEASED:7:1"
