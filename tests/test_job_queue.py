import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from pdfchat.core.errors import JobNotFoundError, JobStateError
from pdfchat.models.ingest import JobPayload
from pdfchat.services.job_queue import JobQueue


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def _payload(name: str = "file.pdf") -> JobPayload:
    return JobPayload(filename=name, path=f"/tmp/uploads/1-2-{name}", destination="/tmp/uploads")


class TestJobQueue(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.mkdtemp()
        self.clock = FakeClock()
        self.queue = self._new_queue()

    def tearDown(self) -> None:
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _new_queue(self) -> JobQueue:
        return JobQueue(self.temp_dir, max_attempts=3, retry_delay=10.0, clock=self.clock)

    def test_enqueue_persists_record_before_returning(self) -> None:
        job_id = self.queue.enqueue(_payload())

        record_path = Path(self.temp_dir) / f"{job_id}.json"
        self.assertTrue(record_path.exists())
        data = json.loads(record_path.read_text())
        self.assertEqual(data["jobId"], job_id)
        self.assertEqual(data["status"], "queued")
        self.assertEqual(data["documentId"], "1-2-file.pdf")
        self.assertEqual(
            data["payload"],
            {"filename": "file.pdf", "path": "/tmp/uploads/1-2-file.pdf", "destination": "/tmp/uploads"},
        )

    def test_dequeue_is_fifo_and_exclusive(self) -> None:
        first = self.queue.enqueue(_payload("a.pdf"))
        second = self.queue.enqueue(_payload("b.pdf"))

        leased = self.queue.dequeue()
        self.assertEqual(leased.job_id, first)
        self.assertEqual(leased.status, "processing")
        self.assertEqual(leased.attempts, 1)

        self.assertEqual(self.queue.dequeue().job_id, second)
        self.assertIsNone(self.queue.dequeue())

    def test_complete_records_chunk_count(self) -> None:
        job_id = self.queue.enqueue(_payload())
        self.queue.dequeue()
        done = self.queue.complete(job_id, 7)

        self.assertEqual(done.status, "completed")
        self.assertEqual(done.chunks_indexed, 7)
        self.assertEqual(self.queue.get(job_id).status, "completed")
        self.assertEqual(self.queue.pending_count(), 0)

    def test_complete_requires_lease(self) -> None:
        job_id = self.queue.enqueue(_payload())
        with self.assertRaises(JobStateError):
            self.queue.complete(job_id, 1)
        with self.assertRaises(JobNotFoundError):
            self.queue.complete("missing", 1)

    def test_failure_requeues_with_backoff(self) -> None:
        job_id = self.queue.enqueue(_payload())
        self.queue.dequeue()
        job = self.queue.fail(job_id, "EmbeddingError: timeout")

        self.assertEqual(job.status, "queued")
        self.assertEqual(job.last_error, "EmbeddingError: timeout")
        self.assertIsNone(self.queue.dequeue())
        self.assertAlmostEqual(self.queue.seconds_until_available(), 10.0)

        self.clock.now += 10.0
        again = self.queue.dequeue()
        self.assertEqual(again.job_id, job_id)
        self.assertEqual(again.attempts, 2)

        self.queue.fail(job_id, "EmbeddingError: timeout")
        self.clock.now += 19.0
        self.assertIsNone(self.queue.dequeue())
        self.clock.now += 1.0
        self.assertEqual(self.queue.dequeue().attempts, 3)

    def test_exhausted_job_is_dead_lettered(self) -> None:
        job_id = self.queue.enqueue(_payload())
        for _ in range(3):
            self.clock.now += 1_000
            self.queue.dequeue()
            job = self.queue.fail(job_id, "LoadError: not a PDF")

        self.assertEqual(job.status, "failed")
        self.assertTrue(job.dead_lettered)
        self.assertEqual(job.attempts, 3)
        self.assertEqual([j.job_id for j in self.queue.dead_letters()], [job_id])
        self.clock.now += 1_000
        self.assertIsNone(self.queue.dequeue())

    def test_retry_redrives_dead_letter(self) -> None:
        job_id = self.queue.enqueue(_payload())
        with self.assertRaises(JobStateError):
            self.queue.retry(job_id)

        for _ in range(3):
            self.clock.now += 1_000
            self.queue.dequeue()
            self.queue.fail(job_id, "VectorIndexError: unavailable")

        job = self.queue.retry(job_id)
        self.assertEqual(job.status, "queued")
        self.assertFalse(job.dead_lettered)
        self.assertEqual(job.attempts, 0)
        self.assertEqual(self.queue.dead_letters(), [])
        self.assertEqual(self.queue.dequeue().job_id, job_id)

    def test_recover_redelivers_in_flight_jobs(self) -> None:
        done = self.queue.enqueue(_payload("done.pdf"))
        crashed = self.queue.enqueue(_payload("crashed.pdf"))
        waiting = self.queue.enqueue(_payload("waiting.pdf"))
        self.queue.dequeue()
        self.queue.complete(done, 3)
        self.assertEqual(self.queue.dequeue().job_id, crashed)

        # Simulate a process restart while ``crashed`` is leased.
        restarted = self._new_queue()
        self.assertEqual(restarted.recover(), 2)

        self.assertEqual(restarted.get(done).status, "completed")
        redelivered = restarted.dequeue()
        self.assertEqual(redelivered.job_id, crashed)
        self.assertEqual(redelivered.attempts, 2)
        self.assertEqual(restarted.dequeue().job_id, waiting)

    def test_recover_dead_letters_exhausted_lease(self) -> None:
        queue = JobQueue(self.temp_dir, max_attempts=1, clock=self.clock)
        job_id = queue.enqueue(_payload())
        queue.dequeue()

        restarted = JobQueue(self.temp_dir, max_attempts=1, clock=self.clock)
        self.assertEqual(restarted.recover(), 0)
        job = restarted.get(job_id)
        self.assertEqual(job.status, "failed")
        self.assertTrue(job.dead_lettered)

    def test_recover_skips_corrupt_records(self) -> None:
        job_id = self.queue.enqueue(_payload())
        (Path(self.temp_dir) / "broken.json").write_text("{not json")

        restarted = self._new_queue()
        self.assertEqual(restarted.recover(), 1)
        self.assertEqual(restarted.dequeue().job_id, job_id)

    def test_failed_lease_write_keeps_job_queued(self) -> None:
        job_id = self.queue.enqueue(_payload())

        with patch.object(self.queue, "_write", side_effect=OSError(28, "No space left on device")):
            with self.assertRaises(OSError):
                self.queue.dequeue()

        self.assertEqual(self.queue.get(job_id).status, "queued")
        self.assertEqual(self.queue.pending_count(), 1)
        leased = self.queue.dequeue()
        self.assertEqual(leased.job_id, job_id)
        self.assertEqual(leased.attempts, 1)

    def test_completed_records_expire_after_retention(self) -> None:
        queue = JobQueue(
            self.temp_dir, max_attempts=1, retry_delay=0.0, completed_ttl=60.0, clock=self.clock
        )
        first = queue.enqueue(_payload("first.pdf"))
        second = queue.enqueue(_payload("second.pdf"))
        dead = queue.enqueue(_payload("dead.pdf"))

        queue.dequeue()
        queue.complete(first, 1)
        self.assertEqual(queue.get(first).status, "completed")

        self.clock.now += 60.0
        queue.dequeue()
        queue.complete(second, 2)
        queue.dequeue()
        queue.fail(dead, "LoadError: not a PDF")

        self.assertIsNone(queue.get(first))
        self.assertFalse((Path(self.temp_dir) / f"{first}.json").exists())
        self.assertEqual(queue.get(second).status, "completed")

        self.clock.now += 60.0
        restarted = JobQueue(self.temp_dir, completed_ttl=60.0, clock=self.clock)
        restarted.recover()

        self.assertIsNone(restarted.get(second))
        self.assertFalse((Path(self.temp_dir) / f"{second}.json").exists())
        self.assertEqual([j.job_id for j in restarted.dead_letters()], [dead])

    def test_listener_notified_on_enqueue(self) -> None:
        calls = []
        self.queue.add_listener(lambda: calls.append(1))
        self.queue.enqueue(_payload())
        self.assertEqual(calls, [1])


if __name__ == "__main__":
    unittest.main()
