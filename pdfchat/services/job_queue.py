"""Durable ingestion job queue backed by one JSON record per job.

Records are written atomically before any state change is acknowledged, so a
restarted process can rebuild the queue with ``recover()``. Delivery is
at-least-once: a job that was being processed when the process died is queued
again on recovery. Completed records are kept for ``completed_ttl`` seconds
for status lookups, then removed; dead-lettered records are kept until re-driven.
"""

from __future__ import annotations

import os
import threading
import time
import uuid
from collections import deque
from collections.abc import Callable
from pathlib import Path

from pydantic import ValidationError

from pdfchat.core.errors import JobNotFoundError, JobStateError
from pdfchat.core.logging import get_logger
from pdfchat.models.ingest import IngestionJob, JobPayload, utc_now

logger = get_logger(__name__)

Listener = Callable[[], None]


class JobQueue:
    def __init__(
        self,
        store_dir: str,
        *,
        max_attempts: int = 3,
        retry_delay: float = 5.0,
        completed_ttl: float = 3600.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store_dir = Path(store_dir)
        self.store_dir.mkdir(parents=True, exist_ok=True)
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        # Seconds a completed record stays queryable before it is removed.
        self.completed_ttl = completed_ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._jobs: dict[str, IngestionJob] = {}
        self._pending: deque[str] = deque()
        self._listeners: list[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        """Register a callback fired whenever a job becomes available."""
        self._listeners.append(listener)

    def _notify(self) -> None:
        for listener in self._listeners:
            listener()

    def _record_path(self, job_id: str) -> Path:
        return self.store_dir / f"{job_id}.json"

    def _write(self, job: IngestionJob) -> None:
        """Persist a record atomically (temp file + rename)."""
        path = self._record_path(job.job_id)
        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(job.model_dump_json(by_alias=True, indent=2))
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)

    def _require(self, job_id: str) -> IngestionJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _save(self, job: IngestionJob, **changes) -> IngestionJob:
        """Write the updated record first, then swap it into memory."""
        updated = job.model_copy(update={**changes, "updated_at": utc_now()})
        self._write(updated)
        self._jobs[updated.job_id] = updated
        return updated

    def enqueue(self, payload: JobPayload, *, document_id: str | None = None) -> str:
        """Durably persist a new job and return its id."""
        job_id = str(uuid.uuid4())
        job = IngestionJob(
            job_id=job_id,
            document_id=document_id or Path(payload.path).name,
            payload=payload,
            max_attempts=self.max_attempts,
        )
        with self._lock:
            self._write(job)
            self._jobs[job_id] = job
            self._pending.append(job_id)
        logger.info("Job %s: enqueued for %s", job_id, payload.filename)
        self._notify()
        return job_id

    def dequeue(self) -> IngestionJob | None:
        """Lease the oldest available queued job, or return None."""
        now = self._clock()
        with self._lock:
            for job_id in list(self._pending):
                job = self._jobs[job_id]
                if job.available_at > now:
                    continue
                # Only drop from pending once the lease is on disk.
                leased = self._save(job, status="processing", attempts=job.attempts + 1)
                self._pending.remove(job_id)
                logger.info(
                    "Job %s: leased (attempt %d/%d)", job_id, leased.attempts, leased.max_attempts
                )
                return leased.model_copy()
        return None

    def complete(self, job_id: str, chunks_indexed: int) -> IngestionJob:
        with self._lock:
            job = self._require(job_id)
            if job.status != "processing":
                raise JobStateError(f"Job {job_id} is {job.status}, not processing.")
            done = self._save(
                job,
                status="completed",
                chunks_indexed=chunks_indexed,
                last_error=None,
                finished_at=self._clock(),
            )
            self._prune_completed()
        logger.info("Job %s: completed, %d chunks indexed", job_id, chunks_indexed)
        return done.model_copy()

    def _prune_completed(self) -> int:
        """Drop completed records older than ``completed_ttl``. Caller holds the lock."""
        now = self._clock()
        expired = [
            job_id
            for job_id, job in self._jobs.items()
            if job.status == "completed"
            and job.finished_at is not None
            and now - job.finished_at >= self.completed_ttl
        ]
        removed = 0
        for job_id in expired:
            try:
                self._record_path(job_id).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Job %s: could not remove completed record: %s", job_id, exc)
                continue
            del self._jobs[job_id]
            removed += 1
        if removed:
            logger.debug("Pruned %d completed job records", removed)
        return removed

    def fail(self, job_id: str, error: str) -> IngestionJob:
        """Requeue a failed job with backoff, or dead-letter it once its attempts are spent."""
        with self._lock:
            job = self._require(job_id)
            if job.status != "processing":
                raise JobStateError(f"Job {job_id} is {job.status}, not processing.")
            if job.attempts >= job.max_attempts:
                failed = self._save(job, status="failed", dead_lettered=True, last_error=error)
                logger.error(
                    "Job %s: dead-lettered after %d attempts - %s", job_id, job.attempts, error
                )
                return failed.model_copy()

            delay = self.retry_delay * (2 ** (job.attempts - 1))
            requeued = self._save(
                job, status="queued", last_error=error, available_at=self._clock() + delay
            )
            self._pending.append(job_id)
        logger.warning("Job %s: failed, retrying in %.1fs - %s", job_id, delay, error)
        self._notify()
        return requeued.model_copy()

    def retry(self, job_id: str) -> IngestionJob:
        """Re-drive a dead-lettered job with its attempt count reset."""
        with self._lock:
            job = self._require(job_id)
            if not job.dead_lettered:
                raise JobStateError(f"Job {job_id} is not dead-lettered.")
            requeued = self._save(
                job,
                status="queued",
                dead_lettered=False,
                attempts=0,
                max_attempts=self.max_attempts,
                available_at=0.0,
            )
            self._pending.append(job_id)
        logger.info("Job %s: re-driven from dead-letter", job_id)
        self._notify()
        return requeued.model_copy()

    def get(self, job_id: str) -> IngestionJob | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job is not None else None

    def dead_letters(self) -> list[IngestionJob]:
        with self._lock:
            jobs = [job.model_copy() for job in self._jobs.values() if job.dead_lettered]
        return sorted(jobs, key=lambda j: j.created_at)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def seconds_until_available(self) -> float | None:
        """Delay until the next pending job can be leased; None if nothing is pending."""
        now = self._clock()
        with self._lock:
            waits = [max(self._jobs[j].available_at - now, 0.0) for j in self._pending]
        return min(waits) if waits else None

    def recover(self) -> int:
        """Reload persisted records and requeue unfinished jobs.

        Returns:
            Number of jobs put back on the queue.
        """
        loaded: list[IngestionJob] = []
        for path in sorted(self.store_dir.glob("*.json")):
            try:
                loaded.append(IngestionJob.model_validate_json(path.read_text(encoding="utf-8")))
            except (OSError, ValidationError) as exc:
                logger.error("Skipping unreadable job record %s: %s", path, exc)

        requeued = 0
        with self._lock:
            self._jobs.clear()
            self._pending.clear()
            for job in sorted(loaded, key=lambda j: j.created_at):
                self._jobs[job.job_id] = job
                if job.status == "processing":
                    # Lease was lost with the previous process.
                    if job.attempts >= job.max_attempts:
                        self._save(
                            job,
                            status="failed",
                            dead_lettered=True,
                            last_error=job.last_error or "Worker stopped during processing.",
                        )
                        logger.error("Job %s: dead-lettered during recovery", job.job_id)
                        continue
                    job = self._save(job, status="queued", available_at=0.0)
                if job.status == "queued":
                    self._pending.append(job.job_id)
                    requeued += 1
            self._prune_completed()

        logger.info("Recovered %d job records, %d queued", len(loaded), requeued)
        if requeued:
            self._notify()
        return requeued
