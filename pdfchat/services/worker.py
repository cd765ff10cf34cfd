"""Ingestion worker and the bounded pool that feeds it from the job queue."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from pdfchat.core.errors import EmbeddingError
from pdfchat.core.logging import get_logger
from pdfchat.models.ingest import IngestionJob
from pdfchat.services.embedder import EmbeddingProvider
from pdfchat.services.job_queue import JobQueue
from pdfchat.services.pdf_loader import load_pdf_pages
from pdfchat.services.splitter import split_pages
from pdfchat.services.vectordb import VectorIndex

logger = get_logger(__name__)

PageLoader = Callable[[str], list[str]]


class IngestionWorker:
    """Load -> split -> embed -> upsert for a single job.

    ``process`` either returns after every chunk is in the index or raises;
    it never reports partial success.
    """

    def __init__(
        self,
        embedder: EmbeddingProvider,
        index: VectorIndex,
        *,
        chunk_size: int,
        chunk_overlap: int,
        loader: PageLoader = load_pdf_pages,
    ) -> None:
        self.embedder = embedder
        self.index = index
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.loader = loader

    def process(self, job: IngestionJob) -> int:
        job_id = job.job_id
        logger.info("Job %s: file=%s, document=%s", job_id, job.payload.filename, job.document_id)

        # 1. Load pages
        pages = self.loader(job.payload.path)
        logger.info("Job %s: loaded %d pages", job_id, len(pages))

        # 2. Split
        chunks = split_pages(
            pages,
            document_id=job.document_id,
            source=job.payload.filename,
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )
        if not chunks:
            logger.warning("Job %s: no extractable text, nothing to index", job_id)
            return 0
        logger.info("Job %s: created %d chunks", job_id, len(chunks))

        # 3. Embed
        vectors = self.embedder.embed([chunk.text for chunk in chunks])
        if len(vectors) != len(chunks):
            raise EmbeddingError(
                f"Embedding count mismatch: expected {len(chunks)} vectors, got {len(vectors)}."
            )

        # 4. Upsert as one logical batch
        upserted = self.index.upsert(list(zip(chunks, vectors)))
        logger.info("Job %s: indexed %d chunks", job_id, upserted)
        return len(chunks)


class WorkerPool:
    """Runs queued jobs with at most ``concurrency`` in flight.

    Blocking job work and queue bookkeeping (which fsyncs job records) run in
    the default thread executor so the event loop keeps serving requests.
    """

    def __init__(
        self,
        queue: JobQueue,
        worker: IngestionWorker,
        *,
        concurrency: int,
        poll_interval: float = 1.0,
    ) -> None:
        self.queue = queue
        self.worker = worker
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self._semaphore = asyncio.Semaphore(concurrency)
        self._wake: asyncio.Event | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._in_flight: set[asyncio.Task] = set()
        self._stopping = False

    def _wake_threadsafe(self) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed() and self._wake is not None:
            loop.call_soon_threadsafe(self._wake.set)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._wake = asyncio.Event()
        self._stopping = False
        self.queue.add_listener(self._wake_threadsafe)
        self._task = asyncio.create_task(self._run(), name="ingestion-worker-pool")
        logger.info("Worker pool started (concurrency=%d)", self.concurrency)

    async def stop(self) -> None:
        """Stop leasing new jobs and wait for in-flight ones to finish."""
        if self._task is None:
            return
        self._stopping = True
        if self._wake is not None:
            self._wake.set()
        await self._task
        if self._in_flight:
            await asyncio.gather(*list(self._in_flight), return_exceptions=True)
        self._task = None
        logger.info("Worker pool stopped")

    async def _run(self) -> None:
        assert self._wake is not None
        while not self._stopping:
            await self._semaphore.acquire()
            if self._stopping:
                self._semaphore.release()
                break
            self._wake.clear()
            job = await self._lease()
            if job is None:
                self._semaphore.release()
                await self._wait_for_work()
                continue
            self._spawn(job)

    async def _lease(self) -> IngestionJob | None:
        """Dequeue off the event loop; a failed lease write leaves the job queued."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self.queue.dequeue)
        except OSError:
            logger.exception("Could not lease a job; will retry")
            return None

    def _spawn(self, job: IngestionJob) -> None:
        task = asyncio.create_task(self._execute(job))
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)

    async def _wait_for_work(self) -> None:
        assert self._wake is not None
        timeout = self.queue.seconds_until_available()
        timeout = self.poll_interval if timeout is None else min(timeout, self.poll_interval)
        try:
            await asyncio.wait_for(self._wake.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass

    async def _execute(self, job: IngestionJob) -> None:
        loop = asyncio.get_running_loop()
        try:
            try:
                chunks = await loop.run_in_executor(None, self.worker.process, job)
            except Exception as exc:
                await loop.run_in_executor(
                    None, self.queue.fail, job.job_id, f"{type(exc).__name__}: {exc}"
                )
            else:
                await loop.run_in_executor(None, self.queue.complete, job.job_id, chunks)
        except OSError:
            # The lease stays "processing" on disk; recover() redelivers it.
            logger.exception("Job %s: could not persist job state", job.job_id)
        finally:
            self._semaphore.release()

    async def run_until_idle(self) -> None:
        """Process jobs until nothing is leasable and nothing is in flight.

        Used for one-shot draining (tests, maintenance scripts); jobs whose
        retry delay has not elapsed are left queued.
        """
        while True:
            await self._semaphore.acquire()
            job = await self._lease()
            if job is None:
                self._semaphore.release()
                if not self._in_flight:
                    return
                await asyncio.wait(list(self._in_flight), return_when=asyncio.FIRST_COMPLETED)
                continue
            self._spawn(job)
