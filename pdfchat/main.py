from __future__ import annotations

from collections.abc import Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pdfchat.api.chat import router as chat_router
from pdfchat.api.jobs import router as jobs_router
from pdfchat.api.upload import router as upload_router
from pdfchat.core.config import Settings, get_settings
from pdfchat.core.logging import get_logger, setup_logging
from pdfchat.services.embedder import QUERY_EMBED_ATTEMPTS, OpenAIEmbedder
from pdfchat.services.file_storage import FileStorage
from pdfchat.services.job_queue import JobQueue
from pdfchat.services.llm import ChatCompletionClient
from pdfchat.services.retrieval import QueryService
from pdfchat.services.vectordb import PineconeVectorIndex
from pdfchat.services.worker import IngestionWorker, WorkerPool

logger = get_logger(__name__)


@dataclass
class AppServices:
    """Process-wide handles, built once at startup and closed on shutdown."""

    file_storage: FileStorage
    job_queue: JobQueue
    query_service: QueryService
    worker_pool: WorkerPool
    closers: list[Callable[[], None]] = field(default_factory=list)

    def close(self) -> None:
        for close in self.closers:
            close()


def build_services(settings: Settings) -> AppServices:
    embedder = OpenAIEmbedder(
        settings.openai_api_key,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
    )
    query_embedder = OpenAIEmbedder(
        settings.openai_api_key,
        model=settings.embedding_model,
        dimensions=settings.embedding_dimensions,
        timeout=10.0,
        max_attempts=QUERY_EMBED_ATTEMPTS,
    )
    index = PineconeVectorIndex(
        settings.pinecone_api_key,
        settings.pinecone_index,
        namespace=settings.pinecone_namespace,
        host=settings.pinecone_host,
    )
    index.check_compatible(settings.embedding_dimensions)
    llm = ChatCompletionClient(
        settings.chat_api_key,
        model=settings.chat_model,
        base_url=settings.chat_base_url,
    )
    queue = JobQueue(
        settings.job_store_dir,
        max_attempts=settings.max_job_attempts,
        retry_delay=settings.job_retry_delay,
        completed_ttl=settings.completed_job_ttl,
    )
    worker = IngestionWorker(
        embedder,
        index,
        chunk_size=settings.chunk_size,
        chunk_overlap=settings.chunk_overlap,
    )
    return AppServices(
        file_storage=FileStorage(settings.upload_dir, max_bytes=settings.max_upload_bytes),
        job_queue=queue,
        query_service=QueryService(query_embedder, index, llm, top_k=settings.retrieval_top_k),
        worker_pool=WorkerPool(queue, worker, concurrency=settings.max_concurrent_jobs),
        closers=[embedder.close, query_embedder.close, llm.close],
    )


def _default_services() -> AppServices:
    settings = get_settings()
    setup_logging(level=settings.log_level)
    return build_services(settings)


def create_app(
    services_factory: Callable[[], AppServices] = _default_services,
    *,
    cors_origins: tuple[str, ...] = ("*",),
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Fails fast on missing env vars or an incompatible vector index.
        services = services_factory()
        app.state.file_storage = services.file_storage
        app.state.job_queue = services.job_queue
        app.state.query_service = services.query_service
        app.state.worker_pool = services.worker_pool

        services.job_queue.recover()
        await services.worker_pool.start()
        logger.info("PDF chat service ready")
        try:
            yield
        finally:
            await services.worker_pool.stop()
            services.close()
            logger.info("PDF chat service stopped")

    app = FastAPI(title="PDF Chat Service", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(upload_router)
    app.include_router(chat_router)
    app.include_router(jobs_router)

    @app.get("/")
    def root() -> dict:
        return {"status": "All good"}

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()


def run() -> None:
    import uvicorn

    settings = get_settings()
    setup_logging(level=settings.log_level)
    uvicorn.run(
        create_app(cors_origins=settings.cors_origins),
        host="0.0.0.0",
        port=settings.port,
        log_config=None,
    )
