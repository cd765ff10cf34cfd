"""Runtime configuration and environment loading."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_SETTINGS: "Settings | None" = None

DEFAULT_CHAT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_CHAT_MODEL = "gpt-4.1"
DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


def reset_settings() -> None:
    """Reset cached settings. Call after changing environment variables."""
    global _SETTINGS
    _SETTINGS = None


@dataclass(frozen=True)
class Settings:
    openai_api_key: str
    pinecone_api_key: str
    pinecone_index: str
    chat_api_key: str
    chat_base_url: str = DEFAULT_CHAT_BASE_URL
    chat_model: str = DEFAULT_CHAT_MODEL
    embedding_model: str = DEFAULT_EMBEDDING_MODEL
    embedding_dimensions: int = 1536
    pinecone_host: str | None = None
    pinecone_namespace: str = "pdf-chunks"
    upload_dir: str = "uploads"
    job_store_dir: str = "uploads/.jobs"
    chunk_size: int = 300
    chunk_overlap: int = 100
    retrieval_top_k: int = 2
    max_concurrent_jobs: int = 4
    max_job_attempts: int = 3
    job_retry_delay: float = 5.0
    completed_job_ttl: float = 3600.0
    max_upload_bytes: int = 25 * 1024 * 1024
    port: int = 8000
    log_level: str = "INFO"
    cors_origins: tuple[str, ...] = ("*",)

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("CHUNK_SIZE must be positive.")
        if not 0 <= self.chunk_overlap < self.chunk_size:
            raise ValueError("CHUNK_OVERLAP must be >= 0 and smaller than CHUNK_SIZE.")
        if self.retrieval_top_k <= 0:
            raise ValueError("RETRIEVAL_TOP_K must be positive.")
        if self.max_concurrent_jobs <= 0:
            raise ValueError("MAX_CONCURRENT_JOBS must be positive.")
        if self.max_job_attempts <= 0:
            raise ValueError("MAX_JOB_ATTEMPTS must be positive.")
        if self.completed_job_ttl < 0:
            raise ValueError("COMPLETED_JOB_TTL must not be negative.")


def load_env_file(path: str, *, override: bool = False) -> None:
    """Load key=value pairs from a .env-style file into os.environ.

    Keeps existing env values unless override=True.
    """
    env_path = Path(path)
    if not env_path.exists():
        return

    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("'").strip('"')
        if not override and key in os.environ:
            continue
        os.environ[key] = value


def _required_env(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _optional_env(name: str, default: str) -> str:
    return os.getenv(name, "").strip() or default


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer, got '{raw}'.") from exc


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a number, got '{raw}'.") from exc


def get_settings() -> Settings:
    """Load settings from the env file and environment variables."""
    global _SETTINGS
    if _SETTINGS is not None:
        return _SETTINGS

    env_file = os.getenv("PDFCHAT_ENV_FILE", ".env")
    load_env_file(env_file)

    openai_api_key = _required_env("OPENAI_API_KEY")
    upload_dir = _optional_env("UPLOAD_DIR", "uploads")
    cors = _optional_env("CORS_ORIGINS", "*")

    _SETTINGS = Settings(
        openai_api_key=openai_api_key,
        pinecone_api_key=_required_env("PINECONE_API_KEY"),
        pinecone_index=_required_env("PINECONE_INDEX"),
        chat_api_key=_optional_env("CHAT_API_KEY", openai_api_key),
        chat_base_url=_optional_env("CHAT_BASE_URL", DEFAULT_CHAT_BASE_URL),
        chat_model=_optional_env("CHAT_MODEL", DEFAULT_CHAT_MODEL),
        embedding_model=_optional_env("EMBEDDING_MODEL", DEFAULT_EMBEDDING_MODEL),
        embedding_dimensions=_int_env("EMBEDDING_DIMENSIONS", 1536),
        pinecone_host=os.getenv("PINECONE_HOST", "").strip() or None,
        pinecone_namespace=_optional_env("PINECONE_NAMESPACE", "pdf-chunks"),
        upload_dir=upload_dir,
        job_store_dir=_optional_env("JOB_STORE_DIR", str(Path(upload_dir) / ".jobs")),
        chunk_size=_int_env("CHUNK_SIZE", 300),
        chunk_overlap=_int_env("CHUNK_OVERLAP", 100),
        retrieval_top_k=_int_env("RETRIEVAL_TOP_K", 2),
        max_concurrent_jobs=_int_env("MAX_CONCURRENT_JOBS", 4),
        max_job_attempts=_int_env("MAX_JOB_ATTEMPTS", 3),
        job_retry_delay=_float_env("JOB_RETRY_DELAY", 5.0),
        completed_job_ttl=_float_env("COMPLETED_JOB_TTL", 3600.0),
        max_upload_bytes=_int_env("MAX_UPLOAD_BYTES", 25 * 1024 * 1024),
        port=_int_env("PORT", 8000),
        log_level=_optional_env("LOG_LEVEL", "INFO").upper(),
        cors_origins=tuple(o.strip() for o in cors.split(",") if o.strip()),
    )
    return _SETTINGS
