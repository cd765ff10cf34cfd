"""Request-scoped accessors for services held on app.state."""

from fastapi import Request

from pdfchat.services.file_storage import FileStorage
from pdfchat.services.job_queue import JobQueue
from pdfchat.services.retrieval import QueryService


def get_file_storage(request: Request) -> FileStorage:
    return request.app.state.file_storage


def get_job_queue(request: Request) -> JobQueue:
    return request.app.state.job_queue


def get_query_service(request: Request) -> QueryService:
    return request.app.state.query_service
