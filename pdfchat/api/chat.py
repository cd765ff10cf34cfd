from fastapi import APIRouter, Depends, HTTPException, Query, status

from pdfchat.api.deps import get_query_service
from pdfchat.core.errors import CompletionError, EmbeddingError, RetrievalError
from pdfchat.core.logging import get_logger
from pdfchat.models.chat import ChatRequest, ChatResponse, ChatTurn
from pdfchat.services.retrieval import QueryService

logger = get_logger(__name__)

router = APIRouter(tags=["chat"])


def _answer(service: QueryService, message: str, history: list[ChatTurn]) -> ChatResponse:
    try:
        return service.answer(message, history=history)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RetrievalError as exc:
        logger.error("Vector index unavailable: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Vector index unavailable.",
        ) from exc
    except (EmbeddingError, CompletionError) as exc:
        logger.error("Upstream model call failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc


@router.get("/chat", response_model=ChatResponse)
def chat(
    message: str = Query(..., description="User question"),
    service: QueryService = Depends(get_query_service),
) -> ChatResponse:
    return _answer(service, message, [])


@router.post("/chat", response_model=ChatResponse)
def chat_with_history(
    request: ChatRequest,
    service: QueryService = Depends(get_query_service),
) -> ChatResponse:
    """Answer a message in the context of earlier turns held by the client."""
    return _answer(service, request.message, request.history)
