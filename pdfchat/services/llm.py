"""Chat-completion client for OpenAI-compatible endpoints."""

from __future__ import annotations

from typing import Protocol

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from pdfchat.core.errors import CompletionError
from pdfchat.core.logging import get_logger

logger = get_logger(__name__)


class LanguageModel(Protocol):
    def complete(self, messages: list[dict[str, str]]) -> str:
        """Return the assistant reply for a list of role/content messages."""
        ...


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429 or exc.response.status_code >= 500
    return False


class ChatCompletionClient:
    """Minimal /chat/completions client over httpx."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        temperature: float = 0.2,
    ) -> None:
        if not api_key.strip():
            raise ValueError("Missing language model API key.")
        self.model = model
        self.temperature = temperature
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {api_key}",
                "Accept": "application/json",
            },
            timeout=timeout,
        )

    def close(self) -> None:
        self._client.close()

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(3),
        wait=wait_exponential_jitter(initial=1, max=10),
        reraise=True,
    )
    def _post(self, body: dict) -> dict:
        response = self._client.post("/chat/completions", json=body)
        response.raise_for_status()
        return response.json()

    def complete(self, messages: list[dict[str, str]]) -> str:
        body = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "stream": False,
        }
        try:
            payload = self._post(body)
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Chat completion HTTP error %s: %s",
                exc.response.status_code,
                exc.response.text[:200] if exc.response.text else "no body",
            )
            raise CompletionError(f"Language model returned {exc.response.status_code}.") from exc
        except httpx.HTTPError as exc:
            logger.error("Chat completion request failed: %s", exc)
            raise CompletionError(f"Language model request failed: {exc}") from exc
        except ValueError as exc:
            raise CompletionError("Language model returned invalid JSON.") from exc

        content = _extract_message_content(payload)
        if content is None:
            raise CompletionError("Language model response had no message content.")
        return content


def _extract_message_content(payload: dict) -> str | None:
    """Safely extract the assistant message content from a completion payload."""
    choices = payload.get("choices") if isinstance(payload, dict) else None
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0] if isinstance(choices[0], dict) else {}
    message = first.get("message") if isinstance(first, dict) else None
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    return str(content).strip() if content is not None else None
