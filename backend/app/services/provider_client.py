import logging
import socket
from typing import Any, Protocol

import openai

from app.generation.errors import ModelUnavailable, NetworkTransient, ProviderError, RateLimited

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


class TextCompletionProvider(Protocol):
    def complete(self, model: str, prompt: str) -> str:
        """Return the raw completion text or raise a typed generation error."""


class OpenAICompatibleProvider:
    """Single-shot chat completion against any OpenAI-compatible endpoint.

    The SDK's own retry loop is disabled (``max_retries=0``) because retry and
    fallback decisions belong to the orchestrator. SDK exceptions are mapped to
    the generation error taxonomy here so callers never import ``openai``.
    """

    def __init__(
        self,
        client: Any,
        *,
        temperature: float = 0.7,
        max_output_tokens: int = 8192,
    ) -> None:
        self._client = client
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens

    def complete(self, model: str, prompt: str) -> str:
        try:
            response = self._client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                max_tokens=self.max_output_tokens,
            )
        except Exception as exc:
            raise translate_provider_exception(exc) from exc
        if not getattr(response, "choices", None):
            return ""
        return (response.choices[0].message.content or "").strip()


def build_openai_client(api_key: str, base_url: str | None = None, timeout_seconds: float = 60.0) -> openai.OpenAI:
    return openai.OpenAI(
        api_key=api_key,
        base_url=(base_url or "").strip() or DEFAULT_BASE_URL,
        timeout=timeout_seconds,
        max_retries=0,
    )


def translate_provider_exception(exc: BaseException) -> Exception:
    if isinstance(exc, openai.RateLimitError):
        return RateLimited(_error_message(exc), retry_after_seconds=_retry_delay_seconds(exc))
    if isinstance(exc, openai.NotFoundError):
        return ModelUnavailable(_error_message(exc))
    if isinstance(exc, openai.APITimeoutError):
        return NetworkTransient(_error_message(exc), category="timeout")
    if isinstance(exc, openai.APIConnectionError):
        return NetworkTransient(_error_message(exc), category=_connection_category(exc))
    if isinstance(exc, openai.APIStatusError):
        status_code = getattr(exc, "status_code", None)
        if status_code == 429:
            return RateLimited(_error_message(exc), retry_after_seconds=_retry_delay_seconds(exc))
        if status_code == 404 or "not found" in _error_message(exc).lower():
            return ModelUnavailable(_error_message(exc))
        return ProviderError(f"Provider returned HTTP {status_code}: {_error_message(exc)}")
    if isinstance(exc, socket.gaierror):
        return NetworkTransient(str(exc), category="dns_failure")
    if isinstance(exc, ConnectionRefusedError):
        return NetworkTransient(str(exc), category="connection_refused")
    if isinstance(exc, ConnectionResetError):
        return NetworkTransient(str(exc), category="connection_reset")
    if isinstance(exc, TimeoutError):
        return NetworkTransient(str(exc), category="timeout")
    if "not found" in str(exc).lower():
        return ModelUnavailable(str(exc))
    return ProviderError(str(exc) or type(exc).__name__)


def _error_message(exc: BaseException) -> str:
    return str(getattr(exc, "message", None) or exc or type(exc).__name__)


def _connection_category(exc: BaseException) -> str:
    chain: list[str] = []
    current: BaseException | None = exc
    while current is not None and len(chain) < 5:
        if isinstance(current, socket.gaierror):
            return "dns_failure"
        if isinstance(current, ConnectionRefusedError):
            return "connection_refused"
        if isinstance(current, ConnectionResetError):
            return "connection_reset"
        if isinstance(current, TimeoutError):
            return "timeout"
        chain.append(str(current).lower())
        current = current.__cause__ or current.__context__
    text = " ".join(chain)
    if "name or service not known" in text or "getaddrinfo" in text or "nodename nor servname" in text:
        return "dns_failure"
    if "refused" in text:
        return "connection_refused"
    if "reset" in text:
        return "connection_reset"
    if "timed out" in text or "timeout" in text:
        return "timeout"
    return "fetch_failed"


def _retry_delay_seconds(exc: BaseException) -> float | None:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    retry_after_ms = headers.get("retry-after-ms")
    if retry_after_ms:
        parsed = _parse_seconds(retry_after_ms)
        if parsed is not None:
            return parsed / 1000.0
    retry_after = headers.get("retry-after")
    if retry_after:
        parsed = _parse_seconds(retry_after)
        if parsed is not None:
            return parsed
    body_delay = _find_retry_delay(getattr(exc, "body", None))
    if body_delay is not None:
        return _parse_seconds(body_delay)
    return None


def _find_retry_delay(payload: Any, depth: int = 0) -> Any:
    if depth > 6:
        return None
    if isinstance(payload, dict):
        if "retryDelay" in payload:
            return payload["retryDelay"]
        for value in payload.values():
            found = _find_retry_delay(value, depth + 1)
            if found is not None:
                return found
    if isinstance(payload, list):
        for item in payload:
            found = _find_retry_delay(item, depth + 1)
            if found is not None:
                return found
    return None


def _parse_seconds(value: Any) -> float | None:
    text = str(value).strip().lower().rstrip("s")
    try:
        seconds = float(text)
    except ValueError:
        logger.debug("Ignoring unparseable retry delay %r", value)
        return None
    return seconds if seconds >= 0 else None
