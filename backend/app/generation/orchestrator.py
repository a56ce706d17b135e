"""Fallback/retry state machine that turns one logical prompt into parsed JSON.

Three independent transient failure classes are absorbed here:

* malformed JSON: retried on the same model, at most ``MAX_JSON_RETRIES`` times;
* network blips: retried on the same model with exponential backoff, at most
  ``MAX_NETWORK_RETRIES`` times;
* rate limits and unavailable models: always move to the next model.

Both per-model counters reset whenever the model changes. Only
``QuotaExhausted`` and ``ProviderError`` leave this module.
"""

import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Sequence

from app.generation.errors import (
    GenerationError,
    JsonRetryable,
    ModelUnavailable,
    NetworkTransient,
    ProviderError,
    QuotaExhausted,
    RateLimited,
)
from app.services.generation_context import GenerationContext

logger = logging.getLogger(__name__)

MAX_JSON_RETRIES = 2
MAX_NETWORK_RETRIES = 3
DEFAULT_RATE_LIMIT_DELAY_SECONDS = 20.0
NETWORK_BACKOFF_BASE_SECONDS = 2.0
NETWORK_ERROR_CATEGORIES = frozenset(
    {
        "connection_refused",
        "connection_reset",
        "dns_failure",
        "timeout",
        "fetch_failed",
    }
)

JSON_INSTRUCTIONS_TEMPLATE = """{prompt}

CRITICAL: You MUST respond with ONLY valid JSON matching this exact schema:
{schema}

Do not include markdown, explanations, or extra text.
Return ONLY raw JSON."""


class RetryClass(str, Enum):
    JSON_RETRY = "json-retry"
    RATE_LIMIT_RETRY = "rate-limit-retry"
    NETWORK_RETRY = "network-retry"
    MODEL_FALLBACK = "model-fallback"


@dataclass(frozen=True)
class GenerationAttempt:
    model: str
    ordinal: int
    retry_class: RetryClass | None
    elapsed_seconds: float
    outcome: str


@dataclass
class _RetryState:
    model_index: int = 0
    json_retries: int = 0
    network_retries: int = 0

    def advance_model(self) -> None:
        self.model_index += 1
        self.json_retries = 0
        self.network_retries = 0


def compose_prompt(prompt: str, schema_description: str) -> str:
    return JSON_INSTRUCTIONS_TEMPLATE.format(prompt=prompt.strip(), schema=schema_description.strip())


def parse_json_response(raw_text: str) -> Any:
    text = (raw_text or "").strip()
    if text.startswith("```"):
        text = text.replace("```json", "").replace("```", "").strip()
    try:
        return json.loads(text)
    except (json.JSONDecodeError, TypeError) as exc:
        raise JsonRetryable(f"Response is not valid JSON: {exc}") from exc


def network_backoff_seconds(network_retries: int) -> float:
    return (2 ** network_retries) * NETWORK_BACKOFF_BASE_SECONDS


def max_attempts_for(model_count: int) -> int:
    return model_count * (MAX_JSON_RETRIES + MAX_NETWORK_RETRIES + 1)


def worst_case_backoff_seconds(model_count: int, rate_limit_delay: float = DEFAULT_RATE_LIMIT_DELAY_SECONDS) -> float:
    """Upper bound on time spent sleeping for one ``generate`` call.

    Per model the longest sleep path is every network retry followed by a
    rate limit on the last attempt.
    """
    network_total = sum(network_backoff_seconds(retry) for retry in range(MAX_NETWORK_RETRIES))
    return model_count * (network_total + rate_limit_delay)


class GenerationOrchestrator:
    def __init__(self, context: GenerationContext) -> None:
        self.context = context

    def generate(self, prompt: str, schema_description: str, models: Sequence[str] | None = None) -> Any:
        model_list = tuple(models) if models is not None else tuple(self.context.models)
        if not model_list:
            raise ValueError("At least one model identifier is required")

        full_prompt = compose_prompt(prompt, schema_description)
        state = _RetryState()

        for ordinal in range(1, max_attempts_for(len(model_list)) + 1):
            if state.model_index >= len(model_list):
                break
            model = model_list[state.model_index]
            started = time.monotonic()
            try:
                raw_text = self.context.provider.complete(model, full_prompt)
                parsed = parse_json_response(raw_text)
            except JsonRetryable as exc:
                self._record_failure(model, started, exc)
                if state.json_retries < MAX_JSON_RETRIES:
                    state.json_retries += 1
                    self._log_attempt(model, ordinal, RetryClass.JSON_RETRY, started, "invalid_json")
                else:
                    state.advance_model()
                    self._log_attempt(model, ordinal, RetryClass.MODEL_FALLBACK, started, "invalid_json")
                continue
            except RateLimited as exc:
                self._record_failure(model, started, exc)
                delay = exc.retry_after_seconds
                if delay is None:
                    delay = DEFAULT_RATE_LIMIT_DELAY_SECONDS
                self._log_attempt(model, ordinal, RetryClass.RATE_LIMIT_RETRY, started, "rate_limited")
                logger.warning("Provider quota hit on %s, sleeping %.1fs before next model", model, delay)
                self.context.sleep(delay)
                state.advance_model()
                continue
            except ModelUnavailable as exc:
                self._record_failure(model, started, exc)
                self._log_attempt(model, ordinal, RetryClass.MODEL_FALLBACK, started, "model_unavailable")
                state.advance_model()
                continue
            except NetworkTransient as exc:
                self._record_failure(model, started, exc)
                if exc.category not in NETWORK_ERROR_CATEGORIES:
                    self._log_attempt(model, ordinal, None, started, "provider_error")
                    raise ProviderError(str(exc)) from exc
                if state.network_retries < MAX_NETWORK_RETRIES:
                    delay = network_backoff_seconds(state.network_retries)
                    state.network_retries += 1
                    self._log_attempt(model, ordinal, RetryClass.NETWORK_RETRY, started, "network_error")
                    logger.warning(
                        "Network error on %s (%s), retry %d in %.0fms",
                        model,
                        exc.category,
                        state.network_retries,
                        delay * 1000,
                    )
                    self.context.sleep(delay)
                else:
                    state.advance_model()
                    self._log_attempt(model, ordinal, RetryClass.MODEL_FALLBACK, started, "network_error")
                continue
            except ProviderError as exc:
                self._record_failure(model, started, exc)
                self._log_attempt(model, ordinal, None, started, "provider_error")
                logger.error("Provider failure on %s: %s", model, exc)
                raise
            except GenerationError:
                raise
            except Exception as exc:
                self._record_failure(model, started, exc)
                self._log_attempt(model, ordinal, None, started, "provider_error")
                logger.error("Unexpected provider failure on %s: %s", model, exc)
                raise ProviderError(str(exc) or type(exc).__name__) from exc

            self._emit_attempt(model, time.monotonic() - started, True)
            self._log_attempt(model, ordinal, None, started, "success")
            return parsed

        logger.error("All %d models exhausted for generation request", len(model_list))
        raise QuotaExhausted()

    def _record_failure(self, model: str, started: float, error: BaseException) -> None:
        self._emit_attempt(model, time.monotonic() - started, False)
        try:
            self.context.metrics.record_error(model, error)
        except Exception as exc:  # pragma: no cover - metrics must never break retries
            logger.debug("Metrics error recorder failed: %s", exc)

    def _emit_attempt(self, model: str, duration_seconds: float, success: bool) -> None:
        try:
            self.context.metrics.record_attempt(model, duration_seconds, success)
        except Exception as exc:  # pragma: no cover - metrics must never break retries
            logger.debug("Metrics attempt recorder failed: %s", exc)

    def _log_attempt(
        self,
        model: str,
        ordinal: int,
        retry_class: RetryClass | None,
        started: float,
        outcome: str,
    ) -> GenerationAttempt:
        attempt = GenerationAttempt(
            model=model,
            ordinal=ordinal,
            retry_class=retry_class,
            elapsed_seconds=round(time.monotonic() - started, 3),
            outcome=outcome,
        )
        level = logging.INFO if outcome == "success" else logging.WARNING
        logger.log(
            level,
            "generation attempt model=%s ordinal=%d retry_class=%s elapsed=%.3fs outcome=%s",
            attempt.model,
            attempt.ordinal,
            attempt.retry_class.value if attempt.retry_class else "none",
            attempt.elapsed_seconds,
            attempt.outcome,
        )
        return attempt
