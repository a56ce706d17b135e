import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable

from app.services.metrics import GenerationMetrics
from app.services.provider_client import OpenAICompatibleProvider, TextCompletionProvider, build_openai_client

logger = logging.getLogger(__name__)

DEFAULT_GENERATION_MODELS = (
    "gemini-2.5-flash",
    "gemini-2.5-flash-lite",
    "gemini-flash-latest",
    "gemini-2.0-flash",
    "gemini-2.0-flash-lite",
    "gemini-2.0-pro",
)


@dataclass
class GenerationContext:
    """Everything the orchestrator needs, built once by the process entry point."""

    provider: TextCompletionProvider
    models: tuple[str, ...] = DEFAULT_GENERATION_MODELS
    chat_models: tuple[str, ...] = DEFAULT_GENERATION_MODELS[:1]
    metrics: GenerationMetrics = field(default_factory=GenerationMetrics)
    sleep: Callable[[float], None] = time.sleep

    def __post_init__(self) -> None:
        if not self.models:
            raise ValueError("At least one generation model must be configured")
        if not self.chat_models:
            self.chat_models = self.models[:1]


def _api_key() -> str:
    return os.getenv("GEMINI_API_KEY") or os.getenv("OPENAI_API_KEY") or ""


def _base_url() -> str:
    return os.getenv("LLM_BASE_URL", "")


def _model_list(env_name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.getenv(env_name, "")
    models = tuple(item.strip() for item in raw.split(",") if item.strip())
    return models or default


def _float_env(env_name: str, default: float) -> float:
    try:
        return float(os.getenv(env_name, str(default)))
    except ValueError:
        logger.warning("Invalid %s value, using default %s", env_name, default)
        return default


def build_generation_context() -> GenerationContext:
    api_key = _api_key()
    if not api_key:
        logger.warning("No GEMINI_API_KEY/OPENAI_API_KEY configured; provider calls will be rejected")
    client = build_openai_client(
        api_key=api_key or "missing-api-key",
        base_url=_base_url(),
        timeout_seconds=_float_env("LLM_TIMEOUT_SECONDS", 60.0),
    )
    provider = OpenAICompatibleProvider(
        client,
        temperature=_float_env("LLM_TEMPERATURE", 0.7),
        max_output_tokens=int(_float_env("LLM_MAX_OUTPUT_TOKENS", 8192)),
    )
    models = _model_list("GENERATION_MODELS", DEFAULT_GENERATION_MODELS)
    chat_models = _model_list("CHAT_MODELS", models[:1])
    logger.info("Generation context ready with models=%s chat_models=%s", ",".join(models), ",".join(chat_models))
    return GenerationContext(provider=provider, models=models, chat_models=chat_models)
