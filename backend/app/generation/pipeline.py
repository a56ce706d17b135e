import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from app.generation.errors import GenerationError, InvalidModule, MissingContext, SessionNotFound
from app.generation.orchestrator import GenerationOrchestrator
from app.generation.prompts import (
    BRAND_PROFILE,
    MARKET_ANALYSIS,
    MODULE_NAMES,
    REFINED_CONCEPT,
    build_module_prompt,
)
from app.services.generation_context import GenerationContext

logger = logging.getLogger(__name__)

CORE_STEPS = (REFINED_CONCEPT, BRAND_PROFILE, MARKET_ANALYSIS)

PLACEHOLDER_TARGET_USERS = [
    "Early adopters looking for a faster way to solve this problem",
    "Small business owners in the target domain",
    "Tech-savvy professionals aged 25-40",
]
PLACEHOLDER_CORE_FEATURES = [
    "User onboarding and account setup",
    "Core workflow dashboard",
    "Notifications and reminders",
    "Basic analytics and reporting",
]


class SessionRepository(Protocol):
    def get_session(self, session_id: str) -> dict | None: ...

    def update_status(
        self,
        session_id: str,
        status: str,
        *,
        error: str | None = None,
        completed_at: datetime | None = None,
    ) -> dict | None: ...

    def set_output(self, session_id: str, module_name: str, value: Any, *, clear_error: bool = False) -> dict | None: ...


def apply_concept_defaults(concept: Any) -> dict:
    """Fill list fields the model sometimes leaves out instead of failing the run."""
    patched = dict(concept) if isinstance(concept, dict) else {}
    for key, placeholder in (
        ("target_users", PLACEHOLDER_TARGET_USERS),
        ("core_features", PLACEHOLDER_CORE_FEATURES),
    ):
        value = patched.get(key)
        if not isinstance(value, list) or not [item for item in value if str(item).strip()]:
            logger.warning("Refined concept missing %s, using placeholder values", key)
            patched[key] = list(placeholder)
    return patched


class GenerationPipeline:
    def __init__(
        self,
        context: GenerationContext,
        store: SessionRepository,
        orchestrator: GenerationOrchestrator | None = None,
    ) -> None:
        self.context = context
        self.store = store
        self.orchestrator = orchestrator or GenerationOrchestrator(context)

    def run(self, session_id: str) -> dict:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        session["outputs"] = dict(session.get("outputs") or {})
        self._require(self.store.update_status(session_id, "processing"), session_id)
        logger.info("Generation started for session %s", session_id)

        status = "completed"
        error_message: str | None = None
        completed_at: datetime | None = None
        try:
            for step in CORE_STEPS:
                logger.info("Generating %s for session %s", step, session_id)
                value = self._generate_module(step, session)
                self._require(self.store.set_output(session_id, step, value), session_id)
                session["outputs"][step] = value
        except SessionNotFound:
            logger.warning("Session %s was deleted during generation, stopping run", session_id)
            raise
        except GenerationError as exc:
            error_message = str(exc) or type(exc).__name__
            logger.error("Generation failed for session %s: %s", session_id, error_message)
            status = "partial"
        except Exception as exc:
            error_message = str(exc) or type(exc).__name__
            logger.exception("Unexpected generation failure for session %s", session_id)
            status = "failed"
        else:
            completed_at = datetime.now(timezone.utc)
            logger.info("Generation completed for session %s", session_id)

        stored = self._require(
            self.store.update_status(session_id, status, error=error_message, completed_at=completed_at),
            session_id,
        )
        return {
            "sessionId": session_id,
            "status": stored["status"],
            "outputs": dict(stored.get("outputs") or {}),
            "error": error_message,
        }

    def regenerate(self, session_id: str, module_name: str) -> dict:
        if module_name not in MODULE_NAMES:
            raise InvalidModule(module_name)
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)

        outputs = session.get("outputs") or {}
        if module_name != REFINED_CONCEPT and not outputs.get(REFINED_CONCEPT):
            raise MissingContext(module_name)

        logger.info("Regenerating %s for session %s", module_name, session_id)
        try:
            value = self._generate_module(module_name, session)
        except GenerationError as exc:
            logger.error("Regeneration of %s failed for session %s: %s", module_name, session_id, exc)
            raise

        self._require(self.store.set_output(session_id, module_name, value, clear_error=True), session_id)
        return {"module": module_name, "data": value}

    def _generate_module(self, module_name: str, session: dict) -> Any:
        prompt, schema = build_module_prompt(module_name, session)
        value = self.orchestrator.generate(prompt, schema)
        if module_name == REFINED_CONCEPT:
            value = apply_concept_defaults(value)
        return value

    def _require(self, stored: dict | None, session_id: str) -> dict:
        if stored is None:
            raise SessionNotFound(session_id)
        return stored
