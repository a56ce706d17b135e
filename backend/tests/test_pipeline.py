import copy
import unittest

try:
    from app.generation.errors import (
        InvalidModule,
        MissingContext,
        ProviderError,
        QuotaExhausted,
        SessionNotFound,
    )
    from app.generation.pipeline import (
        PLACEHOLDER_CORE_FEATURES,
        PLACEHOLDER_TARGET_USERS,
        GenerationPipeline,
    )
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker
    from sqlalchemy.pool import StaticPool

    from app.db import init_db
    from app.generation.prompts import build_module_prompt
    from app.models.session import SessionCreateRequest
    from app.services.generation_context import GenerationContext
    from app.services.session_store import SessionStore

    DEPENDENCIES_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - environment-dependent guard
    DEPENDENCIES_AVAILABLE = False

CONCEPT = {
    "problem_summary": "Kirana stores track credit in paper ledgers",
    "solution_summary": "A WhatsApp-first credit ledger with UPI reminders",
    "target_users": ["Kirana owners in tier-2 cities"],
    "core_features": ["Digital khata", "UPI payment links"],
}
BRAND = {"name_options": ["KhataSetu"], "taglines": ["Credit, settled."]}
MARKET = {"market_size": {"tam": {"value": "INR 12,000 Cr"}}, "competitors": [{"name": "OkCredit"}]}


class InMemorySessionStore:
    def __init__(self) -> None:
        self.sessions: dict[str, dict] = {}

    def add(self, session_id: str, **overrides) -> dict:
        session = {
            "sessionId": session_id,
            "userId": "founder-1",
            "ideaText": "Digital credit ledger for kirana stores",
            "domainHint": "Fintech",
            "tonePreference": "Friendly",
            "status": "created",
            "outputs": {},
            "error": None,
            "completedAt": None,
        }
        session.update(overrides)
        self.sessions[session_id] = session
        return copy.deepcopy(session)

    def get_session(self, session_id: str) -> dict | None:
        session = self.sessions.get(session_id)
        return copy.deepcopy(session) if session is not None else None

    def update_status(self, session_id: str, status: str, *, error=None, completed_at=None) -> dict | None:
        stored = self.sessions.get(session_id)
        if stored is None:
            return None
        stored["status"] = status
        if error is not None:
            stored["error"] = error
        if completed_at is not None and not stored.get("completedAt"):
            stored["completedAt"] = completed_at
        return copy.deepcopy(stored)

    def set_output(self, session_id: str, module_name: str, value, *, clear_error: bool = False) -> dict | None:
        stored = self.sessions.get(session_id)
        if stored is None:
            return None
        stored["outputs"][module_name] = copy.deepcopy(value)
        if clear_error:
            stored["error"] = None
        return copy.deepcopy(stored)


class ScriptedOrchestrator:
    def __init__(self, script: list) -> None:
        self.script = list(script)
        self.prompts: list[str] = []

    def generate(self, prompt: str, schema_description: str, models=None):
        self.prompts.append(prompt)
        step = self.script.pop(0)
        if callable(step):
            step = step()
        if isinstance(step, BaseException):
            raise step
        return copy.deepcopy(step)


@unittest.skipUnless(DEPENDENCIES_AVAILABLE, "prometheus_client/openai dependencies are not installed")
class GenerationPipelineRunTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemorySessionStore()
        self.store.add("s-1")
        self.context = GenerationContext(provider=object())

    def _pipeline(self, script: list) -> GenerationPipeline:
        self.orchestrator = ScriptedOrchestrator(script)
        return GenerationPipeline(self.context, self.store, orchestrator=self.orchestrator)

    def test_successful_run_completes_with_core_outputs(self) -> None:
        result = self._pipeline([CONCEPT, BRAND, MARKET]).run("s-1")

        self.assertEqual(result["status"], "completed")
        self.assertIsNone(result["error"])
        self.assertEqual(set(result["outputs"]), {"refined_concept", "brand_profile", "market_analysis"})
        stored = self.store.sessions["s-1"]
        self.assertEqual(stored["status"], "completed")
        self.assertIsNotNone(stored["completedAt"])

    def test_step_prompts_carry_earlier_outputs(self) -> None:
        self._pipeline([CONCEPT, BRAND, MARKET]).run("s-1")
        self.assertIn("Digital credit ledger for kirana stores", self.orchestrator.prompts[0])
        self.assertIn("WhatsApp-first credit ledger", self.orchestrator.prompts[1])
        self.assertIn("WhatsApp-first credit ledger", self.orchestrator.prompts[2])

    def test_failure_on_second_step_marks_partial(self) -> None:
        result = self._pipeline([CONCEPT, QuotaExhausted()]).run("s-1")

        self.assertEqual(result["status"], "partial")
        self.assertTrue(result["error"])
        stored = self.store.sessions["s-1"]
        self.assertEqual(stored["status"], "partial")
        self.assertIn("refined_concept", stored["outputs"])
        self.assertNotIn("brand_profile", stored["outputs"])
        self.assertNotIn("market_analysis", stored["outputs"])
        self.assertTrue(stored["error"])
        self.assertIsNone(stored["completedAt"])

    def test_failure_on_first_step_marks_partial_without_outputs(self) -> None:
        result = self._pipeline([ProviderError("Provider returned HTTP 400")]).run("s-1")
        self.assertEqual(result["status"], "partial")
        self.assertEqual(result["outputs"], {})
        self.assertIn("HTTP 400", result["error"])

    def test_unexpected_error_marks_failed(self) -> None:
        result = self._pipeline([CONCEPT, BRAND, RuntimeError("disk full")]).run("s-1")
        self.assertEqual(result["status"], "failed")
        self.assertEqual(result["error"], "disk full")
        self.assertEqual(self.store.sessions["s-1"]["status"], "failed")

    def test_concept_missing_lists_is_patched_before_persisting(self) -> None:
        concept = {"problem_summary": "p", "solution_summary": "s", "core_features": []}
        self._pipeline([concept, BRAND, MARKET]).run("s-1")
        stored_concept = self.store.sessions["s-1"]["outputs"]["refined_concept"]
        self.assertEqual(stored_concept["target_users"], PLACEHOLDER_TARGET_USERS)
        self.assertEqual(stored_concept["core_features"], PLACEHOLDER_CORE_FEATURES)
        self.assertEqual(stored_concept["problem_summary"], "p")

    def test_rerun_keeps_first_completion_timestamp(self) -> None:
        self._pipeline([CONCEPT, BRAND, MARKET]).run("s-1")
        first_completed = self.store.sessions["s-1"]["completedAt"]
        self._pipeline([CONCEPT, BRAND, MARKET]).run("s-1")
        self.assertEqual(self.store.sessions["s-1"]["completedAt"], first_completed)

    def test_missing_session_raises(self) -> None:
        with self.assertRaises(SessionNotFound):
            self._pipeline([]).run("missing")

    def test_session_deleted_mid_run_stops_generation(self) -> None:
        def delete_then_answer():
            self.store.sessions.pop("s-1")
            return CONCEPT

        pipeline = self._pipeline([delete_then_answer, BRAND, MARKET])
        with self.assertRaises(SessionNotFound):
            pipeline.run("s-1")
        self.assertEqual(len(self.orchestrator.prompts), 1)


@unittest.skipUnless(DEPENDENCIES_AVAILABLE, "sqlalchemy/prometheus_client dependencies are not installed")
class PipelineStorageTests(unittest.TestCase):
    def setUp(self) -> None:
        engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
        init_db(bind=engine)
        self.store = SessionStore(sessionmaker(bind=engine, autoflush=False))
        session = self.store.create_session(
            SessionCreateRequest(ideaText="Digital credit ledger for kirana stores", domainHint="Fintech"),
            "founder-1",
        )
        self.session_id = session["sessionId"]
        self.context = GenerationContext(provider=object())

    def test_run_keeps_module_written_concurrently(self) -> None:
        self.store.update_status(self.session_id, "partial", error="earlier failure")
        pitch = {"slides": [{"title": "Problem", "content": "Paper ledgers"}]}

        def regenerate_pitch_then_answer():
            self.store.set_output(self.session_id, "pitch_deck", pitch, clear_error=True)
            return BRAND

        orchestrator = ScriptedOrchestrator([CONCEPT, regenerate_pitch_then_answer, MARKET])
        result = GenerationPipeline(self.context, self.store, orchestrator=orchestrator).run(self.session_id)

        stored = self.store.get_session(self.session_id)
        self.assertEqual(result["status"], "completed")
        self.assertEqual(stored["outputs"]["pitch_deck"], pitch)
        self.assertEqual(
            set(stored["outputs"]),
            {"refined_concept", "brand_profile", "market_analysis", "pitch_deck"},
        )
        self.assertIn("pitch_deck", result["outputs"])
        self.assertIsNone(stored["error"])
        self.assertIsNotNone(stored["completedAt"])

    def test_partial_run_keeps_existing_outputs(self) -> None:
        self.store.set_output(self.session_id, "business_model", {"pricing": []})
        orchestrator = ScriptedOrchestrator([CONCEPT, QuotaExhausted()])
        result = GenerationPipeline(self.context, self.store, orchestrator=orchestrator).run(self.session_id)

        stored = self.store.get_session(self.session_id)
        self.assertEqual(result["status"], "partial")
        self.assertEqual(set(stored["outputs"]), {"business_model", "refined_concept"})
        self.assertTrue(stored["error"])


@unittest.skipUnless(DEPENDENCIES_AVAILABLE, "prometheus_client/openai dependencies are not installed")
class ModuleRegenerationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemorySessionStore()
        self.context = GenerationContext(provider=object())

    def _pipeline(self, script: list) -> GenerationPipeline:
        self.orchestrator = ScriptedOrchestrator(script)
        return GenerationPipeline(self.context, self.store, orchestrator=self.orchestrator)

    def test_regenerate_without_concept_raises_missing_context(self) -> None:
        self.store.add("s-2", outputs={"brand_profile": BRAND})
        pipeline = self._pipeline([])
        with self.assertRaises(MissingContext):
            pipeline.regenerate("s-2", "pitch_deck")
        self.assertEqual(self.store.sessions["s-2"]["outputs"], {"brand_profile": BRAND})
        self.assertEqual(self.orchestrator.prompts, [])

    def test_unknown_module_is_rejected(self) -> None:
        self.store.add("s-2", outputs={"refined_concept": CONCEPT})
        with self.assertRaises(InvalidModule):
            self._pipeline([]).regenerate("s-2", "tax_filing")

    def test_refined_concept_can_be_regenerated_from_scratch(self) -> None:
        self.store.add("s-2")
        result = self._pipeline([CONCEPT]).regenerate("s-2", "refined_concept")
        self.assertEqual(result["module"], "refined_concept")
        self.assertEqual(self.store.sessions["s-2"]["outputs"]["refined_concept"], CONCEPT)

    def test_successful_regeneration_clears_error_and_keeps_status(self) -> None:
        self.store.add(
            "s-2",
            status="partial",
            error="Content generation quota exhausted. Please try again later.",
            outputs={"refined_concept": CONCEPT},
        )
        pitch = {"slides": [{"title": "Problem", "content": "Paper ledgers"}]}
        result = self._pipeline([pitch]).regenerate("s-2", "pitch_deck")

        self.assertEqual(result, {"module": "pitch_deck", "data": pitch})
        stored = self.store.sessions["s-2"]
        self.assertEqual(stored["outputs"]["pitch_deck"], pitch)
        self.assertIsNone(stored["error"])
        self.assertEqual(stored["status"], "partial")

    def test_failed_regeneration_leaves_outputs_untouched(self) -> None:
        self.store.add("s-2", outputs={"refined_concept": CONCEPT, "brand_profile": BRAND})
        with self.assertRaises(QuotaExhausted):
            self._pipeline([QuotaExhausted()]).regenerate("s-2", "brand_profile")
        self.assertEqual(self.store.sessions["s-2"]["outputs"]["brand_profile"], BRAND)

    def test_regenerate_missing_session_raises(self) -> None:
        with self.assertRaises(SessionNotFound):
            self._pipeline([]).regenerate("missing", "brand_profile")


@unittest.skipUnless(DEPENDENCIES_AVAILABLE, "prometheus_client/openai dependencies are not installed")
class ModulePromptTests(unittest.TestCase):
    def test_pitch_deck_prompt_uses_brand_and_market(self) -> None:
        session = {
            "ideaText": "Digital credit ledger",
            "domainHint": "Fintech",
            "tonePreference": "Bold",
            "outputs": {"refined_concept": CONCEPT, "brand_profile": BRAND, "market_analysis": MARKET},
        }
        prompt, schema = build_module_prompt("pitch_deck", session)
        self.assertIn("KhataSetu", prompt)
        self.assertIn("OkCredit", prompt)
        self.assertTrue(schema.strip())

    def test_unknown_module_prompt_raises(self) -> None:
        with self.assertRaises(KeyError):
            build_module_prompt("tax_filing", {"outputs": {}})


if __name__ == "__main__":
    unittest.main()
