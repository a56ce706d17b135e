import unittest

try:
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker
    from sqlalchemy.pool import StaticPool

    from app.db import init_db
    from app.models.session import SessionCreateRequest
    from app.services.session_store import SessionStore

    DEPENDENCIES_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - environment-dependent guard
    DEPENDENCIES_AVAILABLE = False


def build_memory_store() -> "SessionStore":
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    return SessionStore(sessionmaker(bind=engine, autoflush=False))


@unittest.skipUnless(DEPENDENCIES_AVAILABLE, "sqlalchemy/pydantic dependencies are not installed")
class SessionStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = build_memory_store()
        self.session = self.store.create_session(
            SessionCreateRequest(ideaText="  Hyperlocal laundry pickup for hostels  ", domainHint="Marketplace"),
            "founder-1",
        )

    def test_create_session_applies_defaults(self) -> None:
        self.assertEqual(self.session["status"], "created")
        self.assertEqual(self.session["ideaText"], "Hyperlocal laundry pickup for hostels")
        self.assertEqual(self.session["domainHint"], "Marketplace")
        self.assertEqual(self.session["tonePreference"], "Professional")
        self.assertEqual(self.session["outputs"], {})
        self.assertIsNone(self.session["completedAt"])

    def test_update_status_writes_status_columns_only(self) -> None:
        session_id = self.session["sessionId"]
        self.store.set_output(session_id, "refined_concept", {"problem_summary": "Laundry is a chore"})
        self.store.update_status(
            session_id,
            "partial",
            error="Content generation quota exhausted. Please try again later.",
        )

        stored = self.store.get_session(session_id)
        self.assertEqual(stored["status"], "partial")
        self.assertEqual(stored["outputs"], {"refined_concept": {"problem_summary": "Laundry is a chore"}})
        self.assertTrue(stored["error"])

        self.store.update_status(session_id, "processing")
        self.assertTrue(self.store.get_session(session_id)["error"])

    def test_completed_at_is_set_once(self) -> None:
        session_id = self.session["sessionId"]
        first = self.store.update_status(session_id, "completed", completed_at="2026-01-05T10:00:00+00:00")
        second = self.store.update_status(session_id, "completed", completed_at="2026-02-05T10:00:00+00:00")

        self.assertTrue(first["completedAt"].startswith("2026-01-05T10:00:00"))
        self.assertEqual(second["completedAt"], first["completedAt"])

    def test_set_output_merges_single_module_and_clears_error(self) -> None:
        session_id = self.session["sessionId"]
        self.store.set_output(session_id, "refined_concept", {"problem_summary": "x"})
        self.store.update_status(session_id, "partial", error="earlier failure")

        updated = self.store.set_output(session_id, "pitch_deck", {"slides": []}, clear_error=True)

        self.assertEqual(set(updated["outputs"]), {"refined_concept", "pitch_deck"})
        self.assertIsNone(updated["error"])

    def test_set_output_skips_null_values(self) -> None:
        updated = self.store.set_output(self.session["sessionId"], "brand_profile", None)
        self.assertEqual(updated["outputs"], {})

    def test_set_output_keeps_error_by_default(self) -> None:
        session_id = self.session["sessionId"]
        self.store.update_status(session_id, "partial", error="earlier failure")
        updated = self.store.set_output(session_id, "business_model", {"pricing": []})
        self.assertEqual(updated["error"], "earlier failure")

    def test_ownership_and_listing(self) -> None:
        self.store.create_session(SessionCreateRequest(ideaText="Second idea for the same founder"), "founder-1")
        self.store.create_session(SessionCreateRequest(ideaText="Idea from a different founder"), "founder-2")

        self.assertTrue(self.store.session_belongs_to_user(self.session["sessionId"], "founder-1"))
        self.assertFalse(self.store.session_belongs_to_user(self.session["sessionId"], "founder-2"))
        self.assertFalse(self.store.session_belongs_to_user("missing", "founder-1"))
        self.assertEqual(len(self.store.get_sessions_for_user("founder-1")), 2)
        self.assertEqual(len(self.store.get_sessions_for_user("founder-2")), 1)

    def test_core_outputs_and_delete(self) -> None:
        core = self.store.get_core_outputs(self.session["sessionId"])
        self.assertEqual(core["status"], "created")
        self.assertEqual(core["outputs"], {})

        self.assertTrue(self.store.delete_session(self.session["sessionId"]))
        self.assertIsNone(self.store.get_session(self.session["sessionId"]))
        self.assertIsNone(self.store.get_core_outputs(self.session["sessionId"]))
        self.assertFalse(self.store.delete_session(self.session["sessionId"]))

    def test_unknown_session_updates_return_none(self) -> None:
        self.assertIsNone(self.store.update_status("missing", "processing"))
        self.assertIsNone(self.store.set_output("missing", "pitch_deck", {}))


if __name__ == "__main__":
    unittest.main()
