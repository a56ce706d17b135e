import logging
import re
from typing import Any, Sequence

from app.generation.errors import ChatUnavailable, GenerationError
from app.generation.orchestrator import GenerationOrchestrator
from app.services.generation_context import GenerationContext

logger = logging.getLogger(__name__)

PLATFORM_KNOWLEDGE = """
You are the Startup Simulator assistant. The platform turns a raw startup idea into a business
package with eight modules: refined concept, brand identity, landing page copy, market analysis,
pitch deck, business model, risk analysis and a technical blueprint. Users can regenerate any
module on its own once the refined concept exists. Outputs are tailored to the Indian market
(pricing in INR, UPI payments, tier 1/2/3 cities).

You may explain how the platform works, what each module contains, and help users interpret or
improve their own generated content.
You must not answer general knowledge questions, write poems, stories or unrelated code, or give
medical, legal or political advice. If a question is off-topic, reply that you only help with
Startup Simulator and the user's startup idea.
Be friendly, concise and practical.
""".strip()

NO_SESSION_NOTE = (
    "NO ACTIVE SESSION: the user is not viewing a generated startup. Answer general platform questions."
)

CHAT_REPLY_SCHEMA = '{"reply": "string (the assistant answer, plain text)"}'

OUT_OF_SCOPE_REPLY = (
    "I'm the Startup Simulator assistant, so I can only help with:\n\n"
    "- how this platform works\n"
    "- the eight startup modules we generate\n"
    "- understanding or improving your generated startup content\n"
    "- the Indian startup ecosystem as it relates to your idea\n\n"
    "What would you like to know about your startup idea?"
)

OFF_TOPIC_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"write.*poem",
        r"tell.*joke",
        r"what.*weather",
        r"who.*president",
        r"solve.*math",
        r"translate.*to",
        r"recipe.*for",
        r"how.*old.*are.*you",
    )
)

IN_SCOPE_KEYWORDS = (
    "startup", "idea", "business", "brand", "market", "pitch", "investor",
    "revenue", "customer", "user", "product", "mvp", "feature", "risk",
    "competition", "pricing", "how", "what", "why", "explain", "generate",
    "module", "session", "dashboard", "platform", "india", "assistant",
    "tam", "sam", "som", "swot", "deck", "landing", "code", "tech",
)

MAX_KEYWORD_FREE_WORDS = 5
MAX_HISTORY_TURNS = 4
MAX_SESSION_CONTEXT_CHARS = 2500
MAX_EXCERPT_ITEMS = 3


def is_question_in_scope(message: str) -> bool:
    text = message or ""
    if any(pattern.search(text) for pattern in OFF_TOPIC_PATTERNS):
        return False
    lowered = text.lower()
    if any(keyword in lowered for keyword in IN_SCOPE_KEYWORDS):
        return True
    return len(text.split()) <= MAX_KEYWORD_FREE_WORDS


def _join(values: Any, limit: int = MAX_EXCERPT_ITEMS) -> str:
    if not isinstance(values, list):
        return "N/A"
    items = [str(item).strip() for item in values[:limit] if str(item).strip()]
    return ", ".join(items) or "N/A"


def build_session_context(session: dict | None) -> str:
    if not session:
        return ""
    outputs = session.get("outputs") or {}
    lines = [
        "ACTIVE SESSION CONTEXT:",
        f'Startup idea: "{session.get("ideaText", "")}"',
        f"Domain: {session.get('domainHint', 'General')}",
        f"Brand tone: {session.get('tonePreference', 'Professional')}",
        f"Generation status: {session.get('status', 'created')}",
    ]

    concept = outputs.get("refined_concept")
    if isinstance(concept, dict):
        lines += [
            "",
            "REFINED CONCEPT:",
            f"Problem: {concept.get('problem_summary', 'N/A')}",
            f"Solution: {concept.get('solution_summary', 'N/A')}",
            f"Target users: {_join(concept.get('target_users'))}",
            f"Key features: {_join(concept.get('core_features'))}",
        ]

    brand = outputs.get("brand_profile")
    if isinstance(brand, dict):
        lines += [
            "",
            "BRAND IDENTITY:",
            f"Name options: {_join(brand.get('name_options'))}",
            f"Tagline: {_join(brand.get('taglines'), limit=1)}",
        ]

    market = outputs.get("market_analysis")
    if isinstance(market, dict):
        tam = ((market.get("market_size") or {}).get("tam") or {}).get("value", "N/A")
        competitors = [
            item.get("name") for item in (market.get("competitors") or []) if isinstance(item, dict)
        ]
        lines += [
            "",
            "MARKET ANALYSIS:",
            f"TAM: {tam}",
            f"Top competitors: {_join(competitors, limit=2)}",
        ]

    risk = outputs.get("risk_analysis")
    if isinstance(risk, dict):
        risk_score = risk.get("risk_score") or {}
        lines += [
            "",
            "RISK ASSESSMENT:",
            f"Success score: {risk_score.get('score', 'N/A')}/100",
            f"Rating: {risk_score.get('rating', 'N/A')}",
        ]

    context = "\n".join(lines)
    if len(context) > MAX_SESSION_CONTEXT_CHARS:
        context = context[:MAX_SESSION_CONTEXT_CHARS].rstrip() + "\n[context truncated]"
    return context + "\n\nAnswer questions about THIS user's generated content."


def build_chat_prompt(message: str, session: dict | None, history: Sequence[dict] | None = None) -> str:
    sections = [PLATFORM_KNOWLEDGE, build_session_context(session) if session else NO_SESSION_NOTE]
    recent = list(history or [])[-MAX_HISTORY_TURNS:]
    if recent:
        turns = []
        for turn in recent:
            speaker = "User" if turn.get("role") == "user" else "Assistant"
            turns.append(f"{speaker}: {turn.get('content', '')}")
        sections.append("CONVERSATION HISTORY:\n" + "\n".join(turns))
    sections.append(f"CURRENT USER QUESTION: {message}")
    return "\n\n".join(sections)


class ChatResponder:
    def __init__(self, context: GenerationContext, store: Any, orchestrator: GenerationOrchestrator | None = None) -> None:
        self.context = context
        self.store = store
        self.orchestrator = orchestrator or GenerationOrchestrator(context)

    def reply(
        self,
        message: str,
        session_id: str | None = None,
        history: Sequence[dict] | None = None,
        user_id: str | None = None,
    ) -> dict:
        if not is_question_in_scope(message):
            return {"reply": OUT_OF_SCOPE_REPLY, "context": "none", "inScope": False, "sessionData": None}

        session = self._load_session(session_id, user_id)
        prompt = build_chat_prompt(message, session, history)
        try:
            parsed = self.orchestrator.generate(prompt, CHAT_REPLY_SCHEMA, models=self.context.chat_models)
        except GenerationError as exc:
            logger.error("Chat generation failed for session %s: %s", session_id, exc)
            raise ChatUnavailable("Failed to generate response. Please try again.") from exc

        reply_value = parsed.get("reply") if isinstance(parsed, dict) else parsed
        reply = "" if reply_value is None else str(reply_value).strip()
        if not reply:
            raise ChatUnavailable("Failed to generate response. Please try again.")

        logger.info(
            "Chat response generated session=%s has_context=%s message_length=%d reply_length=%d",
            session_id,
            session is not None,
            len(message),
            len(reply),
        )
        return {
            "reply": reply,
            "context": "session" if session else "general",
            "inScope": True,
            "sessionData": {
                "ideaText": session.get("ideaText"),
                "domain": session.get("domainHint"),
                "status": session.get("status"),
            }
            if session
            else None,
        }

    def _load_session(self, session_id: str | None, user_id: str | None) -> dict | None:
        if not session_id:
            return None
        session = self.store.get_session(session_id)
        if session is None:
            logger.warning("Session %s not found for chat", session_id)
            return None
        if user_id is not None and str(session.get("userId")) != str(user_id):
            logger.warning("Session %s does not belong to requester, ignoring context", session_id)
            return None
        return session
