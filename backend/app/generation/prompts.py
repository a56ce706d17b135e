import json
from typing import Any

REFINED_CONCEPT = "refined_concept"
BRAND_PROFILE = "brand_profile"
LANDING_CONTENT = "landing_content"
MARKET_ANALYSIS = "market_analysis"
PITCH_DECK = "pitch_deck"
BUSINESS_MODEL = "business_model"
RISK_ANALYSIS = "risk_analysis"
CODE_PREVIEW = "code_preview"

MODULE_NAMES = (
    REFINED_CONCEPT,
    BRAND_PROFILE,
    LANDING_CONTENT,
    MARKET_ANALYSIS,
    PITCH_DECK,
    BUSINESS_MODEL,
    RISK_ANALYSIS,
    CODE_PREVIEW,
)

REFINED_CONCEPT_PROMPT_TEMPLATE = """
You are a startup strategist. Refine this raw startup idea into a clear, structured concept.

Raw idea: "{idea_text}"
Industry domain: "{domain}"
Brand tone: "{tone}"

Summarize the core problem and the solution in 1-2 sentences each, describe 3 target user
personas, and list 4-6 concrete MVP features. The core_features list must not be empty.
""".strip()

REFINED_CONCEPT_SCHEMA = """{
  "problem_summary": "string",
  "solution_summary": "string",
  "target_users": ["string"] (exactly 3 items),
  "core_features": ["string"] (4-6 items, REQUIRED)
}"""

BRAND_PROFILE_PROMPT_TEMPLATE = """
You are a brand strategist. Create a brand identity for this startup.

Concept:
{concept_json}

Brand tone: "{tone}"

Give 5 name options, 3 taglines, a description of voice and tone, and a 4-color palette with hex codes.
""".strip()

BRAND_PROFILE_SCHEMA = """{
  "name_options": ["string"],
  "taglines": ["string"],
  "voice_tone": "string",
  "color_palette": [{"hex": "string", "name": "string", "usage": "string"}]
}"""

LANDING_CONTENT_PROMPT_TEMPLATE = """
You are a conversion copywriter. Write landing page content for this startup.

Concept:
{concept_json}

Brand profile:
{brand_json}

Cover a hero section, 3-4 feature blocks (icons: rocket, shield, zap, users, chart, check),
2 pricing tiers, 3 FAQ entries and a closing call to action.
""".strip()

LANDING_CONTENT_SCHEMA = """{
  "hero": {"headline": "string", "subheadline": "string", "cta_text": "string"},
  "features": [{"icon": "string", "title": "string", "description": "string"}],
  "pricing": {"tiers": [{"name": "string", "price": "string", "period": "string", "features": ["string"], "cta": "string", "highlighted": true}]},
  "faq": [{"question": "string", "answer": "string"}],
  "final_cta": {"headline": "string", "subtext": "string", "button_text": "string"}
}"""

MARKET_ANALYSIS_PROMPT_TEMPLATE = """
You are a market research analyst. Analyze the market for this startup.

Concept:
{concept_json}

Industry domain: "{domain}"

Estimate TAM, SAM and SOM with reasoning, name 3 competitors, write a SWOT analysis and a
three-phase go-to-market plan.
""".strip()

MARKET_ANALYSIS_SCHEMA = """{
  "market_size": {
    "tam": {"value": "string", "description": "string"},
    "sam": {"value": "string", "description": "string"},
    "som": {"value": "string", "description": "string"}
  },
  "competitors": [{"name": "string", "description": "string", "strengths": "string", "weaknesses": "string"}],
  "swot": {"strengths": ["string"], "weaknesses": ["string"], "opportunities": ["string"], "threats": ["string"]},
  "go_to_market": {
    "phase1": {"name": "string", "duration": "string", "activities": ["string"]},
    "phase2": {"name": "string", "duration": "string", "activities": ["string"]},
    "phase3": {"name": "string", "duration": "string", "activities": ["string"]}
  }
}"""

PITCH_DECK_PROMPT_TEMPLATE = """
You are a pitch deck advisor. Outline a 10-slide investor deck for this startup.

Concept:
{concept_json}

Brand profile:
{brand_json}

Market analysis:
{market_json}

Follow the classic order: hook, problem, solution, market, product, business model, traction,
competition, team, ask. Each slide needs 3-5 bullet points and speaker notes.
""".strip()

PITCH_DECK_SCHEMA = """{
  "slides": [
    {"number": 1, "title": "string", "type": "string", "headline": "string", "content": ["string"], "speaker_notes": "string"}
  ]
}"""

BUSINESS_MODEL_PROMPT_TEMPLATE = """
You are a business model strategist. Define the business model for this startup.

Concept:
{concept_json}

Industry domain: "{domain}"

List 3 revenue streams, the fixed and variable cost structure, key partnerships and sales channels.
""".strip()

BUSINESS_MODEL_SCHEMA = """{
  "revenue_streams": [{"name": "string", "description": "string", "pricing_model": "string"}],
  "cost_structure": [{"name": "string", "type": "string", "description": "string"}],
  "key_partnerships": [{"partner": "string", "rationale": "string"}],
  "channels": [{"channel": "string", "description": "string"}]
}"""

RISK_ANALYSIS_PROMPT_TEMPLATE = """
You are a skeptical venture analyst. Assess the risks of this startup.

Concept:
{concept_json}

Market analysis:
{market_json}

Name 3 critical failure modes with mitigations, give a 0-100 success probability score with
justification, and judge the market timing.
""".strip()

RISK_ANALYSIS_SCHEMA = """{
  "risk_score": {"score": 75, "rating": "string", "justification": "string"},
  "critical_risks": [{"risk": "string", "severity": "string", "impact": "string", "mitigation": "string"}],
  "market_timing": {"verdict": "string", "reasoning": "string"}
}"""

CODE_PREVIEW_PROMPT_TEMPLATE = """
You are a software architect. Plan the technical implementation of this startup's MVP.

Concept:
{concept_json}

Industry domain: "{domain}"

Recommend a tech stack with reasoning, describe the architecture and its components, include
short code samples for key components, and estimate a phased timeline.
""".strip()

CODE_PREVIEW_SCHEMA = """{
  "tech_stack": {
    "frontend": {"framework": "string", "reasoning": "string"},
    "backend": {"framework": "string", "reasoning": "string"},
    "database": {"type": "string", "reasoning": "string"},
    "hosting": {"platform": "string", "reasoning": "string"},
    "additional": ["string"]
  },
  "architecture": {"description": "string", "components": [{"name": "string", "purpose": "string", "tech": "string"}], "diagram_description": "string"},
  "code_samples": [{"title": "string", "language": "string", "description": "string", "code": "string"}],
  "timeline": {"total_weeks": 12, "phases": [{"phase": "string", "weeks": "string", "deliverables": ["string"]}]}
}"""


def _to_json(value: Any) -> str:
    return json.dumps(value or {}, indent=2, ensure_ascii=False)


def build_refined_concept_prompt(idea_text: str, domain: str, tone: str) -> tuple[str, str]:
    prompt = REFINED_CONCEPT_PROMPT_TEMPLATE.format(idea_text=idea_text.strip(), domain=domain, tone=tone)
    return prompt, REFINED_CONCEPT_SCHEMA


def build_brand_profile_prompt(concept: dict, tone: str) -> tuple[str, str]:
    prompt = BRAND_PROFILE_PROMPT_TEMPLATE.format(concept_json=_to_json(concept), tone=tone)
    return prompt, BRAND_PROFILE_SCHEMA


def build_landing_content_prompt(concept: dict, brand: dict) -> tuple[str, str]:
    prompt = LANDING_CONTENT_PROMPT_TEMPLATE.format(concept_json=_to_json(concept), brand_json=_to_json(brand))
    return prompt, LANDING_CONTENT_SCHEMA


def build_market_analysis_prompt(concept: dict, domain: str) -> tuple[str, str]:
    prompt = MARKET_ANALYSIS_PROMPT_TEMPLATE.format(concept_json=_to_json(concept), domain=domain)
    return prompt, MARKET_ANALYSIS_SCHEMA


def build_pitch_deck_prompt(concept: dict, brand: dict, market: dict) -> tuple[str, str]:
    prompt = PITCH_DECK_PROMPT_TEMPLATE.format(
        concept_json=_to_json(concept),
        brand_json=_to_json(brand),
        market_json=_to_json(market),
    )
    return prompt, PITCH_DECK_SCHEMA


def build_business_model_prompt(concept: dict, domain: str) -> tuple[str, str]:
    prompt = BUSINESS_MODEL_PROMPT_TEMPLATE.format(concept_json=_to_json(concept), domain=domain)
    return prompt, BUSINESS_MODEL_SCHEMA


def build_risk_analysis_prompt(concept: dict, market: dict) -> tuple[str, str]:
    prompt = RISK_ANALYSIS_PROMPT_TEMPLATE.format(concept_json=_to_json(concept), market_json=_to_json(market))
    return prompt, RISK_ANALYSIS_SCHEMA


def build_code_preview_prompt(concept: dict, domain: str) -> tuple[str, str]:
    prompt = CODE_PREVIEW_PROMPT_TEMPLATE.format(concept_json=_to_json(concept), domain=domain)
    return prompt, CODE_PREVIEW_SCHEMA


def build_module_prompt(module_name: str, session: dict) -> tuple[str, str]:
    """Build the prompt for one module from the session's persisted outputs.

    Callers check that ``module_name`` is known and that the concept exists
    (except for the concept itself).
    """
    outputs = session.get("outputs") or {}
    concept = outputs.get(REFINED_CONCEPT) or {}
    brand = outputs.get(BRAND_PROFILE) or {}
    market = outputs.get(MARKET_ANALYSIS) or {}
    domain = str(session.get("domainHint") or "General")
    tone = str(session.get("tonePreference") or "Professional")

    if module_name == REFINED_CONCEPT:
        return build_refined_concept_prompt(str(session.get("ideaText") or ""), domain, tone)
    if module_name == BRAND_PROFILE:
        return build_brand_profile_prompt(concept, tone)
    if module_name == LANDING_CONTENT:
        return build_landing_content_prompt(concept, brand)
    if module_name == MARKET_ANALYSIS:
        return build_market_analysis_prompt(concept, domain)
    if module_name == PITCH_DECK:
        return build_pitch_deck_prompt(concept, brand, market)
    if module_name == BUSINESS_MODEL:
        return build_business_model_prompt(concept, domain)
    if module_name == RISK_ANALYSIS:
        return build_risk_analysis_prompt(concept, market)
    if module_name == CODE_PREVIEW:
        return build_code_preview_prompt(concept, domain)
    raise KeyError(module_name)
