from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class DomainHint(str, Enum):
    SAAS = "SaaS"
    FINTECH = "Fintech"
    EDTECH = "Edtech"
    HEALTHTECH = "Healthtech"
    ECOMMERCE = "E-commerce"
    MARKETPLACE = "Marketplace"
    CONSUMER_APP = "Consumer App"
    B2B = "B2B"
    AI_ML = "AI/ML"
    GENERAL = "General"


class TonePreference(str, Enum):
    PROFESSIONAL = "Professional"
    CASUAL = "Casual"
    PLAYFUL = "Playful"
    BOLD = "Bold"
    LUXURY = "Luxury"
    FRIENDLY = "Friendly"
    TECHNICAL = "Technical"
    MINIMALIST = "Minimalist"


class SessionCreateRequest(BaseModel):
    ideaText: str = Field(..., max_length=5000)
    domainHint: DomainHint = DomainHint.GENERAL
    tonePreference: TonePreference = TonePreference.PROFESSIONAL

    @field_validator("ideaText")
    @classmethod
    def _strip_idea(cls, value: str) -> str:
        stripped = value.strip()
        if len(stripped) < 10:
            raise ValueError("ideaText must be at least 10 characters")
        return stripped


class SessionCreateResponse(BaseModel):
    sessionId: str
    message: str


class SessionSummary(BaseModel):
    sessionId: str
    ideaText: str
    domainHint: str
    status: str
    createdAt: datetime
    completedAt: datetime | None = None


class SessionDetail(BaseModel):
    sessionId: str
    userId: str
    ideaText: str
    domainHint: str
    tonePreference: str
    status: str
    outputs: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None
    createdAt: datetime
    updatedAt: datetime | None = None
    completedAt: datetime | None = None


class CoreOutputsResponse(BaseModel):
    sessionId: str
    status: str
    outputs: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class GenerationJobResponse(BaseModel):
    sessionId: str
    taskId: str
    status: str
    message: str


class RegenerateResponse(BaseModel):
    module: str
    data: Any
    message: str


class GenerationRunResponse(CoreOutputsResponse):
    message: str
