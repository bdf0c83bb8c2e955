from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

SectionType = Literal["job", "education", "skill", "project", "summary", "other"]
ParseConfidence = Literal["high", "medium", "low"]
ParseStrategy = Literal["header", "pattern", "llm", "fallback"]
ObservationType = Literal["density", "temporal", "structural"]
ActionType = Literal["rewrite", "add_info", "guided_edit"]
ObservationStatus = Literal["pending", "awaiting_input", "processing", "accepted", "declined", "locked"]
RepresentationStatus = Literal["too_short", "balanced", "too_long"]

ANALYZED_SECTION_TYPES: frozenset[str] = frozenset({"job", "project"})
TERMINAL_STATUSES: frozenset[str] = frozenset({"accepted", "declined", "locked"})


def count_words(text: str) -> int:
    return len(text.split())


class Completeness(BaseModel):
    has_metrics: bool = False
    has_outcomes: bool = False
    has_tools: bool = False
    has_team_size: bool = False


class CVSection(BaseModel):
    id: str
    type: SectionType
    title: str
    organization: str | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    duration: int | None = Field(default=None, ge=1)
    content: str = ""
    word_count: int = Field(default=0, ge=0)
    parse_confidence: ParseConfidence = "high"

    # Derived by the analyzers; only set on annotated copies.
    density_score: float | None = None
    recency_score: int | None = None
    completeness: Completeness | None = None

    @model_validator(mode="after")
    def _sync_word_count(self) -> "CVSection":
        self.word_count = count_words(self.content)
        return self

    @property
    def is_analyzable(self) -> bool:
        return self.type in ANALYZED_SECTION_TYPES


class ParseResult(BaseModel):
    sections: list[CVSection] = Field(default_factory=list)
    unparsed_content: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    overall_confidence: ParseConfidence = "high"
    raw_text: str = ""
    strategy: ParseStrategy = "header"


class RawObservation(BaseModel):
    section_id: str
    type: ObservationType
    signal: str
    confidence: float = Field(ge=0.0, le=1.0)
    context: dict[str, Any] = Field(default_factory=dict)


class StrengthSignal(BaseModel):
    signal: str
    confidence: float = Field(ge=0.0, le=1.0)
    context: dict[str, Any] = Field(default_factory=dict)


class GuidedEditContext(BaseModel):
    claim_blocks: list[str] = Field(default_factory=list)
    sentence_starters: list[str] = Field(default_factory=list)
    representation_status: RepresentationStatus = "balanced"


class Observation(BaseModel):
    id: str
    section_id: str
    type: ObservationType
    confidence: float
    signal: str
    message: str
    action_type: ActionType = "add_info"
    input_prompt: str | None = None
    proposal: str | None = None
    rewritten_content: str | None = None
    status: ObservationStatus = "pending"
    guided_edit: GuidedEditContext | None = None


class CV(BaseModel):
    id: str
    uploaded_at: datetime
    file_name: str
    raw_text: str
    sections: list[CVSection] = Field(default_factory=list)
    observations: list[Observation] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    parse_confidence: ParseConfidence = "high"
    language: str = "en"
