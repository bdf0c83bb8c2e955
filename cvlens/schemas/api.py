from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field

from cvlens.schemas.cv import CV, Observation


class AnalyzeTextRequest(BaseModel):
    text: str = Field(min_length=1, max_length=200_000)
    file_name: str | None = Field(default=None, max_length=255)
    language: str | None = Field(default=None, max_length=16)


class AnalyzeResponse(BaseModel):
    cv: CV
    observations: list[Observation] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)


class RewriteRequest(BaseModel):
    section_id: str = Field(min_length=1)


class RewriteResponse(BaseModel):
    original: str
    rewritten: str


class ObservationRespondRequest(BaseModel):
    response: Literal["accepted", "declined", "locked"]


class ObservationRespondResponse(BaseModel):
    success: bool = True
    observation: Observation


class EnhanceSectionRequest(BaseModel):
    user_input: str | None = Field(default=None, max_length=5000)
    selected_claims: list[str] = Field(default_factory=list, max_length=12)
    additional_text: str | None = Field(default=None, max_length=5000)
    observation_id: str | None = None


class EnhanceSectionResponse(BaseModel):
    section_id: str
    observation_id: str | None = None
    rewritten_content: str
    proposal: str
