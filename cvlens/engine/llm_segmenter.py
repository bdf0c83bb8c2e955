"""LLM-assisted segmentation.

The model is asked for a JSON object ``{"sections": [...]}``. Clean responses
give ``high`` confidence sections; truncated or malformed responses are
salvaged element by element and marked ``medium``. When every attempt fails
the whole text is wrapped in a single low-confidence section.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from cvlens.ai.types import ChatMessage, LLMError, LLMRateLimitError, LLMResponse, LLMUnavailableError, TextClient
from cvlens.core.config import Settings
from cvlens.core.config import settings as default_settings
from cvlens.core.config.thresholds import AnalysisThresholds, get_thresholds
from cvlens.engine.dates import Clock, months_between, parse_date, utc_now
from cvlens.engine.json_salvage import salvage_array_items, strip_code_fences
from cvlens.engine.segmenter import (
    assign_section_ids,
    confidence_from_ratio,
    fallback_parse_result,
    parsed_ratio,
    visible_length,
)
from cvlens.schemas.cv import CVSection, ParseConfidence, ParseResult

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]

_SECTION_TYPES = {"job", "education", "skill", "project", "summary", "other"}
_TYPE_ALIASES = {
    "experience": "job",
    "work": "job",
    "employment": "job",
    "skills": "skill",
    "projects": "project",
    "profile": "summary",
    "certification": "education",
}
_MAX_OUTPUT_TOKENS = 8192

SYSTEM_PROMPT = (
    "You split CVs and resumes into sections. Return JSON only. "
    "Keep the candidate's own wording in every content field; do not summarize, "
    "translate or invent anything. One section per role, degree or project."
)

USER_PROMPT_TEMPLATE = """Split this CV into sections.

Respond with a JSON object of this shape:
{{
  "sections": [
    {{
      "type": "job" | "education" | "skill" | "project" | "summary" | "other",
      "title": "role title, degree or section heading",
      "organization": "company or institution, or null",
      "startDate": "YYYY-MM or YYYY, or null",
      "endDate": "YYYY-MM, YYYY, \\"present\\" for ongoing roles, or null",
      "content": "the body text of the section"
    }}
  ]
}}

Rules:
- Each job and each project is its own section.
- Contact details and anything that fits no other type go into "other".
- Dates must come from the text; use null when they are missing.

CV:
<<<
{text}
>>>"""


class LLMSegmentedSection(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str = "other"
    title: str = ""
    organization: str | None = None
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")
    content: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> str:
        text = str(value or "other").strip().lower()
        text = _TYPE_ALIASES.get(text, text)
        return text if text in _SECTION_TYPES else "other"

    @field_validator("title", "content", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("organization", "start_date", "end_date", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        text = str(value).strip()
        return text if text and text.lower() not in {"null", "none", "n/a"} else None


class LLMSegmentationResponse(BaseModel):
    sections: list[LLMSegmentedSection]


def build_messages(text: str) -> list[ChatMessage]:
    return [
        ChatMessage(role="system", content=SYSTEM_PROMPT),
        ChatMessage(role="user", content=USER_PROMPT_TEMPLATE.format(text=text)),
    ]


def parse_segmentation_response(response: LLMResponse) -> tuple[list[LLMSegmentedSection], bool]:
    """Return ``(sections, salvaged)`` for one model response."""
    body = strip_code_fences(response.text)
    if not response.truncated:
        try:
            data = json.loads(body)
            if isinstance(data, list):
                data = {"sections": data}
            return LLMSegmentationResponse.model_validate(data).sections, False
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("llm_segmentation_invalid_json error=%s chars=%d", type(exc).__name__, len(body))

    recovered: list[LLMSegmentedSection] = []
    for item in salvage_array_items(body, key="sections"):
        try:
            recovered.append(LLMSegmentedSection.model_validate(item))
        except ValidationError:
            logger.debug("llm_segmentation_item_dropped item=%r", item)
    return recovered, True


def _to_section(item: LLMSegmentedSection, confidence: ParseConfidence, clock: Clock) -> CVSection | None:
    title = item.title.strip()
    content = item.content.strip()
    if not title and not content:
        return None
    if not title:
        title = content.split("\n", 1)[0][:100]

    now = clock()
    start = parse_date(item.start_date, now=now)
    end = parse_date(item.end_date, now=now)
    duration = months_between(start, end) if start and end else None
    return CVSection(
        id="",
        type=item.type,  # type: ignore[arg-type]
        title=title,
        organization=item.organization,
        start_date=start,
        end_date=end,
        duration=duration,
        content=content,
        parse_confidence=confidence,
    )


def build_llm_result(
    items: list[LLMSegmentedSection],
    *,
    raw_text: str,
    confidence: ParseConfidence,
    warnings: list[str],
    thresholds: AnalysisThresholds,
    clock: Clock,
) -> ParseResult:
    sections = [section for section in (_to_section(item, confidence, clock) for item in items) if section]
    parsed_chars = sum(
        visible_length(section.title) + visible_length(section.organization) + visible_length(section.content)
        for section in sections
        if section.type != "other"
    )
    ratio = parsed_ratio(parsed_chars, raw_text)
    overall = confidence_from_ratio(ratio, thresholds)
    if confidence == "medium" and overall == "high":
        overall = "medium"
    if overall == "low":
        warnings.append(f"{round((1 - ratio) * 100)}% of content could not be parsed into sections")
    return ParseResult(
        sections=assign_section_ids(sections),
        unparsed_content=[section.content for section in sections if section.type == "other"],
        warnings=warnings,
        overall_confidence=overall,
        raw_text=raw_text,
        strategy="llm",
    )


async def segment_with_llm(
    raw_text: str,
    *,
    client: TextClient,
    thresholds: AnalysisThresholds | None = None,
    settings: Settings | None = None,
    clock: Clock = utc_now,
    sleep: Sleep = asyncio.sleep,
) -> ParseResult:
    thresholds = thresholds or get_thresholds()
    settings = settings or default_settings
    warnings: list[str] = []

    text = raw_text or ""
    if len(text) > settings.segmentation_max_chars:
        warnings.append(f"CV text truncated from {len(text)} to {settings.segmentation_max_chars} characters")
        text = text[: settings.segmentation_max_chars]

    messages = build_messages(text)
    attempts = 1 + max(0, settings.llm_retry_attempts)

    for attempt in range(1, attempts + 1):
        delay = settings.llm_retry_backoff_s
        try:
            response = await client.complete(messages, json_mode=True, temperature=0.0, max_tokens=_MAX_OUTPUT_TOKENS)
        except LLMRateLimitError as exc:
            logger.warning("llm_segmentation_rate_limited attempt=%d/%d: %s", attempt, attempts, exc)
            warnings.append(f"Segmentation service rate limited (attempt {attempt} of {attempts})")
            delay = settings.llm_rate_limit_backoff_s
        except LLMUnavailableError as exc:
            logger.warning("llm_segmentation_unavailable attempt=%d/%d: %s", attempt, attempts, exc)
            warnings.append(f"Segmentation service unavailable (attempt {attempt} of {attempts})")
        except LLMError as exc:
            logger.warning("llm_segmentation_failed code=%s: %s", exc.code, exc)
            warnings.append("Segmentation service returned an error")
            break
        else:
            items, salvaged = parse_segmentation_response(response)
            if items and not salvaged:
                logger.info("llm_segmentation_ok attempt=%d sections=%d", attempt, len(items))
                return build_llm_result(
                    items, raw_text=text, confidence="high", warnings=warnings, thresholds=thresholds, clock=clock
                )
            if items:
                warnings.append(f"Segmentation response was incomplete; recovered {len(items)} sections")
                logger.info("llm_segmentation_salvaged attempt=%d sections=%d", attempt, len(items))
                return build_llm_result(
                    items, raw_text=text, confidence="medium", warnings=warnings, thresholds=thresholds, clock=clock
                )
            warnings.append(f"Segmentation response could not be read (attempt {attempt} of {attempts})")

        if attempt < attempts:
            await sleep(delay)

    logger.warning("llm_segmentation_fallback attempts=%d", attempts)
    return fallback_parse_result(raw_text or "", warnings)
