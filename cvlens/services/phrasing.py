"""Natural-language layer on top of the analyzer output.

``TemplatePhrasingService`` is deterministic and always available.
``LLMPhrasingService`` asks the configured model. ``FallbackPhrasingService``
runs the LLM version under a timeout and falls back to the templates call by
call, so one failed request never affects the others.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Protocol, Sequence, TypeVar

from cvlens.ai.types import ChatMessage, TextClient
from cvlens.engine.json_salvage import strip_code_fences
from cvlens.schemas.cv import CVSection, RawObservation, StrengthSignal

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_STRENGTH = "This CV presents professional experience in a clear format."
MAX_CLAIM_BLOCKS = 6

SENTENCE_STARTERS: dict[str, list[str]] = {
    "sparse_density": [
        "Led ___ initiatives resulting in ___",
        "Managed a team of ___ responsible for ___",
        "Delivered ___ by implementing ___",
        "Drove ___ growth through ___",
    ],
    "missing_metrics": [
        "Achieved ___% improvement in ___",
        "Reduced ___ by ___ through ___",
        "Increased ___ from ___ to ___",
        "Managed budget of $___ for ___",
    ],
    "missing_outcomes": [
        "Successfully delivered ___ resulting in ___",
        "Transformed ___ which led to ___",
        "Achieved ___ by ___",
    ],
    "missing_team_context": [
        "Led a team of ___ across ___",
        "Managed ___ direct reports including ___",
        "Built and scaled team from ___ to ___",
    ],
}
DEFAULT_SENTENCE_STARTERS = ["Contributed to ___ by ___", "Responsible for ___ including ___"]

INPUT_PROMPTS: dict[str, str] = {
    "sparse_density": "What were the main things you were responsible for in this role?",
    "dense_but_shallow": "Which two or three achievements from this role matter most?",
    "outdated_experience": "Is there anything from this role that still connects to the work you do today?",
    "recent_but_thin": "What have you delivered in this role so far?",
    "large_gap": "Would you like to add anything about this period, such as study, travel or caregiving?",
    "missing_metrics": "Are there numbers that show the scale of this work: users, budget, team size, time saved?",
    "missing_outcomes": "What changed because of your work here?",
    "missing_tools": "Which tools, technologies or methods did you use day to day?",
    "missing_team_context": "How many people did you lead, and in what setup?",
}

_OBSERVATION_TEMPLATES: dict[str, str] = {
    "sparse_density": "{section} covers {duration} of work but is carried by only a few lines.",
    "dense_but_shallow": "{section} holds a lot of text, which reads more like a list than a story of the role.",
    "outdated_experience": "{section} reflects experience from some time ago.",
    "recent_but_thin": "{section} is recent work that shows little of what has been accomplished so far.",
    "large_gap": "The timeline shows a gap of about {gap} before {section}.",
    "missing_metrics": "The impact of the work in {section} is described without any figures.",
    "missing_outcomes": "{section} shows activities, while the results they led to stay out of view.",
    "missing_tools": "The technical specifics behind {section} are not visible.",
    "missing_team_context": "{section} points to a leadership role, but the scope of that leadership is not shown.",
}

_PROPOSAL_TEMPLATES: dict[str, str] = {
    "sparse_density": "Add two or three lines on the responsibilities and results of {section}.",
    "dense_but_shallow": "Group the points in {section} around a few concrete achievements.",
    "outdated_experience": "Keep {section} brief and focus on what is still relevant.",
    "recent_but_thin": "Add what has been delivered so far in {section}.",
    "large_gap": "Consider a short line explaining the period before {section}.",
    "missing_metrics": "Add a number that shows the scale or effect of the work in {section}.",
    "missing_outcomes": "Describe one result that came out of the work in {section}.",
    "missing_tools": "Name the main tools or technologies used in {section}.",
    "missing_team_context": "State the size and shape of the team led in {section}.",
}

_STRENGTH_TEMPLATES: dict[str, str] = {
    "consistent_progression": "The roles show a clear progression in responsibility over time.",
    "metrics_present": "Several sections back up the work with concrete figures.",
    "recent_activity": "The experience is current, with recent roles well represented.",
    "balanced_density": "Each role is given a level of detail that matches its length.",
}


def sentence_starters(signal: str) -> list[str]:
    return list(SENTENCE_STARTERS.get(signal, DEFAULT_SENTENCE_STARTERS))


def input_prompt(signal: str) -> str | None:
    return INPUT_PROMPTS.get(signal)


def _format_months(months: Any) -> str:
    if not isinstance(months, int) or months <= 0:
        return "a long period"
    if months % 12 == 0:
        years = months // 12
        return f"{years} year" if years == 1 else f"{years} years"
    return f"{months} month" if months == 1 else f"{months} months"


def _section_label(raw: RawObservation) -> str:
    title = raw.context.get("section_title")
    return f'"{title}"' if title else "This section"


class PhrasingService(Protocol):
    async def phrase_observation(self, raw: RawObservation, *, language: str = "en") -> str: ...

    async def generate_proposal(self, raw: RawObservation, *, language: str = "en") -> str: ...

    async def rewrite_section(
        self, section: CVSection, *, instruction: str | None = None, language: str = "en"
    ) -> str: ...

    async def enhance_section(self, section: CVSection, user_input: str, *, language: str = "en") -> str: ...

    async def phrase_strengths(
        self, signals: Sequence[StrengthSignal], section_summaries: Sequence[str], *, language: str = "en"
    ) -> list[str]: ...

    async def generate_claim_blocks(self, section: CVSection, signal: str, *, language: str = "en") -> list[str]: ...


class TemplatePhrasingService:
    """English templates; used when no LLM is configured and as the fallback."""

    async def phrase_observation(self, raw: RawObservation, *, language: str = "en") -> str:
        template = _OBSERVATION_TEMPLATES.get(raw.signal, "{section} could be represented more fully.")
        section = _section_label(raw)
        if not template.startswith("{section}"):
            section = section.replace("This section", "this section")
        text = template.format(
            section=section,
            duration=_format_months(raw.context.get("duration_months")),
            gap=_format_months(raw.context.get("gap_months")),
        )
        return text[0].upper() + text[1:]

    async def generate_proposal(self, raw: RawObservation, *, language: str = "en") -> str:
        template = _PROPOSAL_TEMPLATES.get(raw.signal, "Add a little more detail to {section}.")
        return template.format(section=_section_label(raw).replace("This section", "this section"))

    async def rewrite_section(
        self, section: CVSection, *, instruction: str | None = None, language: str = "en"
    ) -> str:
        return section.content

    async def enhance_section(self, section: CVSection, user_input: str, *, language: str = "en") -> str:
        addition = user_input.strip()
        if not addition:
            return section.content
        if not section.content.strip():
            return addition
        return f"{section.content.rstrip()}\n{addition}"

    async def phrase_strengths(
        self, signals: Sequence[StrengthSignal], section_summaries: Sequence[str], *, language: str = "en"
    ) -> list[str]:
        paragraphs = [_STRENGTH_TEMPLATES[s.signal] for s in signals if s.signal in _STRENGTH_TEMPLATES]
        return paragraphs[:3] or [DEFAULT_STRENGTH]

    async def generate_claim_blocks(self, section: CVSection, signal: str, *, language: str = "en") -> list[str]:
        return []


OBSERVATION_SYSTEM_PROMPT = """You are writing concise, professional observations about CV sections for a CV improvement tool.

Constraints:
- Never use numbers, scores, or percentages.
- Never say "you should" or "I recommend".
- Never use the words "weak", "poor", "bad", "lacking", "insufficient", "needs improvement".
- Use weight-language: "carrying", "holding", "representing", "showing", "reflects".
- One sentence at most. Sound like noticing, not judging."""

REWRITE_SYSTEM_PROMPT = """You are rewriting a CV section to be clearer and more impactful.

Constraints:
- Match the approximate length of the original (within 20%).
- Do not add information that is not implied by the original or the user's notes.
- Do not invent metrics or outcomes.
- Preserve the person's voice; use active voice.
Return only the rewritten section text."""

STRENGTHS_SYSTEM_PROMPT = """You are summarizing what a CV does well.

Constraints:
- Focus only on what is present and strong; do not mention what is missing.
- Write 2-3 short paragraphs separated by blank lines, one strength each.
- No bullet points. Confident, not effusive."""

CLAIMS_SYSTEM_PROMPT = """You suggest role elements a candidate could add to a CV section.

Return a JSON object {"claims": [...]} with 4-6 short claim phrases of 5-10 words each,
realistic for the role, in active voice, without specific numbers."""


def _language_line(language: str) -> str:
    return f"Write in the language with code '{language}'."


def _describe_context(raw: RawObservation) -> str:
    lines = [f"Signal: {raw.signal}"]
    for key, value in raw.context.items():
        if value is None or key == "completeness":
            continue
        lines.append(f"{key}: {value}")
    completeness = raw.context.get("completeness")
    if isinstance(completeness, dict):
        present = [key.replace("has_", "") for key, flag in completeness.items() if flag]
        missing = [key.replace("has_", "") for key, flag in completeness.items() if not flag]
        lines.append(f"present: {', '.join(present) or 'none'}; missing: {', '.join(missing) or 'none'}")
    return "\n".join(lines)


def _section_context(section: CVSection) -> str:
    parts = [f"Section: {section.title}"]
    if section.organization:
        parts.append(f"Organization: {section.organization}")
    if section.duration:
        parts.append(f"Duration: {section.duration} months")
    return "\n".join(parts)


class LLMPhrasingService:
    def __init__(self, client: TextClient):
        self._client = client

    async def _complete(self, system: str, user: str, *, max_tokens: int, json_mode: bool = False) -> str:
        response = await self._client.complete(
            [ChatMessage(role="system", content=system), ChatMessage(role="user", content=user)],
            json_mode=json_mode,
            max_tokens=max_tokens,
        )
        text = response.text.strip()
        if not text:
            raise ValueError("empty phrasing response")
        return text

    async def phrase_observation(self, raw: RawObservation, *, language: str = "en") -> str:
        prompt = (
            f"{_describe_context(raw)}\n\n"
            "Write one sentence observing this about the section.\n"
            f"{_language_line(language)}"
        )
        return await self._complete(OBSERVATION_SYSTEM_PROMPT, prompt, max_tokens=150)

    async def generate_proposal(self, raw: RawObservation, *, language: str = "en") -> str:
        title = raw.context.get("section_title") or "Section"
        prompt = (
            f'For a CV section titled "{title}" that has the issue: {raw.signal}\n'
            "Write a brief, specific suggestion (one sentence) for what could be added or clarified. "
            "Do not rewrite the section.\n"
            f"{_language_line(language)}"
        )
        return await self._complete(OBSERVATION_SYSTEM_PROMPT, prompt, max_tokens=100)

    async def rewrite_section(
        self, section: CVSection, *, instruction: str | None = None, language: str = "en"
    ) -> str:
        prompt = (
            f"{_section_context(section)}\n\n"
            f'Original content:\n"""\n{section.content}\n"""\n\n'
            f"{instruction or 'Rewrite this section to be clearer and more impactful.'}\n"
            f"{_language_line(language)}"
        )
        return await self._complete(REWRITE_SYSTEM_PROMPT, prompt, max_tokens=500)

    async def enhance_section(self, section: CVSection, user_input: str, *, language: str = "en") -> str:
        prompt = (
            f"{_section_context(section)}\n\n"
            f'Original content:\n"""\n{section.content}\n"""\n\n'
            f'Notes from the candidate:\n"""\n{user_input}\n"""\n\n'
            "Rewrite the section so it includes the candidate's notes.\n"
            f"{_language_line(language)}"
        )
        return await self._complete(REWRITE_SYSTEM_PROMPT, prompt, max_tokens=1000)

    async def phrase_strengths(
        self, signals: Sequence[StrengthSignal], section_summaries: Sequence[str], *, language: str = "en"
    ) -> list[str]:
        if not signals:
            return [DEFAULT_STRENGTH]
        prompt = (
            "Positive signals detected:\n"
            + "\n".join(f"- {signal.signal}" for signal in signals)
            + "\n\nSection summaries:\n"
            + "\n".join(section_summaries[:3])
            + "\n\nWrite 2-3 short paragraphs summarizing what this CV does well.\n"
            + _language_line(language)
        )
        text = await self._complete(STRENGTHS_SYSTEM_PROMPT, prompt, max_tokens=200)
        return [paragraph.strip() for paragraph in text.split("\n\n") if paragraph.strip()]

    async def generate_claim_blocks(self, section: CVSection, signal: str, *, language: str = "en") -> list[str]:
        prompt = (
            f"Role: {section.title}\n"
            f"Organization: {section.organization or 'Not specified'}\n"
            f'Current content: "{section.content[:200]}"\n'
            f"Issue: {signal}\n\n"
            f"{_language_line(language)}"
        )
        text = await self._complete(CLAIMS_SYSTEM_PROMPT, prompt, max_tokens=300, json_mode=True)
        payload = json.loads(strip_code_fences(text))
        claims = payload.get("claims") if isinstance(payload, dict) else payload
        if not isinstance(claims, list):
            raise ValueError("claim blocks response is not a list")
        return [str(claim).strip() for claim in claims if str(claim).strip()][:MAX_CLAIM_BLOCKS]


async def call_with_fallback(
    primary: Callable[[], Awaitable[T]],
    fallback: Callable[[], Awaitable[T]],
    *,
    timeout_s: float,
    operation: str,
) -> T:
    """Await ``primary`` under a timeout; on any failure await ``fallback`` instead."""
    try:
        return await asyncio.wait_for(primary(), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning("phrasing_timeout operation=%s timeout_s=%s", operation, timeout_s)
    except Exception as exc:  # noqa: BLE001 - deterministic fallback is expected
        logger.warning("phrasing_failed operation=%s error=%s: %s", operation, type(exc).__name__, exc)
    return await fallback()


class FallbackPhrasingService:
    def __init__(
        self,
        primary: PhrasingService,
        fallback: PhrasingService | None = None,
        *,
        timeout_s: float = 15.0,
    ):
        self._primary = primary
        self._fallback = fallback or TemplatePhrasingService()
        self._timeout_s = timeout_s

    async def _guard(self, operation: str, method: str, *args: Any, **kwargs: Any) -> Any:
        return await call_with_fallback(
            lambda: getattr(self._primary, method)(*args, **kwargs),
            lambda: getattr(self._fallback, method)(*args, **kwargs),
            timeout_s=self._timeout_s,
            operation=operation,
        )

    async def phrase_observation(self, raw: RawObservation, *, language: str = "en") -> str:
        return await self._guard(f"observation:{raw.signal}", "phrase_observation", raw, language=language)

    async def generate_proposal(self, raw: RawObservation, *, language: str = "en") -> str:
        return await self._guard(f"proposal:{raw.signal}", "generate_proposal", raw, language=language)

    async def rewrite_section(
        self, section: CVSection, *, instruction: str | None = None, language: str = "en"
    ) -> str:
        return await self._guard("rewrite", "rewrite_section", section, instruction=instruction, language=language)

    async def enhance_section(self, section: CVSection, user_input: str, *, language: str = "en") -> str:
        return await self._guard("enhance", "enhance_section", section, user_input, language=language)

    async def phrase_strengths(
        self, signals: Sequence[StrengthSignal], section_summaries: Sequence[str], *, language: str = "en"
    ) -> list[str]:
        return await self._guard(
            "strengths", "phrase_strengths", signals, section_summaries, language=language
        )

    async def generate_claim_blocks(self, section: CVSection, signal: str, *, language: str = "en") -> list[str]:
        return await self._guard(f"claims:{signal}", "generate_claim_blocks", section, signal, language=language)


def build_phrasing_service(client: TextClient | None, *, timeout_s: float) -> PhrasingService:
    if client is None:
        return TemplatePhrasingService()
    return FallbackPhrasingService(LLMPhrasingService(client), TemplatePhrasingService(), timeout_s=timeout_s)
