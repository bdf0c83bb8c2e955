"""End-to-end CV analysis: extract, segment, analyze, phrase, store."""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Sequence

from cvlens.ai.factory import get_text_client
from cvlens.ai.types import TextClient
from cvlens.core.config import Settings
from cvlens.core.config import settings as default_settings
from cvlens.core.config.thresholds import AnalysisThresholds, get_thresholds
from cvlens.core.errors import DocumentTooShortError, EmptyInputError
from cvlens.core.session_store import CVSessionStore, get_session_store
from cvlens.engine.dates import Clock, utc_now
from cvlens.engine.llm_segmenter import Sleep, segment_with_llm
from cvlens.engine.observations import (
    create_observation,
    generate_observations,
    identify_strengths,
    representation_status,
    run_analyzers,
)
from cvlens.engine.segmenter import FALLBACK_WARNING, fallback_parse_result, is_usable, segment_text
from cvlens.parsing.extract import extract_text
from cvlens.schemas.api import EnhanceSectionResponse, ObservationRespondResponse, RewriteResponse
from cvlens.schemas.cv import CV, CVSection, GuidedEditContext, Observation, ObservationStatus, ParseResult, RawObservation
from cvlens.services.phrasing import (
    FallbackPhrasingService,
    PhrasingService,
    TemplatePhrasingService,
    build_phrasing_service,
    input_prompt,
    sentence_starters,
)

logger = logging.getLogger(__name__)

_UNSET: Any = object()
ENHANCE_PROPOSAL = "Suggested enhancement based on your input."


class CVAnalysisService:
    def __init__(
        self,
        *,
        store: CVSessionStore | None = None,
        client: TextClient | None = _UNSET,
        phrasing: PhrasingService | None = None,
        thresholds: AnalysisThresholds | None = None,
        settings: Settings | None = None,
        clock: Clock = utc_now,
        sleep: Sleep = asyncio.sleep,
    ):
        self._settings = settings or default_settings
        self._store = store if store is not None else get_session_store()
        self._client = get_text_client() if client is _UNSET else client
        self._thresholds = thresholds or get_thresholds()
        self._clock = clock
        self._sleep = sleep

        if phrasing is None:
            phrasing = build_phrasing_service(self._client, timeout_s=self._settings.phrasing_timeout_s)
        elif not isinstance(phrasing, (TemplatePhrasingService, FallbackPhrasingService)):
            phrasing = FallbackPhrasingService(phrasing, timeout_s=self._settings.phrasing_timeout_s)
        self._phrasing = phrasing

    @property
    def store(self) -> CVSessionStore:
        return self._store

    async def segment(self, text: str) -> ParseResult:
        """LLM segmentation when configured, heuristic otherwise; unusable results degrade."""
        warnings: list[str] = []
        if self._client is not None and self._settings.segmentation_strategy == "llm":
            llm_result = await segment_with_llm(
                text,
                client=self._client,
                thresholds=self._thresholds,
                settings=self._settings,
                clock=self._clock,
                sleep=self._sleep,
            )
            if llm_result.strategy == "llm" and is_usable(llm_result, self._thresholds):
                return llm_result
            logger.warning(
                "llm_segmentation_unusable strategy=%s sections=%d confidence=%s",
                llm_result.strategy,
                len(llm_result.sections),
                llm_result.overall_confidence,
            )
            warnings.extend(warning for warning in llm_result.warnings if warning != FALLBACK_WARNING)

        result = segment_text(text, thresholds=self._thresholds, clock=self._clock)
        if is_usable(result, self._thresholds):
            return result.model_copy(update={"warnings": warnings + result.warnings})

        logger.warning(
            "heuristic_segmentation_unusable sections=%d confidence=%s",
            len(result.sections),
            result.overall_confidence,
        )
        return fallback_parse_result(text, warnings + result.warnings)

    async def _build_observation(
        self,
        raw: RawObservation,
        section: CVSection | None,
        language: str,
    ) -> Observation:
        message, proposal, claim_blocks = await asyncio.gather(
            self._phrasing.phrase_observation(raw, language=language),
            self._phrasing.generate_proposal(raw, language=language),
            self._phrasing.generate_claim_blocks(section, raw.signal, language=language)
            if section is not None
            else _no_claims(),
        )
        guided_edit = None
        if section is not None:
            guided_edit = GuidedEditContext(
                claim_blocks=claim_blocks,
                sentence_starters=sentence_starters(raw.signal),
                representation_status=representation_status(
                    raw.context.get("word_count"),
                    raw.context.get("duration_months"),
                    thresholds=self._thresholds,
                ),
            )
        return create_observation(
            raw,
            message,
            proposal=proposal,
            action_type="guided_edit",
            input_prompt=input_prompt(raw.signal),
            guided_edit=guided_edit,
        )

    async def analyze_text(self, raw_text: str, *, file_name: str = "pasted-text.txt", language: str | None = None) -> CV:
        language = (language or self._settings.default_language).strip().lower() or "en"
        text = raw_text or ""
        if len(text.strip()) < self._thresholds.parse.min_content_length:
            raise DocumentTooShortError("Document appears to be too short or empty")

        parse_result = await self.segment(text)
        logger.info(
            "cv_segmented strategy=%s sections=%d confidence=%s",
            parse_result.strategy,
            len(parse_result.sections),
            parse_result.overall_confidence,
        )
        for section in parse_result.sections:
            logger.info(
                "cv_section id=%s type=%s title=%r words=%d confidence=%s",
                section.id,
                section.type,
                section.title[:60],
                section.word_count,
                section.parse_confidence,
            )
        if parse_result.warnings:
            logger.warning("cv_parse_warnings count=%d first=%s", len(parse_result.warnings), parse_result.warnings[0])

        context = run_analyzers(parse_result.sections, thresholds=self._thresholds, clock=self._clock)
        raw_observations = generate_observations(
            parse_result.sections,
            thresholds=self._thresholds,
            clock=self._clock,
            context=context,
        )
        sections = context.annotate(parse_result.sections)
        by_id = {section.id: section for section in sections}

        observations = await asyncio.gather(
            *(self._build_observation(raw, by_id.get(raw.section_id), language) for raw in raw_observations)
        )

        strength_signals = identify_strengths(parse_result.sections, context, thresholds=self._thresholds)
        summaries = [f"{section.title}: {section.content[:100]}..." for section in sections[:5]]
        strengths = await self._phrasing.phrase_strengths(strength_signals, summaries, language=language)

        cv = CV(
            id=uuid.uuid4().hex,
            uploaded_at=self._clock(),
            file_name=file_name,
            raw_text=text,
            sections=sections,
            observations=list(observations),
            strengths=strengths,
            warnings=parse_result.warnings,
            parse_confidence=parse_result.overall_confidence,
            language=language,
        )
        self._store.store(cv)
        logger.info("cv_analyzed cv_id=%s observations=%d strengths=%d", cv.id, len(cv.observations), len(strengths))
        return cv

    async def analyze_document(
        self,
        content: bytes,
        *,
        filename: str | None,
        mime_type: str | None = None,
        language: str | None = None,
    ) -> CV:
        document = extract_text(content, filename=filename, mime_type=mime_type)
        cv = await self.analyze_text(document.text, file_name=document.file_name, language=language)
        if document.warnings:
            cv.warnings = [*document.warnings, *cv.warnings]
        return cv

    def get_cv(self, cv_id: str) -> CV:
        return self._store.get(cv_id)

    async def rewrite_section(self, cv_id: str, section_id: str, *, language: str | None = None) -> RewriteResponse:
        cv = self._store.get(cv_id)
        section = self._store.get_section(cv_id, section_id)
        rewritten = await self._phrasing.rewrite_section(section, language=language or cv.language)
        return RewriteResponse(original=section.content, rewritten=rewritten)

    def respond_to_observation(
        self, cv_id: str, observation_id: str, response: ObservationStatus
    ) -> ObservationRespondResponse:
        observation = self._store.update_observation(cv_id, observation_id, response)
        return ObservationRespondResponse(success=True, observation=observation)

    async def enhance_section(
        self,
        cv_id: str,
        section_id: str,
        *,
        user_input: str | None = None,
        selected_claims: Sequence[str] = (),
        additional_text: str | None = None,
        observation_id: str | None = None,
        language: str | None = None,
    ) -> EnhanceSectionResponse:
        """Rewrite a section around free-text notes and/or selected claim blocks."""
        cv = self._store.get(cv_id)
        section = self._store.get_section(cv_id, section_id)

        claims_text = ". ".join(claim.strip() for claim in selected_claims if claim and claim.strip())
        parts = [part.strip() for part in (user_input, claims_text, additional_text) if part and part.strip()]
        combined = "\n\n".join(parts)
        if not combined:
            raise EmptyInputError("No content to apply")

        rewritten = await self._phrasing.enhance_section(section, combined, language=language or cv.language)
        return EnhanceSectionResponse(
            section_id=section_id,
            observation_id=observation_id,
            rewritten_content=rewritten,
            proposal=ENHANCE_PROPOSAL,
        )


async def _no_claims() -> list[str]:
    return []


_service: CVAnalysisService | None = None


def get_cv_service() -> CVAnalysisService:
    global _service

    if _service is None:
        _service = CVAnalysisService()
    return _service
