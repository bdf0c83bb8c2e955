"""Turns analyzer signals into ranked observations and strength signals.

Nothing here phrases text; messages come from the phrasing service.
"""

from __future__ import annotations

import hashlib
from datetime import datetime, timezone
from statistics import fmean, pvariance
from typing import Any, Sequence

from cvlens.core.config.thresholds import AnalysisThresholds, get_thresholds
from cvlens.engine.analyzers import (
    AnalysisContext,
    AnalyzerSignal,
    analyze_density,
    analyze_structure,
    analyze_temporal,
    detect_gaps,
)
from cvlens.engine.dates import Clock, utc_now
from cvlens.schemas.cv import (
    ActionType,
    CVSection,
    GuidedEditContext,
    Observation,
    RawObservation,
    RepresentationStatus,
    StrengthSignal,
)


def run_analyzers(
    sections: Sequence[CVSection],
    *,
    thresholds: AnalysisThresholds | None = None,
    clock: Clock = utc_now,
) -> AnalysisContext:
    """Run density, temporal, gap and structural analysis in that order."""
    thresholds = thresholds or get_thresholds()
    now = clock()
    context = AnalysisContext()
    context.extend(analyze_density(sections, context, thresholds=thresholds))
    context.extend(analyze_temporal(sections, context, thresholds=thresholds, now=now))
    context.extend(detect_gaps(sections, thresholds=thresholds))
    context.extend(analyze_structure(sections, context, thresholds=thresholds))
    return context


def _context_bag(signal: AnalyzerSignal, section: CVSection | None) -> dict[str, Any]:
    bag: dict[str, Any] = {
        "section_title": section.title if section else None,
        "organization": section.organization if section else None,
        "word_count": section.word_count if section else None,
        "duration_months": section.duration if section else None,
    }
    bag.update(signal.details)
    return bag


def generate_observations(
    sections: Sequence[CVSection],
    *,
    thresholds: AnalysisThresholds | None = None,
    clock: Clock = utc_now,
    context: AnalysisContext | None = None,
) -> list[RawObservation]:
    thresholds = thresholds or get_thresholds()
    if context is None:
        context = run_analyzers(sections, thresholds=thresholds, clock=clock)
    by_id = {section.id: section for section in sections}
    cfg = thresholds.confidence

    ranked: list[tuple[int, RawObservation]] = []
    for order, signal in enumerate(context.signals):
        if signal.suppressed or signal.confidence < cfg.minimum_to_show:
            continue
        ranked.append(
            (
                order,
                RawObservation(
                    section_id=signal.section_id,
                    type=signal.type,
                    signal=signal.signal,
                    confidence=round(signal.confidence, 4),
                    context=_context_bag(signal, by_id.get(signal.section_id)),
                ),
            )
        )

    # Emission order breaks ties so identical input ranks identically.
    ranked.sort(key=lambda item: (-item[1].confidence, item[0]))
    return [raw for _, raw in ranked[: cfg.max_observations]]


def observation_id(raw: RawObservation) -> str:
    digest = hashlib.sha256(f"{raw.section_id}\x1f{raw.signal}".encode("utf-8")).hexdigest()[:8]
    return f"obs-{digest}"


def create_observation(
    raw: RawObservation,
    message: str,
    *,
    proposal: str | None = None,
    action_type: ActionType = "guided_edit",
    input_prompt: str | None = None,
    rewritten_content: str | None = None,
    guided_edit: GuidedEditContext | None = None,
) -> Observation:
    return Observation(
        id=observation_id(raw),
        section_id=raw.section_id,
        type=raw.type,
        confidence=raw.confidence,
        signal=raw.signal,
        message=message,
        action_type=action_type,
        input_prompt=input_prompt,
        proposal=proposal,
        rewritten_content=rewritten_content,
        status="pending",
        guided_edit=guided_edit,
    )


def representation_status(
    word_count: int | None,
    duration_months: int | None,
    *,
    thresholds: AnalysisThresholds | None = None,
) -> RepresentationStatus:
    if not duration_months:
        return "balanced"
    cfg = (thresholds or get_thresholds()).density
    words_per_month = (word_count or 0) / duration_months
    if words_per_month < cfg.too_short_below:
        return "too_short"
    if words_per_month > cfg.too_long_above:
        return "too_long"
    return "balanced"


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _shows_progression(titles: list[str], markers: Sequence[str]) -> bool:
    for previous, current in zip(titles, titles[1:]):
        if any(marker in current and marker not in previous for marker in markers):
            return True
    return False


def identify_strengths(
    sections: Sequence[CVSection],
    context: AnalysisContext,
    *,
    thresholds: AnalysisThresholds | None = None,
) -> list[StrengthSignal]:
    thresholds = thresholds or get_thresholds()
    cfg = thresholds.strengths
    strengths: list[StrengthSignal] = []

    jobs = [section for section in sections if section.type == "job"]
    ordered = sorted(jobs, key=lambda s: (s.start_date is None, s.start_date or _EPOCH))
    if len(ordered) >= 2:
        titles = [job.title.lower() for job in ordered]
        if _shows_progression(titles, cfg.seniority_markers):
            strengths.append(
                StrengthSignal(
                    signal="consistent_progression",
                    confidence=cfg.confidences["consistent_progression"],
                    context={"job_count": len(ordered)},
                )
            )

    with_metrics = []
    for section in sections:
        entry = context.get(section.id)
        if entry is not None and entry.completeness is not None and entry.completeness.has_metrics:
            with_metrics.append(section)
    if len(with_metrics) >= cfg.min_metric_sections:
        strengths.append(
            StrengthSignal(
                signal="metrics_present",
                confidence=cfg.confidences["metrics_present"],
                context={"count": len(with_metrics)},
            )
        )

    recent = []
    for job in jobs:
        entry = context.get(job.id)
        if entry is not None and entry.recency_score is not None and entry.recency_score < cfg.recent_months:
            recent.append(job)
    if recent:
        strengths.append(
            StrengthSignal(
                signal="recent_activity",
                confidence=cfg.confidences["recent_activity"],
                context={"recent_titles": [job.title for job in recent]},
            )
        )

    scores = context.density_scores(section.id for section in sections)
    if len(scores) >= cfg.balanced_min_scores:
        average = fmean(scores)
        if (
            pvariance(scores, mu=average) < cfg.balanced_variance_max
            and cfg.balanced_avg_min <= average <= cfg.balanced_avg_max
        ):
            strengths.append(
                StrengthSignal(
                    signal="balanced_density",
                    confidence=cfg.confidences["balanced_density"],
                    context={"average_words_per_month": round(average, 2)},
                )
            )
    return strengths
