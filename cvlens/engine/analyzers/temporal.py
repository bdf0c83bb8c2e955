"""Recency of job and project sections, plus gaps between jobs."""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

from cvlens.core.config.thresholds import AnalysisThresholds
from cvlens.engine.analyzers.context import AnalysisContext, AnalyzerSignal
from cvlens.engine.dates import month_delta
from cvlens.schemas.cv import CVSection


def analyze_temporal(
    sections: Sequence[CVSection],
    context: AnalysisContext,
    *,
    thresholds: AnalysisThresholds,
    now: datetime,
) -> list[AnalyzerSignal]:
    cfg = thresholds.temporal
    signals: list[AnalyzerSignal] = []
    for section in sections:
        if not section.is_analyzable:
            continue
        # No end date reads as ongoing.
        months_since_end = max(0, month_delta(section.end_date, now)) if section.end_date else 0
        context.record_recency(section.id, months_since_end)

        if months_since_end > cfg.outdated_months:
            signal = "outdated_experience"
            confidence = min(
                cfg.outdated_cap,
                cfg.outdated_base + (months_since_end - cfg.outdated_months) * cfg.outdated_step,
            )
            suppressed = False
        elif months_since_end < cfg.recent_months and section.word_count < cfg.thin_word_count:
            signal, confidence, suppressed = "recent_but_thin", cfg.thin_confidence, False
        else:
            signal, confidence, suppressed = "current_and_healthy", cfg.healthy_confidence, True

        signals.append(
            AnalyzerSignal(
                section_id=section.id,
                type="temporal",
                signal=signal,
                confidence=thresholds.damp(confidence, section.parse_confidence),
                suppressed=suppressed,
                details={"months_since_end": months_since_end, "word_count": section.word_count},
            )
        )
    return signals


def detect_gaps(
    sections: Sequence[CVSection],
    *,
    thresholds: AnalysisThresholds,
) -> list[AnalyzerSignal]:
    """Flag stretches between consecutive dated jobs longer than the gap threshold.

    The signal belongs to the later job.
    """
    cfg = thresholds.temporal
    jobs = [s for s in sections if s.type == "job" and s.start_date and s.end_date]
    jobs.sort(key=lambda s: s.end_date, reverse=True)  # type: ignore[arg-type, return-value]

    signals: list[AnalyzerSignal] = []
    for later, earlier in zip(jobs, jobs[1:]):
        gap = month_delta(earlier.end_date, later.start_date)  # type: ignore[arg-type]
        if gap <= cfg.gap_warning_months:
            continue
        confidence = min(cfg.gap_cap, cfg.gap_base + gap * cfg.gap_step)
        signals.append(
            AnalyzerSignal(
                section_id=later.id,
                type="temporal",
                signal="large_gap",
                confidence=thresholds.damp(confidence, later.parse_confidence),
                details={"gap_months": gap},
            )
        )
    return signals
