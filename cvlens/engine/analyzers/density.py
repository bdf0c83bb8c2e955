"""Words-per-month density of job and project sections."""

from __future__ import annotations

from typing import Sequence

from cvlens.core.config.thresholds import AnalysisThresholds, DensityThresholds
from cvlens.engine.analyzers.context import AnalysisContext, AnalyzerSignal
from cvlens.schemas.cv import CVSection


def classify_density(words_per_month: float, cfg: DensityThresholds) -> tuple[str, float, bool]:
    """Return ``(signal, confidence, suppressed)`` before parse damping."""
    if words_per_month < cfg.sparse_below:
        shortfall = cfg.sparse_below - words_per_month
        return "sparse_density", min(cfg.sparse_cap, cfg.sparse_base + shortfall * cfg.sparse_step), False
    if words_per_month > cfg.dense_above:
        excess = words_per_month - cfg.dense_above
        return "dense_but_shallow", min(cfg.dense_cap, cfg.dense_base + excess * cfg.dense_step), False
    return "healthy_density", cfg.healthy_confidence, True


def analyze_density(
    sections: Sequence[CVSection],
    context: AnalysisContext,
    *,
    thresholds: AnalysisThresholds,
) -> list[AnalyzerSignal]:
    signals: list[AnalyzerSignal] = []
    for section in sections:
        if not section.is_analyzable or not section.duration:
            continue
        words_per_month = section.word_count / section.duration
        context.record_density(section.id, words_per_month)

        signal, confidence, suppressed = classify_density(words_per_month, thresholds.density)
        signals.append(
            AnalyzerSignal(
                section_id=section.id,
                type="density",
                signal=signal,
                confidence=thresholds.damp(confidence, section.parse_confidence),
                suppressed=suppressed,
                details={
                    "word_count": section.word_count,
                    "duration_months": section.duration,
                    "words_per_month": round(words_per_month, 2),
                },
            )
        )
    return signals
