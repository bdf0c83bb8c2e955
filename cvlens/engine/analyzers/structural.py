"""Presence of metrics, outcomes, tools and team context in role descriptions."""

from __future__ import annotations

from typing import Sequence

from cvlens.core.config.thresholds import AnalysisThresholds, StructuralThresholds
from cvlens.engine.analyzers.context import AnalysisContext, AnalyzerSignal
from cvlens.schemas.cv import Completeness, CVSection


def _has(cfg: StructuralThresholds, key: str, content: str) -> bool:
    pattern = cfg.patterns.get(key)
    return bool(pattern and pattern.search(content))


def measure_completeness(content: str, cfg: StructuralThresholds) -> Completeness:
    return Completeness(
        has_metrics=_has(cfg, "metrics", content),
        has_outcomes=_has(cfg, "outcomes", content),
        has_tools=_has(cfg, "tools", content),
        has_team_size=_has(cfg, "team_size", content),
    )


def analyze_structure(
    sections: Sequence[CVSection],
    context: AnalysisContext,
    *,
    thresholds: AnalysisThresholds,
) -> list[AnalyzerSignal]:
    cfg = thresholds.structural
    signals: list[AnalyzerSignal] = []
    for section in sections:
        if not section.is_analyzable:
            continue
        completeness = measure_completeness(section.content, cfg)
        context.record_completeness(section.id, completeness)
        base = cfg.base_confidence.get(section.parse_confidence, cfg.base_confidence.get("low", 0.5))
        details = {"completeness": completeness.model_dump()}

        found: list[AnalyzerSignal] = []
        if not completeness.has_metrics:
            found.append(_signal(section, "missing_metrics", base * cfg.metrics_factor, details))
        if not completeness.has_outcomes:
            found.append(_signal(section, "missing_outcomes", base * cfg.outcomes_factor, details))
        if not completeness.has_tools and section.type == "job":
            found.append(_signal(section, "missing_tools", base * cfg.tools_factor, details))
        if not completeness.has_team_size and cfg.lead_marker in section.content.lower():
            found.append(_signal(section, "missing_team_context", base * cfg.team_context_factor, details))

        if not found and completeness.has_metrics and completeness.has_outcomes:
            found.append(
                _signal(section, "well_structured", cfg.well_structured_confidence, details, suppressed=True)
            )
        signals.extend(found)
    return signals


def _signal(
    section: CVSection,
    name: str,
    confidence: float,
    details: dict,
    *,
    suppressed: bool = False,
) -> AnalyzerSignal:
    return AnalyzerSignal(
        section_id=section.id,
        type="structural",
        signal=name,
        confidence=confidence,
        suppressed=suppressed,
        details=dict(details),
    )
