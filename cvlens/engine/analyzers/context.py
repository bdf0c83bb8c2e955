from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from cvlens.schemas.cv import Completeness, CVSection, ObservationType


@dataclass(frozen=True)
class AnalyzerSignal:
    section_id: str
    type: ObservationType
    signal: str
    confidence: float
    suppressed: bool = False
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class SectionAnalysis:
    density_score: float | None = None
    recency_score: int | None = None
    completeness: Completeness | None = None


class AnalysisContext:
    """Side table of the values analyzers derive per section.

    Sections themselves are never modified; ``annotate`` produces copies with
    the derived fields filled in.
    """

    def __init__(self) -> None:
        self._entries: dict[str, SectionAnalysis] = {}
        self.signals: list[AnalyzerSignal] = []

    def entry(self, section_id: str) -> SectionAnalysis:
        return self._entries.setdefault(section_id, SectionAnalysis())

    def get(self, section_id: str) -> SectionAnalysis | None:
        return self._entries.get(section_id)

    def record_density(self, section_id: str, score: float) -> None:
        self.entry(section_id).density_score = score

    def record_recency(self, section_id: str, months: int) -> None:
        self.entry(section_id).recency_score = months

    def record_completeness(self, section_id: str, completeness: Completeness) -> None:
        self.entry(section_id).completeness = completeness

    def extend(self, signals: Iterable[AnalyzerSignal]) -> None:
        self.signals.extend(signals)

    def density_scores(self, section_ids: Iterable[str] | None = None) -> list[float]:
        ids = list(self._entries) if section_ids is None else list(section_ids)
        scores = []
        for section_id in ids:
            entry = self._entries.get(section_id)
            if entry is not None and entry.density_score is not None:
                scores.append(entry.density_score)
        return scores

    def annotate(self, sections: Sequence[CVSection]) -> list[CVSection]:
        annotated: list[CVSection] = []
        for section in sections:
            entry = self._entries.get(section.id)
            if entry is None:
                annotated.append(section)
                continue
            annotated.append(
                section.model_copy(
                    update={
                        "density_score": entry.density_score,
                        "recency_score": entry.recency_score,
                        "completeness": entry.completeness,
                    }
                )
            )
        return annotated
