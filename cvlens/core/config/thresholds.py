"""Tuning table for the segmenter and the signal analyzers.

Every cutoff, confidence curve and regex the engine uses lives here. The
values are first estimates and are expected to be recalibrated against real
CVs, so nothing in ``cvlens.engine`` hardcodes them: callers pass an
``AnalysisThresholds`` instance (``get_thresholds()`` by default).

Overrides come from ``config/thresholds.yaml`` (or ``CVLENS_THRESHOLDS_PATH``)
and are merged onto the defaults below, group by group.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)

_THRESHOLDS_CACHE: "AnalysisThresholds | None" = None
_DEFAULT_THRESHOLDS_PATH = Path(__file__).resolve().parents[3] / "config" / "thresholds.yaml"


class ThresholdsConfigError(RuntimeError):
    pass


def _compile(pattern: "str | re.Pattern[str]") -> re.Pattern[str]:
    if isinstance(pattern, re.Pattern):
        return pattern
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as exc:
        raise ThresholdsConfigError(f"Invalid pattern {pattern!r}: {exc}") from exc


def _compile_map(patterns: Mapping[str, str]) -> dict[str, re.Pattern[str]]:
    return {key: _compile(value) for key, value in patterns.items()}


_SECTION_HEADER_PATTERNS = {
    "job": (
        r"^(?:experience|work\s*experience|employment(?:\s*history)?|professional\s*experience"
        r"|work\s*history|career\s*history|positions?\s*held|erhvervserfaring|arbejdserfaring"
        r"|beskæftigelse|berufserfahrung)\b"
    ),
    "education": (
        r"^(?:education|academic(?:\s*background)?|qualifications|degrees|certifications?"
        r"|training|uddannelse|kurser|ausbildung)\b"
    ),
    "skill": (
        r"^(?:skills|technical\s*skills|competencies|technologies|expertise|proficiencies"
        r"|core\s*competencies|kompetencer|færdigheder|kenntnisse)\b"
    ),
    "project": r"^(?:projects|personal\s*projects|portfolio|key\s*projects|selected\s*projects|projekter)\b",
    "summary": (
        r"^(?:summary|profile|about(?:\s*me)?|professional\s*summary|objective|personal\s*statement"
        r"|overview|profil|resumé)\b"
    ),
}

_COMPANY_PATTERNS = (
    r"\b(?-i:ApS|A/S|Inc\.?|LLC|Ltd\.?|Corp\.?|GmbH|AG|SA|BV|NV|Pty|PLC|LLP|LP)(?=\W|$)",
    r"\b(?:Corporation|Company)\b",
    r"\b(?:University|College|Institute|Hospital|Foundation|Association|Organization|Group|Partners)\b",
    r"\b(?:Municipality|Government|Ministry|Department|Agency|Kommune|Region)\b",
)

_JOB_TITLE_PATTERNS = (
    r"\b(?:Manager|Director|Engineer|Developer|Consultant|Analyst|Specialist|Coordinator"
    r"|Administrator|Assistant|Associate|Lead|Senior|Junior|Principal|Chief|Head|VP"
    r"|Vice\s*President|CEO|CTO|CFO|COO|CIO)\b",
    r"\b(?:Project|Program|Product|Account|IT)\s*Manager\b",
    r"\b(?:Software|Hardware|Data|Business|Operations|Marketing|Sales|Finance|HR|Human\s*Resources)"
    r"\s+(?:Manager|Director|Analyst|Engineer|Specialist)\b",
)

_STRUCTURAL_PATTERNS = {
    "metrics": (
        r"\d+(?:[.,]\d+)?\s*%|[$€£]\s?\d[\d,.]*|\b\d[\d,.]*\s*(?:k|m|bn)?\s*(?:dkk|kr\.?|eur|usd)\b"
        r"|\b\d+x\b|\b\d+\+?\s*(?:users|customers|clients|employees|team\s*members|people|engineers"
        r"|reports|countries|markets|stores)\b"
    ),
    "outcomes": (
        r"\b(?:resulted|improved|reduced|increased|decreased|achieved|delivered|saved|generated"
        r"|grew|accelerated|doubled|tripled|launched)\b"
    ),
    "tools": (
        r"\b(?:Python|JavaScript|TypeScript|Java|Go|Rust|AWS|Azure|GCP|Docker|Kubernetes|React"
        r"|Node|SQL|PostgreSQL|MongoDB|Kafka|Redis|TensorFlow|PyTorch|Salesforce|SAP|Excel"
        r"|Tableau|Jira)\b"
    ),
    "team_size": r"\b(?:team\s+of|led|managed|supervised)\s*\d+",
}


def _apply_overrides(instance: Any, data: Any, group: str) -> Any:
    if data is None:
        return instance
    if not isinstance(data, dict):
        raise ThresholdsConfigError(f"Threshold group '{group}' must be a mapping.")

    known = {f.name: f for f in fields(instance)}
    updates: dict[str, Any] = {}
    for key, value in data.items():
        if key not in known:
            raise ThresholdsConfigError(f"Unknown threshold '{group}.{key}'.")
        current = getattr(instance, key)
        if isinstance(current, re.Pattern):
            value = _compile(value)
        elif isinstance(current, tuple) and current and isinstance(current[0], re.Pattern):
            value = tuple(_compile(item) for item in value)
        elif isinstance(current, dict):
            if not isinstance(value, dict):
                raise ThresholdsConfigError(f"Threshold '{group}.{key}' must be a mapping.")
            compiled = any(isinstance(item, re.Pattern) for item in current.values())
            value = {**current, **(_compile_map(value) if compiled else value)}
        elif isinstance(value, list):
            value = tuple(value)
        updates[key] = value
    return replace(instance, **updates)


@dataclass(frozen=True)
class SegmenterThresholds:
    section_headers: dict[str, re.Pattern[str]] = field(
        default_factory=lambda: _compile_map(_SECTION_HEADER_PATTERNS)
    )
    header_max_words: int = 6
    company_patterns: tuple[re.Pattern[str], ...] = field(
        default_factory=lambda: tuple(_compile(p) for p in _COMPANY_PATTERNS)
    )
    job_title_patterns: tuple[re.Pattern[str], ...] = field(
        default_factory=lambda: tuple(_compile(p) for p in _JOB_TITLE_PATTERNS)
    )
    date_lookahead_lines: int = 5
    block_restart_lines: int = 5
    min_block_chars: int = 50
    title_max_chars: int = 100
    organization_max_chars: int = 80
    overlap_title_prefix: int = 30


@dataclass(frozen=True)
class ParseThresholds:
    min_content_length: int = 100
    low_parsed_ratio: float = 0.70
    medium_parsed_ratio: float = 0.85
    min_usable_sections: int = 2


@dataclass(frozen=True)
class DensityThresholds:
    sparse_below: float = 4.0
    dense_above: float = 25.0
    sparse_base: float = 0.7
    sparse_step: float = 0.05
    sparse_cap: float = 0.95
    dense_base: float = 0.6
    dense_step: float = 0.01
    dense_cap: float = 0.85
    healthy_confidence: float = 0.9
    too_short_below: float = 5.0
    too_long_above: float = 25.0


@dataclass(frozen=True)
class TemporalThresholds:
    outdated_months: int = 36
    recent_months: int = 12
    thin_word_count: int = 50
    outdated_base: float = 0.7
    outdated_step: float = 0.005
    outdated_cap: float = 0.9
    thin_confidence: float = 0.75
    healthy_confidence: float = 0.85
    gap_warning_months: int = 6
    gap_base: float = 0.6
    gap_step: float = 0.02
    gap_cap: float = 0.85


@dataclass(frozen=True)
class StructuralThresholds:
    patterns: dict[str, re.Pattern[str]] = field(
        default_factory=lambda: _compile_map(_STRUCTURAL_PATTERNS)
    )
    base_confidence: dict[str, float] = field(
        default_factory=lambda: {"high": 0.85, "medium": 0.7, "low": 0.5}
    )
    metrics_factor: float = 0.9
    outcomes_factor: float = 0.85
    tools_factor: float = 0.6
    team_context_factor: float = 0.75
    lead_marker: str = "lead"
    well_structured_confidence: float = 0.9


@dataclass(frozen=True)
class ConfidenceThresholds:
    minimum_to_show: float = 0.7
    parse_damping: dict[str, float] = field(
        default_factory=lambda: {"high": 1.0, "medium": 0.8, "low": 0.6}
    )
    max_observations: int = 8


@dataclass(frozen=True)
class StrengthThresholds:
    seniority_markers: tuple[str, ...] = ("senior", "lead", "manager")
    min_metric_sections: int = 2
    recent_months: int = 12
    balanced_min_scores: int = 2
    balanced_variance_max: float = 50.0
    balanced_avg_min: float = 8.0
    balanced_avg_max: float = 20.0
    confidences: dict[str, float] = field(
        default_factory=lambda: {
            "consistent_progression": 0.8,
            "metrics_present": 0.85,
            "recent_activity": 0.9,
            "balanced_density": 0.75,
        }
    )


@dataclass(frozen=True)
class AnalysisThresholds:
    segmenter: SegmenterThresholds = field(default_factory=SegmenterThresholds)
    parse: ParseThresholds = field(default_factory=ParseThresholds)
    density: DensityThresholds = field(default_factory=DensityThresholds)
    temporal: TemporalThresholds = field(default_factory=TemporalThresholds)
    structural: StructuralThresholds = field(default_factory=StructuralThresholds)
    confidence: ConfidenceThresholds = field(default_factory=ConfidenceThresholds)
    strengths: StrengthThresholds = field(default_factory=StrengthThresholds)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "AnalysisThresholds":
        """Build a table from nested overrides, e.g. ``{"density": {"sparse_below": 3}}``."""
        base = cls()
        if not data:
            return base
        unknown = set(data) - {f.name for f in fields(base)}
        if unknown:
            raise ThresholdsConfigError(f"Unknown threshold groups: {', '.join(sorted(unknown))}.")
        return replace(
            base,
            **{
                group: _apply_overrides(getattr(base, group), values, group)
                for group, values in data.items()
            },
        )

    def damp(self, confidence: float, parse_confidence: str) -> float:
        return confidence * self.confidence.parse_damping.get(parse_confidence, 1.0)


def load_thresholds(path: str | Path | None = None) -> AnalysisThresholds:
    """Read YAML overrides from ``path``; a missing default file yields the defaults."""
    explicit = path is not None
    config_path = Path(path) if explicit else _DEFAULT_THRESHOLDS_PATH

    if not config_path.exists():
        if explicit:
            raise ThresholdsConfigError(f"Thresholds config not found at '{config_path}'.")
        logger.info("thresholds_config_missing path=%s using_defaults=true", config_path)
        return AnalysisThresholds()

    import yaml

    try:
        raw = config_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ThresholdsConfigError(f"Failed to read thresholds config '{config_path}': {exc}") from exc

    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise ThresholdsConfigError(f"Invalid YAML in thresholds config '{config_path}': {exc}") from exc

    if parsed is None:
        return AnalysisThresholds()
    if not isinstance(parsed, dict):
        raise ThresholdsConfigError(
            f"Invalid thresholds config '{config_path}': expected a top-level mapping."
        )
    return AnalysisThresholds.from_mapping(parsed)


def get_thresholds() -> AnalysisThresholds:
    """Load the configured thresholds once and cache them."""
    global _THRESHOLDS_CACHE

    if _THRESHOLDS_CACHE is not None:
        return _THRESHOLDS_CACHE

    from cvlens.core.config import settings

    _THRESHOLDS_CACHE = load_thresholds(settings.thresholds_path)
    return _THRESHOLDS_CACHE
