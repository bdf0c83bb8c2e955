"""Heuristic CV segmentation.

Two strategies feed one result:

1. Header-based: chunks of text are classified by their first line against
   the section header table (Experience, Education, Skills, ...).
2. Pattern-based job detection: when no job section was found, job entries
   are located by company-suffix lines and job-title lines followed by a
   date range.

The two are reconciled by ``merge_sections`` and every section gets a
deterministic id.
"""

from __future__ import annotations

import hashlib
import logging
import re
from datetime import datetime
from functools import partial
from typing import Callable, Sequence

from cvlens.core.config.thresholds import AnalysisThresholds, SegmenterThresholds, get_thresholds
from cvlens.engine.dates import Clock, extract_date_range, is_date_line, months_between, utc_now
from cvlens.schemas.cv import CVSection, ParseConfidence, ParseResult, SectionType

logger = logging.getLogger(__name__)

OverlapPredicate = Callable[[CVSection, CVSection], bool]

_ENTRY_TYPES = {"job", "project", "education"}
_BULLET_RE = re.compile(r"^\s*(?:[-*•◦▪●■◆►–—·]|\d+[.)])\s+")
_SENTENCE_END_RE = re.compile(r"[.!?;]$")
_WHITESPACE_RE = re.compile(r"\s+")

FALLBACK_SECTION_TITLE = "CV Content"
FALLBACK_WARNING = "Using fallback parser - CV structure could not be determined"


def normalize_text(raw_text: str) -> str:
    text = (raw_text or "").replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t ]+\n", "\n", text)
    return re.sub(r"\n{3,}", "\n\n", text)


def visible_length(text: str | None) -> int:
    return len(_WHITESPACE_RE.sub("", text or ""))


def _is_caps_header(line: str, cfg: SegmenterThresholds) -> bool:
    letters = [char for char in line if char.isalpha()]
    if len(letters) < 3 or len(line.split()) > cfg.header_max_words:
        return False
    return all(char.isupper() for char in letters)


def split_into_chunks(text: str, cfg: SegmenterThresholds) -> list[list[str]]:
    """Split on blank lines and in front of ALL-CAPS header lines."""
    chunks: list[list[str]] = []
    current: list[str] = []
    for line in text.split("\n"):
        stripped = line.strip()
        if not stripped:
            if current:
                chunks.append(current)
                current = []
            continue
        if current and _is_caps_header(stripped, cfg):
            chunks.append(current)
            current = []
        current.append(stripped)
    if current:
        chunks.append(current)
    return chunks


def detect_section_type(first_line: str, cfg: SegmenterThresholds) -> SectionType | None:
    candidate = first_line.strip().rstrip(":").strip()
    if not candidate or len(candidate.split()) > cfg.header_max_words:
        return None
    for section_type, pattern in cfg.section_headers.items():
        if section_type == "other":
            continue
        if pattern.match(candidate):
            return section_type  # type: ignore[return-value]
    return None


def _matches_any(line: str, patterns: Sequence[re.Pattern[str]]) -> bool:
    return any(pattern.search(line) for pattern in patterns)


def _looks_like_organization(line: str, next_line: str | None, cfg: SegmenterThresholds) -> bool:
    if len(line) > cfg.organization_max_chars or _BULLET_RE.match(line):
        return False
    if _SENTENCE_END_RE.search(line):
        return False
    if _matches_any(line, cfg.company_patterns):
        return True
    return next_line is not None and is_date_line(next_line)


def split_entry_header(
    lines: Sequence[str], cfg: SegmenterThresholds
) -> tuple[str, str | None, list[str]]:
    """Split a role entry into ``(title, organization, body_lines)``.

    The first line is the title; up to two following lines are consumed as
    the organization and/or a standalone date line.
    """
    remaining = list(lines)
    while remaining and is_date_line(remaining[0]):
        remaining.pop(0)
    if not remaining:
        return (lines[0] if lines else ""), None, []

    title = remaining[0]
    organization: str | None = None
    index = 1
    while index < len(remaining) and index <= 2:
        line = remaining[index]
        next_line = remaining[index + 1] if index + 1 < len(remaining) else None
        if is_date_line(line):
            index += 1
            continue
        if organization is None and _looks_like_organization(line, next_line, cfg):
            organization = line
            index += 1
            continue
        break
    return title, organization, remaining[index:]


def _clip_title(title: str, cfg: SegmenterThresholds) -> str:
    return title.strip()[: cfg.title_max_chars]


def _duration(start: datetime | None, end: datetime | None) -> int | None:
    if start is None or end is None:
        return None
    return months_between(start, end)


def _section_text(section: CVSection) -> str:
    return "\n".join(part for part in (section.title, section.organization or "", section.content) if part)


def build_header_section(
    section_type: SectionType,
    lines: Sequence[str],
    *,
    opened_on_header: bool,
    thresholds: AnalysisThresholds,
    now: datetime,
    warnings: list[str],
    provisional_id: str = "",
) -> CVSection | None:
    """Turn the accumulated lines of one header-based section into a ``CVSection``."""
    cfg = thresholds.segmenter
    lines = [line for line in lines if line.strip()]
    if not lines:
        return None

    organization: str | None = None
    if opened_on_header and section_type in _ENTRY_TYPES:
        heading, body = lines[0], lines[1:]
        if body:
            title, organization, content_lines = split_entry_header(body, cfg)
        else:
            title, content_lines = heading, []
    else:
        title, content_lines = lines[0], lines[1:]

    start, end = extract_date_range("\n".join(lines), now=now)

    parse_confidence: ParseConfidence = "high"
    if section_type == "other":
        parse_confidence = "low"
        warnings.append(f'Could not classify section: "{title[:50]}..."')
    elif section_type == "job" and start is None:
        parse_confidence = "medium"
        warnings.append(f'No dates found for job section: "{title}"')

    return CVSection(
        id=provisional_id,
        type=section_type,
        title=_clip_title(title, cfg),
        organization=organization,
        start_date=start,
        end_date=end,
        duration=_duration(start, end),
        content="\n".join(content_lines).strip(),
        parse_confidence=parse_confidence,
    )


def parse_with_headers(
    text: str,
    *,
    thresholds: AnalysisThresholds,
    now: datetime,
    warnings: list[str],
) -> list[tuple[CVSection, str]]:
    """Strategy A. Returns ``(section, source_text)`` pairs in document order."""
    cfg = thresholds.segmenter
    results: list[tuple[CVSection, str]] = []

    current_type: SectionType = "other"
    current_lines: list[str] = []
    opened_on_header = False

    def flush() -> None:
        if not current_lines:
            return
        section = build_header_section(
            current_type,
            current_lines,
            opened_on_header=opened_on_header,
            thresholds=thresholds,
            now=now,
            warnings=warnings,
            provisional_id=f"h{len(results)}",
        )
        if section is not None:
            results.append((section, "\n".join(current_lines)))

    for chunk in split_into_chunks(text, cfg):
        detected = detect_section_type(chunk[0], cfg)
        if detected is not None:
            flush()
            current_type = detected
            current_lines = list(chunk)
            opened_on_header = True
        else:
            current_lines.extend(chunk)
    flush()
    return results


def build_job_section(
    lines: Sequence[str],
    *,
    organization: str | None,
    thresholds: AnalysisThresholds,
    now: datetime,
    provisional_id: str = "",
) -> CVSection:
    cfg = thresholds.segmenter
    block_text = "\n".join(lines)
    title, parsed_org, body = split_entry_header(lines, cfg)
    start, end = extract_date_range(block_text, now=now)
    return CVSection(
        id=provisional_id,
        type="job",
        title=_clip_title(title, cfg),
        organization=organization or parsed_org,
        start_date=start,
        end_date=end,
        duration=_duration(start, end),
        content="\n".join(body).strip(),
        parse_confidence="high" if start is not None else "medium",
    )


def _previous_content_line(lines: Sequence[str], index: int, *, floor: int) -> int | None:
    for candidate in range(index - 1, floor, -1):
        if lines[candidate].strip():
            return candidate
    return None


def detect_job_blocks(
    text: str,
    *,
    thresholds: AnalysisThresholds,
    now: datetime,
) -> list[tuple[CVSection, str]]:
    """Strategy B: find job entries in documents without explicit headers."""
    cfg = thresholds.segmenter
    lines = text.split("\n")
    results: list[tuple[CVSection, str]] = []

    block_start: int | None = None
    block_org: str | None = None

    def close(end_index: int) -> None:
        if block_start is None:
            return
        block_lines = [line.strip() for line in lines[block_start:end_index] if line.strip()]
        block_text = "\n".join(block_lines)
        if len(block_text) <= cfg.min_block_chars:
            logger.debug("job_block_discarded start=%d chars=%d", block_start, len(block_text))
            return
        section = build_job_section(
            block_lines,
            organization=block_org,
            thresholds=thresholds,
            now=now,
            provisional_id=f"p{len(results)}",
        )
        results.append((section, block_text))

    for index, raw_line in enumerate(lines):
        line = raw_line.strip()
        if not line:
            continue

        is_company = _matches_any(line, cfg.company_patterns)
        is_title = _matches_any(line, cfg.job_title_patterns)
        has_nearby_dates = False
        if is_title:
            window = lines[index : index + cfg.date_lookahead_lines]
            has_nearby_dates = any(extract_date_range(candidate, now=now)[0] for candidate in window)

        if block_start is None:
            if is_company or (is_title and has_nearby_dates):
                block_start = index
                block_org = line if is_company else None
            continue

        offset = index - block_start
        if is_company and block_org is None and offset <= 2:
            # Company line right under the title belongs to the open entry.
            block_org = line
            continue
        if is_company or (is_title and has_nearby_dates and offset > cfg.block_restart_lines):
            restart = index
            if is_company:
                # A title line directly above the company opens the new entry.
                previous = _previous_content_line(lines, index, floor=block_start)
                if previous is not None and _matches_any(lines[previous].strip(), cfg.job_title_patterns):
                    restart = previous
            close(restart)
            block_start = restart
            block_org = line if is_company else None

    close(len(lines))
    return results


def _text_lines(section: CVSection) -> set[str]:
    return {line.strip().lower() for line in _section_text(section).split("\n") if line.strip()}


def default_overlap(a: CVSection, b: CVSection, *, title_prefix: int = 30) -> bool:
    """True when either section's title is a line of the other's text, or both titles start alike."""
    a_title, b_title = a.title.strip().lower(), b.title.strip().lower()
    if a_title and a_title in _text_lines(b):
        return True
    if b_title and b_title in _text_lines(a):
        return True
    head = b_title[:title_prefix]
    return bool(head) and a_title.startswith(head)


def merge_sections(
    header_sections: Sequence[CVSection],
    pattern_sections: Sequence[CVSection],
    *,
    overlaps: OverlapPredicate = default_overlap,
) -> list[CVSection]:
    """Prefer pattern-detected jobs over unclassified header sections that cover the same text."""
    result: list[CVSection] = []
    used: list[CVSection] = []
    for header in header_sections:
        replacement = None
        if header.type == "other":
            replacement = next(
                (
                    candidate
                    for candidate in pattern_sections
                    if not any(candidate is taken for taken in used) and overlaps(header, candidate)
                ),
                None,
            )
        if replacement is not None:
            used.append(replacement)
            result.append(replacement)
        else:
            result.append(header)

    for candidate in pattern_sections:
        if any(candidate is existing for existing in result):
            continue
        if not any(overlaps(existing, candidate) for existing in result):
            result.append(candidate)
    return result


def assign_section_ids(sections: Sequence[CVSection]) -> list[CVSection]:
    """Stable ids: position plus a digest of the section's text."""
    assigned: list[CVSection] = []
    for index, section in enumerate(sections):
        seed = "\x1f".join((section.type, section.title, section.content))
        digest = hashlib.sha256(seed.encode("utf-8", errors="ignore")).hexdigest()[:8]
        assigned.append(section.model_copy(update={"id": f"section-{index}-{digest}"}))
    return assigned


def confidence_from_ratio(ratio: float, thresholds: AnalysisThresholds) -> ParseConfidence:
    if ratio < thresholds.parse.low_parsed_ratio:
        return "low"
    if ratio < thresholds.parse.medium_parsed_ratio:
        return "medium"
    return "high"


def parsed_ratio(parsed_chars: int, raw_text: str) -> float:
    total = visible_length(raw_text)
    if total == 0:
        return 0.0
    return min(1.0, parsed_chars / total)


def is_usable(result: ParseResult, thresholds: AnalysisThresholds | None = None) -> bool:
    """Lenient policy: empty results fail, low confidence fails only with fewer than 2 sections."""
    thresholds = thresholds or get_thresholds()
    if not result.sections:
        return False
    if result.overall_confidence == "low" and len(result.sections) < thresholds.parse.min_usable_sections:
        return False
    return True


def fallback_parse_result(raw_text: str, warnings: list[str]) -> ParseResult:
    """Wrap the whole document in one unclassified section."""
    warnings.append(FALLBACK_WARNING)
    section = CVSection(
        id="",
        type="other",
        title=FALLBACK_SECTION_TITLE,
        content=raw_text or "",
        parse_confidence="low",
    )
    return ParseResult(
        sections=assign_section_ids([section]),
        unparsed_content=[raw_text] if raw_text else [],
        warnings=warnings,
        overall_confidence="low",
        raw_text=raw_text or "",
        strategy="fallback",
    )


def segment_text(
    raw_text: str,
    *,
    thresholds: AnalysisThresholds | None = None,
    clock: Clock = utc_now,
) -> ParseResult:
    """Segment raw CV text with the header strategy, falling back to job patterns."""
    thresholds = thresholds or get_thresholds()
    now = clock()
    warnings: list[str] = []
    text = normalize_text(raw_text)

    header_pairs = parse_with_headers(text, thresholds=thresholds, now=now, warnings=warnings)
    sources = {section.id: source for section, source in header_pairs}
    sections = [section for section, _ in header_pairs]
    strategy = "header"

    if not any(section.type == "job" for section in sections):
        pattern_pairs = detect_job_blocks(text, thresholds=thresholds, now=now)
        if pattern_pairs:
            sources.update({section.id: source for section, source in pattern_pairs})
            overlaps = partial(default_overlap, title_prefix=thresholds.segmenter.overlap_title_prefix)
            sections = merge_sections(
                sections,
                [section for section, _ in pattern_pairs],
                overlaps=overlaps,
            )
            strategy = "pattern"
            logger.info("pattern_jobs_detected count=%d", len(pattern_pairs))

    if not sections:
        return fallback_parse_result(text, warnings)

    parsed_chars = 0
    unparsed: list[str] = []
    for section in sections:
        source = sources.get(section.id, _section_text(section))
        if section.type == "other":
            unparsed.append(source)
        else:
            parsed_chars += visible_length(source)

    ratio = parsed_ratio(parsed_chars, text)
    overall = confidence_from_ratio(ratio, thresholds)
    if overall == "low":
        warnings.append(f"{round((1 - ratio) * 100)}% of content could not be parsed into sections")

    return ParseResult(
        sections=assign_section_ids(sections),
        unparsed_content=unparsed,
        warnings=warnings,
        overall_confidence=overall,
        raw_text=text,
        strategy=strategy,
    )
