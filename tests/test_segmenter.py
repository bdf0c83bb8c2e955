import sys
import unittest
from datetime import datetime, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cvlens.core.config.thresholds import AnalysisThresholds  # noqa: E402
from cvlens.engine.dates import months_between  # noqa: E402
from cvlens.engine.segmenter import (  # noqa: E402
    FALLBACK_SECTION_TITLE,
    default_overlap,
    fallback_parse_result,
    is_usable,
    merge_sections,
    segment_text,
)
from cvlens.schemas.cv import CVSection, ParseResult  # noqa: E402

NOW = datetime(2024, 6, 15, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


HEADER_CV = """Jane Doe
jane@example.com

SUMMARY
Backend engineer focused on payments.

EXPERIENCE
Senior Engineer
Acme Inc
Jan 2021 - Present
Led a team of 5 engineers building payment APIs in Python.

EDUCATION
MSc Computer Science
University of Copenhagen
2014 - 2016

SKILLS
Python, PostgreSQL, Kafka, Docker
"""

HEADERLESS_CV = """Jane Doe
jane@example.com

Senior Developer
Acme ApS
2018 - 2021
Built payment services in Python and reduced latency by 30% for 2 million users.

Developer
Nordic Software A/S
2015 - 2018
Maintained internal tools and web applications for the sales team across Denmark."""


def make_section(section_id, section_type="job", title="Engineer", content="Did work", **kwargs):
    return CVSection(id=section_id, type=section_type, title=title, content=content, **kwargs)


class HeaderSegmentationTests(unittest.TestCase):
    def test_single_experience_entry(self):
        text = "EXPERIENCE\nSenior Engineer\nAcme Inc\nJan 2020 - Dec 2020\nBuilt things."
        result = segment_text(text, clock=fixed_clock)

        self.assertEqual(result.strategy, "header")
        self.assertEqual(len(result.sections), 1)
        section = result.sections[0]
        self.assertEqual(section.type, "job")
        self.assertEqual(section.title, "Senior Engineer")
        self.assertEqual(section.organization, "Acme Inc")
        self.assertEqual(section.content, "Built things.")
        self.assertEqual(section.word_count, 2)
        self.assertEqual(section.duration, 11)
        self.assertEqual(section.parse_confidence, "high")
        self.assertEqual(result.overall_confidence, "high")

    def test_ongoing_role_ends_at_clock(self):
        text = "EXPERIENCE\nEngineer\nJan 2020 - Present\nDid work."
        section = segment_text(text, clock=fixed_clock).sections[0]
        self.assertEqual(section.end_date, NOW)
        self.assertEqual(section.duration, 53)
        self.assertEqual(section.content, "Did work.")

    def test_full_cv_sections_in_document_order(self):
        result = segment_text(HEADER_CV, clock=fixed_clock)

        self.assertEqual([s.type for s in result.sections], ["other", "summary", "job", "education", "skill"])
        job = result.sections[2]
        self.assertEqual((job.title, job.organization), ("Senior Engineer", "Acme Inc"))
        education = result.sections[3]
        self.assertEqual(education.organization, "University of Copenhagen")
        self.assertEqual(education.duration, 24)
        self.assertEqual(result.overall_confidence, "high")
        self.assertEqual(result.unparsed_content, ["Jane Doe\njane@example.com"])
        self.assertTrue(any("Could not classify section" in warning for warning in result.warnings))

    def test_job_without_dates_is_medium(self):
        text = "EXPERIENCE\nEngineer\nAcme Inc\nBuilt internal tools for the finance department."
        result = segment_text(text, clock=fixed_clock)
        section = result.sections[0]
        self.assertEqual(section.parse_confidence, "medium")
        self.assertIsNone(section.duration)
        self.assertIn('No dates found for job section: "Engineer"', result.warnings)

    def test_duration_matches_dates(self):
        for section in segment_text(HEADER_CV, clock=fixed_clock).sections:
            if section.start_date and section.end_date:
                self.assertGreaterEqual(section.duration, 1)
                self.assertEqual(section.duration, months_between(section.start_date, section.end_date))
            else:
                self.assertIsNone(section.duration)

    def test_repeat_runs_are_identical(self):
        first = segment_text(HEADER_CV, clock=fixed_clock)
        second = segment_text(HEADER_CV, clock=fixed_clock)
        self.assertEqual(first, second)
        self.assertTrue(all(section.id.startswith("section-") for section in first.sections))
        self.assertEqual(len({section.id for section in first.sections}), len(first.sections))

    def test_crlf_input_matches_lf(self):
        crlf = HEADER_CV.replace("\n", "\r\n")
        self.assertEqual(
            segment_text(crlf, clock=fixed_clock).sections,
            segment_text(HEADER_CV, clock=fixed_clock).sections,
        )


class PatternSegmentationTests(unittest.TestCase):
    def test_jobs_found_without_headers(self):
        result = segment_text(HEADERLESS_CV, clock=fixed_clock)

        self.assertEqual(result.strategy, "pattern")
        self.assertEqual([s.title for s in result.sections], ["Senior Developer", "Developer"])
        self.assertEqual(
            [s.organization for s in result.sections], ["Acme ApS", "Nordic Software A/S"]
        )
        self.assertEqual([s.duration for s in result.sections], [36, 36])
        self.assertTrue(result.sections[0].content.startswith("Built payment services"))
        self.assertEqual(result.overall_confidence, "high")

    def test_unstructured_text_is_low_confidence(self):
        text = (
            "I enjoy hiking and reading books about history and science.\n"
            "Sometimes I volunteer at the local library on weekends.\n"
            "My neighbours say I make excellent coffee."
        )
        result = segment_text(text, clock=fixed_clock)
        self.assertEqual(result.overall_confidence, "low")
        self.assertEqual([s.type for s in result.sections], ["other"])
        self.assertTrue(any("could not be parsed into sections" in warning for warning in result.warnings))
        self.assertFalse(is_usable(result))


class MergeTests(unittest.TestCase):
    def setUp(self):
        self.intro = make_section("h0", "other", title="Intro", content="Senior Developer\nAcme ApS")
        self.first = make_section("p0", title="Senior Developer", organization="Acme ApS")
        self.second = make_section("p1", title="Developer", organization="Nordic Software A/S")

    def test_unclassified_section_replaced_by_overlapping_job(self):
        merged = merge_sections([self.intro], [self.first, self.second])
        self.assertEqual([s.id for s in merged], ["p0", "p1"])

    def test_inputs_are_not_mutated(self):
        header, pattern = [self.intro], [self.first, self.second]
        merge_sections(header, pattern, overlaps=lambda a, b: True)
        self.assertEqual([s.id for s in header], ["h0"])
        self.assertEqual([s.id for s in pattern], ["p0", "p1"])

    def test_predicate_is_injectable(self):
        merged = merge_sections([self.intro], [self.first, self.second], overlaps=lambda a, b: False)
        self.assertEqual([s.id for s in merged], ["h0", "p0", "p1"])

        merged = merge_sections([self.intro], [self.first, self.second], overlaps=lambda a, b: True)
        self.assertEqual([s.id for s in merged], ["p0"])

    def test_classified_header_sections_are_kept(self):
        education = make_section("h1", "education", title="BSc", content="University")
        merged = merge_sections([education], [self.first], overlaps=lambda a, b: True)
        self.assertEqual([s.id for s in merged], ["h1"])

    def test_default_overlap_compares_whole_lines(self):
        self.assertTrue(default_overlap(self.intro, self.first))
        self.assertFalse(default_overlap(self.first, self.second))


class UsabilityTests(unittest.TestCase):
    def test_policy(self):
        one_low = ParseResult(sections=[make_section("a")], overall_confidence="low")
        two_low = ParseResult(sections=[make_section("a"), make_section("b")], overall_confidence="low")
        one_medium = ParseResult(sections=[make_section("a")], overall_confidence="medium")

        self.assertFalse(is_usable(ParseResult()))
        self.assertFalse(is_usable(one_low))
        self.assertTrue(is_usable(two_low))
        self.assertTrue(is_usable(one_medium))

    def test_threshold_is_configurable(self):
        strict = AnalysisThresholds.from_mapping({"parse": {"min_usable_sections": 3}})
        two_low = ParseResult(sections=[make_section("a"), make_section("b")], overall_confidence="low")
        self.assertFalse(is_usable(two_low, strict))

    def test_fallback_wraps_whole_text(self):
        warnings = ["earlier"]
        result = fallback_parse_result("some text", warnings)
        self.assertEqual(result.strategy, "fallback")
        self.assertEqual(result.overall_confidence, "low")
        self.assertEqual(len(result.sections), 1)
        self.assertEqual(result.sections[0].title, FALLBACK_SECTION_TITLE)
        self.assertEqual(result.sections[0].content, "some text")
        self.assertEqual(result.warnings[0], "earlier")
        self.assertIn("Using fallback parser", result.warnings[-1])


if __name__ == "__main__":
    unittest.main()
