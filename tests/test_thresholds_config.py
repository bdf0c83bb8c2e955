import sys
import tempfile
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cvlens.core.config.thresholds import (  # noqa: E402
    AnalysisThresholds,
    ThresholdsConfigError,
    get_thresholds,
    load_thresholds,
)


class ThresholdsConfigTests(unittest.TestCase):
    def test_default_file_loads(self):
        thresholds = get_thresholds()
        self.assertIsInstance(thresholds, AnalysisThresholds)
        self.assertEqual(thresholds.confidence.max_observations, 8)
        self.assertEqual(thresholds.density.sparse_below, 4)
        self.assertEqual(thresholds.confidence.parse_damping["low"], 0.6)

    def test_overrides_merge_onto_defaults(self):
        thresholds = AnalysisThresholds.from_mapping(
            {"density": {"sparse_below": 3}, "structural": {"base_confidence": {"low": 0.4}}}
        )
        self.assertEqual(thresholds.density.sparse_below, 3)
        self.assertEqual(thresholds.density.dense_above, 25.0)
        self.assertEqual(thresholds.structural.base_confidence["low"], 0.4)
        self.assertEqual(thresholds.structural.base_confidence["high"], 0.85)

    def test_pattern_overrides_are_compiled(self):
        thresholds = AnalysisThresholds.from_mapping(
            {"segmenter": {"section_headers": {"skill": r"^(?:stack)\b"}}}
        )
        self.assertTrue(thresholds.segmenter.section_headers["skill"].match("Stack"))
        self.assertTrue(thresholds.segmenter.section_headers["job"].match("Experience"))

    def test_unknown_keys_are_rejected(self):
        with self.assertRaises(ThresholdsConfigError):
            AnalysisThresholds.from_mapping({"density": {"nope": 1}})
        with self.assertRaises(ThresholdsConfigError):
            AnalysisThresholds.from_mapping({"nope": {}})

    def test_damping_by_parse_confidence(self):
        thresholds = AnalysisThresholds()
        self.assertAlmostEqual(thresholds.damp(0.8, "low"), 0.48)
        self.assertAlmostEqual(thresholds.damp(0.8, "medium"), 0.64)
        self.assertAlmostEqual(thresholds.damp(0.8, "high"), 0.8)

    def test_explicit_missing_path_raises(self):
        with self.assertRaises(ThresholdsConfigError):
            load_thresholds("/nonexistent/thresholds.yaml")

    def test_invalid_yaml_raises(self):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "thresholds.yaml"
            path.write_text("density: [unclosed", encoding="utf-8")
            with self.assertRaises(ThresholdsConfigError):
                load_thresholds(path)


if __name__ == "__main__":
    unittest.main()
