import sys
import threading
import unittest
from datetime import datetime, timezone
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cvlens.core.errors import (  # noqa: E402
    CVNotFoundError,
    InvalidStatusTransitionError,
    ObservationNotFoundError,
    SectionNotFoundError,
)
from cvlens.core.session_store import CVSessionStore  # noqa: E402
from cvlens.schemas.cv import CV, CVSection, Observation  # noqa: E402


def make_cv(cv_id="cv-1"):
    return CV(
        id=cv_id,
        uploaded_at=datetime(2024, 6, 15, tzinfo=timezone.utc),
        file_name="cv.txt",
        raw_text="text",
        sections=[CVSection(id="section-0", type="job", title="Engineer", content="Built APIs.")],
        observations=[
            Observation(
                id="obs-1",
                section_id="section-0",
                type="structural",
                confidence=0.8,
                signal="missing_metrics",
                message="Message",
            )
        ],
    )


class SessionStoreTests(unittest.TestCase):
    def setUp(self):
        self.store = CVSessionStore(max_cvs=2)
        self.store.store(make_cv())

    def test_get_and_missing(self):
        self.assertEqual(self.store.get("cv-1").file_name, "cv.txt")
        self.assertEqual(self.store.get_section("cv-1", "section-0").title, "Engineer")
        with self.assertRaises(CVNotFoundError):
            self.store.get("nope")
        with self.assertRaises(SectionNotFoundError):
            self.store.get_section("cv-1", "nope")

    def test_oldest_cv_is_evicted(self):
        self.store.store(make_cv("cv-2"))
        self.store.store(make_cv("cv-3"))
        self.assertEqual(self.store.list_ids(), ["cv-2", "cv-3"])
        self.assertEqual(len(self.store), 2)

    def test_status_update(self):
        updated = self.store.update_observation("cv-1", "obs-1", "accepted")
        self.assertEqual(updated.status, "accepted")
        self.assertEqual(self.store.get("cv-1").observations[0].status, "accepted")

    def test_terminal_status_is_final(self):
        self.store.update_observation("cv-1", "obs-1", "declined")
        self.assertEqual(self.store.update_observation("cv-1", "obs-1", "declined").status, "declined")
        with self.assertRaises(InvalidStatusTransitionError):
            self.store.update_observation("cv-1", "obs-1", "accepted")

    def test_unknown_observation(self):
        with self.assertRaises(ObservationNotFoundError):
            self.store.update_observation("cv-1", "obs-x", "locked")
        with self.assertRaises(CVNotFoundError):
            self.store.update_observation("cv-x", "obs-1", "locked")

    def test_concurrent_terminal_updates_settle_on_one_status(self):
        requested = ["accepted", "declined"] * 8
        barrier = threading.Barrier(len(requested))
        outcomes = []
        outcomes_lock = threading.Lock()

        def update(status):
            barrier.wait()
            try:
                result = self.store.update_observation("cv-1", "obs-1", status).status
            except InvalidStatusTransitionError:
                result = None
            with outcomes_lock:
                outcomes.append((status, result))

        threads = [threading.Thread(target=update, args=(status,)) for status in requested]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        final = self.store.get("cv-1").observations[0].status
        self.assertIn(final, ("accepted", "declined"))
        self.assertEqual(len(outcomes), len(requested))
        for status, result in outcomes:
            if status == final:
                self.assertEqual(result, final)
            else:
                self.assertIsNone(result)


if __name__ == "__main__":
    unittest.main()
