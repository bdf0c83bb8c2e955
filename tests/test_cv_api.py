import os
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("CVLENS_LLM_ENABLED", "0")
os.environ.setdefault("RATE_LIMIT_ENABLED", "0")

from fastapi.testclient import TestClient  # noqa: E402

import cvlens.services.cv_service as cv_service_module  # noqa: E402
from cvlens.core.session_store import CVSessionStore  # noqa: E402
from cvlens.main import app  # noqa: E402
from cvlens.services.cv_service import CVAnalysisService  # noqa: E402

CV_TEXT = """Jane Doe
jane@example.com

EXPERIENCE
Engineer
Acme Inc
Jan 2016 - Dec 2019
Worked on internal tools.

EDUCATION
BSc Computer Science
Aarhus University
2011 - 2014
"""


class CVApiTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.client = TestClient(app)

    def setUp(self):
        cv_service_module._service = CVAnalysisService(store=CVSessionStore(max_cvs=10), client=None)

    def analyze(self):
        response = self.client.post("/v1/cv/analyze-text", json={"text": CV_TEXT, "file_name": "jane.txt"})
        self.assertEqual(response.status_code, 200)
        return response.json()

    def test_health(self):
        response = self.client.get("/v1/health")
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "healthy")
        self.assertIn("llm_enabled", body)

    def test_analyze_text_contract(self):
        body = self.analyze()
        cv = body["cv"]
        self.assertTrue(cv["id"])
        self.assertEqual(cv["file_name"], "jane.txt")
        self.assertEqual(len(cv["sections"]), 3)
        self.assertIsInstance(body["observations"], list)
        self.assertGreaterEqual(len(body["observations"]), 1)
        first = body["observations"][0]
        for key in ("id", "section_id", "type", "confidence", "signal", "message", "status", "guided_edit"):
            self.assertIn(key, first)
        self.assertTrue(body["strengths"])

        fetched = self.client.get(f"/v1/cv/{cv['id']}")
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.json()["id"], cv["id"])

    def test_analyze_upload(self):
        response = self.client.post(
            "/v1/cv/analyze",
            files={"file": ("jane.txt", CV_TEXT.encode("utf-8"), "text/plain")},
            headers={"X-Language": "da"},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["cv"]["language"], "da")

    def test_upload_errors(self):
        response = self.client.post(
            "/v1/cv/analyze", files={"file": ("cv.doc", b"\xd0\xcf\x11\xe0", "application/msword")}
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/v1/cv/analyze", files={"file": ("cv.txt", b"too short", "text/plain")}
        )
        self.assertEqual(response.status_code, 400)

    def test_unknown_cv(self):
        self.assertEqual(self.client.get("/v1/cv/missing").status_code, 404)

    def test_respond_to_observation(self):
        body = self.analyze()
        cv_id = body["cv"]["id"]
        observation_id = body["observations"][0]["id"]
        url = f"/v1/cv/{cv_id}/observations/{observation_id}/respond"

        response = self.client.post(url, json={"response": "accepted"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["observation"]["status"], "accepted")

        self.assertEqual(self.client.post(url, json={"response": "declined"}).status_code, 409)
        self.assertEqual(self.client.post(url, json={"response": "maybe"}).status_code, 422)

    def test_rewrite_and_enhance(self):
        body = self.analyze()
        cv_id = body["cv"]["id"]
        section_id = body["observations"][0]["section_id"]

        rewrite = self.client.post(f"/v1/cv/{cv_id}/rewrite", json={"section_id": section_id})
        self.assertEqual(rewrite.status_code, 200)
        self.assertEqual(rewrite.json()["rewritten"], rewrite.json()["original"])

        enhance = self.client.post(
            f"/v1/cv/{cv_id}/sections/{section_id}/enhance",
            json={"user_input": "Shipped a billing service used by 3 teams"},
        )
        self.assertEqual(enhance.status_code, 200)
        self.assertIn("Shipped a billing service", enhance.json()["rewritten_content"])

        empty = self.client.post(f"/v1/cv/{cv_id}/sections/{section_id}/enhance", json={})
        self.assertEqual(empty.status_code, 400)

        missing = self.client.post(f"/v1/cv/{cv_id}/rewrite", json={"section_id": "nope"})
        self.assertEqual(missing.status_code, 404)


if __name__ == "__main__":
    unittest.main()
