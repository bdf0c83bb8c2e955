import asyncio
import json
import sys
import unittest
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from cvlens.ai.types import LLMResponse, LLMUnavailableError  # noqa: E402
from cvlens.schemas.cv import CVSection, RawObservation, StrengthSignal  # noqa: E402
from cvlens.services.phrasing import (  # noqa: E402
    DEFAULT_STRENGTH,
    FallbackPhrasingService,
    LLMPhrasingService,
    TemplatePhrasingService,
    build_phrasing_service,
    sentence_starters,
)


def raw(signal, **context):
    return RawObservation(section_id="s1", type="density", signal=signal, confidence=0.8, context=context)


SECTION = CVSection(id="s1", type="job", title="Engineer", organization="Acme", duration=24, content="Built APIs.")


class ScriptedClient:
    def __init__(self, text="", error=None, delay=0.0):
        self.text = text
        self.error = error
        self.delay = delay
        self.calls = 0

    async def complete(self, messages, *, json_mode=False, temperature=0.2, max_tokens=None):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return LLMResponse(self.text)


class TemplatePhrasingTests(unittest.IsolatedAsyncioTestCase):
    async def test_observation_mentions_section_and_duration(self):
        service = TemplatePhrasingService()
        message = await service.phrase_observation(raw("sparse_density", section_title="Engineer", duration_months=24))
        self.assertEqual(message, '"Engineer" covers 2 years of work but is carried by only a few lines.')

    async def test_gap_message(self):
        service = TemplatePhrasingService()
        message = await service.phrase_observation(raw("large_gap", section_title="Engineer", gap_months=9))
        self.assertEqual(message, 'The timeline shows a gap of about 9 months before "Engineer".')

    async def test_unknown_signal_without_title(self):
        service = TemplatePhrasingService()
        message = await service.phrase_observation(raw("something_new"))
        self.assertEqual(message, "This section could be represented more fully.")

    async def test_rewrite_and_enhance(self):
        service = TemplatePhrasingService()
        self.assertEqual(await service.rewrite_section(SECTION), "Built APIs.")
        self.assertEqual(await service.enhance_section(SECTION, "Led a team of 4."), "Built APIs.\nLed a team of 4.")

    async def test_strengths_default_and_cap(self):
        service = TemplatePhrasingService()
        self.assertEqual(await service.phrase_strengths([], []), [DEFAULT_STRENGTH])
        signals = [
            StrengthSignal(signal=name, confidence=0.8)
            for name in ("consistent_progression", "metrics_present", "recent_activity", "balanced_density")
        ]
        self.assertEqual(len(await service.phrase_strengths(signals, [])), 3)

    def test_sentence_starters_have_defaults(self):
        self.assertEqual(len(sentence_starters("missing_metrics")), 4)
        self.assertEqual(len(sentence_starters("large_gap")), 2)


class LLMPhrasingTests(unittest.IsolatedAsyncioTestCase):
    async def test_claim_blocks_are_capped(self):
        claims = [f"Claim number {index}" for index in range(8)]
        client = ScriptedClient(text=json.dumps({"claims": claims}))
        blocks = await LLMPhrasingService(client).generate_claim_blocks(SECTION, "sparse_density")
        self.assertEqual(blocks, claims[:6])

    async def test_strength_paragraphs_are_split(self):
        client = ScriptedClient(text="First strength.\n\nSecond strength.")
        paragraphs = await LLMPhrasingService(client).phrase_strengths(
            [StrengthSignal(signal="metrics_present", confidence=0.85)], ["Engineer: Built APIs..."]
        )
        self.assertEqual(paragraphs, ["First strength.", "Second strength."])


class FallbackPhrasingTests(unittest.IsolatedAsyncioTestCase):
    async def test_failure_falls_back_to_templates(self):
        client = ScriptedClient(error=LLMUnavailableError("down"))
        service = FallbackPhrasingService(LLMPhrasingService(client), timeout_s=1.0)
        message = await service.phrase_observation(raw("missing_tools", section_title="Engineer"))
        self.assertEqual(message, 'The technical specifics behind "Engineer" are not visible.')
        self.assertEqual(client.calls, 1)

    async def test_timeout_falls_back_to_templates(self):
        client = ScriptedClient(text="too late", delay=0.5)
        service = FallbackPhrasingService(LLMPhrasingService(client), timeout_s=0.01)
        self.assertEqual(await service.rewrite_section(SECTION), "Built APIs.")

    async def test_invalid_claims_fall_back_to_empty(self):
        client = ScriptedClient(text="not json")
        service = FallbackPhrasingService(LLMPhrasingService(client), timeout_s=1.0)
        self.assertEqual(await service.generate_claim_blocks(SECTION, "missing_metrics"), [])

    async def test_llm_answer_is_used_when_it_arrives(self):
        client = ScriptedClient(text="A sharper version.")
        service = build_phrasing_service(client, timeout_s=1.0)
        self.assertEqual(await service.rewrite_section(SECTION), "A sharper version.")

    def test_no_client_means_templates(self):
        self.assertIsInstance(build_phrasing_service(None, timeout_s=1.0), TemplatePhrasingService)


if __name__ == "__main__":
    unittest.main()
