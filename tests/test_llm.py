from __future__ import annotations

import unittest

from pipeline import llm
from schemas.raccord import DecisionResult, VisionVerdict


class ExtractJsonObjectTests(unittest.TestCase):
    def test_plain_object(self):
        self.assertEqual(llm.extract_json_object('{"isValid": true}'), {"isValid": True})

    def test_fenced_object(self):
        raw = '```json\n{"isValid": false, "errors": []}\n```'
        self.assertEqual(llm.extract_json_object(raw), {"isValid": False, "errors": []})

    def test_prose_around_object(self):
        raw = 'Here is my verdict:\n{"action": "retry", "confidence": 0.8}\nHope this helps!'
        self.assertEqual(llm.extract_json_object(raw), {"action": "retry", "confidence": 0.8})

    def test_skips_broken_brace_before_valid_object(self):
        raw = 'Note {not json} then {"ok": 1}'
        self.assertEqual(llm.extract_json_object(raw), {"ok": 1})

    def test_trailing_comma_is_tolerated(self):
        self.assertEqual(llm.extract_json_object('{"a": [1, 2,],}'), {"a": [1, 2]})

    def test_no_object_returns_none(self):
        self.assertIsNone(llm.extract_json_object(""))
        self.assertIsNone(llm.extract_json_object(None))
        self.assertIsNone(llm.extract_json_object("I cannot help with that."))
        self.assertIsNone(llm.extract_json_object("[1, 2, 3]"))


class DecodeModelJsonTests(unittest.TestCase):
    def test_valid_verdict(self):
        verdict = llm.decode_model_json(
            '{"isValid": false, "errors": [{"type": "prop", "description": "cup missing"}], "score": 1.7}',
            VisionVerdict,
        )
        self.assertIsNotNone(verdict)
        self.assertFalse(verdict.is_valid)
        self.assertEqual(verdict.errors[0].type, "prop")
        self.assertEqual(verdict.score, 1.0)

    def test_missing_required_field_is_none(self):
        self.assertIsNone(llm.decode_model_json('{"errors": []}', VisionVerdict))

    def test_decision_defaults_and_clamping(self):
        decision = llm.decode_model_json('{"reason": "looks ok", "confidence": -3}', DecisionResult)
        self.assertEqual(decision.action, "try_once")
        self.assertEqual(decision.confidence, 0.0)

        defaults = llm.decode_model_json("{}", DecisionResult)
        self.assertEqual(defaults.action, "try_once")
        self.assertEqual(defaults.confidence, 0.5)

    def test_invalid_action_is_none(self):
        self.assertIsNone(llm.decode_model_json('{"action": "regenerate"}', DecisionResult))


class UsageTrackingTests(unittest.TestCase):
    def setUp(self):
        llm.reset_usage()
        self.addCleanup(llm.reset_usage)

    def test_longest_prefix_pricing(self):
        self.assertEqual(llm._get_pricing("gpt-4o-mini-2024-07-18"), llm.MODEL_PRICING["gpt-4o-mini"])
        self.assertEqual(llm._get_pricing("gpt-4o-2024-08-06"), llm.MODEL_PRICING["gpt-4o"])

    def test_unknown_model_uses_fallback(self):
        with self.assertLogs("pipeline.llm", level="WARNING"):
            self.assertEqual(llm._get_pricing("mystery-model"), llm._FALLBACK_PRICING)

    def test_summary_aggregates_by_stage(self):
        llm.record_usage("google", "gemini-2.5-flash", 1_000_000, 0, stage="raccord_validator")
        llm.record_usage("google", "gemini-2.5-flash", 0, 1_000_000, stage="raccord_validator")
        llm.record_usage("openai", "gpt-4o", 1000, 1000, stage="retry_decision")

        summary = llm.get_usage_summary()
        self.assertEqual(summary["calls"], 3)
        self.assertEqual(summary["total_input_tokens"], 1_001_000)
        self.assertEqual(summary["total_output_tokens"], 1_001_000)
        self.assertEqual(summary["by_stage"]["raccord_validator"]["calls"], 2)
        self.assertAlmostEqual(summary["by_stage"]["raccord_validator"]["cost"], 0.30 + 2.50)
        self.assertEqual(len(llm.get_usage_log()), 3)

        llm.reset_usage()
        self.assertEqual(llm.get_usage_summary()["calls"], 0)


if __name__ == "__main__":
    unittest.main()
