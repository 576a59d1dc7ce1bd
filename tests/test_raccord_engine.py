from __future__ import annotations

import asyncio
import random
import unittest

from pipeline.image_data import ImageData
from pipeline.raccord_engine import RaccordEngine
from schemas.raccord import ProjectSnapshot, VisionCredentials

FRAME_A = ImageData(b"frame-a", "image/png")
FRAME_B = ImageData(b"frame-b", "image/png")


class _FakeProvider:
    name = "fake"

    def __init__(self, response: str):
        self.response = response
        self.calls: list[dict] = []

    async def generate(self, *, images, prompt, model_id, temperature, max_tokens, stage=""):
        self.calls.append({"images": list(images), "prompt": prompt, "stage": stage})
        return self.response


def _project(mannequin: bool = False) -> ProjectSnapshot:
    return ProjectSnapshot.model_validate({
        "scenes": [
            {"id": "s1", "groupId": "g1", "sceneNumber": "1", "productIds": [], "generatedImage": "one.png",
             "contextDescription": "The knight stands guard", "isKeyFrame": True},
            {"id": "s2", "groupId": "g1", "sceneNumber": "2", "productIds": ["sword"],
             "contextDescription": "The knight swings the sword", "cameraAngle": "wide"},
        ],
        "sceneGroups": [{"id": "g1", "name": "Castle"}],
        "products": [{"id": "sword", "name": "Sword"}],
        "mannequinMode": mannequin,
    })


class RaccordEngineTests(unittest.TestCase):
    def test_symbolic_operations_delegate(self):
        engine = RaccordEngine(_project(), locale="en", rng=random.Random(1))
        codes = [i.code for i in engine.analyze_raccord("s2")]
        self.assertEqual(codes, ["same_location", "prop_jump"])
        self.assertEqual(engine.classify_errors([{"type": "face", "description": ""}]).decision, "skip")
        self.assertIn(engine.suggest_next_shot("s2").recommendation.angle, {"close-up", "pov"})
        self.assertEqual(engine.find_reference("s2"), "one.png")

    def test_character_state_comes_from_previous_scene(self):
        engine = RaccordEngine(_project())
        self.assertEqual(
            engine.extract_character_state("s2"),
            "[CONTINUITY FROM PREVIOUS SCENE: standing. MAINTAIN these positions/elements in current frame.]",
        )
        self.assertIsNone(engine.extract_character_state("s1"))
        self.assertIsNone(engine.extract_character_state("missing"))

    def test_check_scene_without_images_skips_vision(self):
        provider = _FakeProvider('{"isValid": false, "errors": []}')
        engine = RaccordEngine(_project(), VisionCredentials(api_key="k"), provider=provider)
        report = asyncio.run(engine.check_scene("s2"))
        self.assertEqual(report.previous_scene_id, "s1")
        self.assertTrue(report.has_critical)
        self.assertIsNone(report.vision)
        self.assertEqual(provider.calls, [])

    def test_check_scene_runs_vision_with_mannequin_flag_from_project(self):
        provider = _FakeProvider(
            '{"isValid": false, "errors": [{"type": "prop", "description": "Sword not visible"}]}'
        )
        engine = RaccordEngine(_project(mannequin=True), VisionCredentials(api_key="k"), provider=provider)
        report = asyncio.run(engine.check_scene("s2", current_image=FRAME_B, prev_image=FRAME_A))
        self.assertEqual(report.vision.decision, "retry")
        self.assertEqual(provider.calls[0]["images"], [FRAME_A, FRAME_B])
        self.assertIn("MANNEQUIN", provider.calls[0]["prompt"])

    def test_first_scene_report_is_empty(self):
        engine = RaccordEngine(_project(), "")
        report = asyncio.run(engine.check_scene("s1", current_image=FRAME_A, prev_image=FRAME_B))
        self.assertIsNone(report.previous_scene_id)
        self.assertEqual(report.insights, [])
        self.assertIsNone(report.vision)

    def test_concurrent_checks_are_independent(self):
        provider = _FakeProvider('{"isValid": true, "errors": []}')
        engine = RaccordEngine(_project(), VisionCredentials(api_key="k"), provider=provider)

        async def run_both():
            return await asyncio.gather(
                engine.check_scene("s2", current_image=FRAME_B, prev_image=FRAME_A),
                engine.make_retry_decision(FRAME_B, FRAME_A, "knight", [{"type": "identity", "description": ""}]),
            )

        report, decision = asyncio.run(run_both())
        self.assertTrue(report.vision.is_valid)
        self.assertEqual(decision.action, "skip")
        self.assertEqual(len(provider.calls), 1)


if __name__ == "__main__":
    unittest.main()
