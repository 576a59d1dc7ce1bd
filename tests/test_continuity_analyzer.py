from __future__ import annotations

import unittest

from pipeline.continuity_analyzer import ContinuityAnalyzer, analyze_raccord, extract_character_state
from pipeline.dop_vocabulary import DEFAULT_VOCABULARY
from schemas.raccord import ProjectSnapshot


def _project(prev: dict, current: dict, **extra) -> ProjectSnapshot:
    data = {
        "scenes": [
            {"id": "s1", "groupId": "g1", **prev},
            {"id": "s2", "groupId": "g1", **current},
        ],
        "sceneGroups": [
            {"id": "g1", "name": "Kitchen"},
            {"id": "g2", "name": "Garden"},
        ],
        "characters": [{"id": "c1", "name": "Lan"}, {"id": "c2", "name": "Minh"}],
        "products": [{"id": "p1", "name": "Cup"}, {"id": "p2", "name": "Sword"}],
    }
    data.update(extra)
    return ProjectSnapshot.model_validate(data)


class AnalyzeRaccordTests(unittest.TestCase):
    def test_first_scene_and_unknown_scene_have_no_insights(self):
        project = _project({}, {})
        self.assertEqual(analyze_raccord(project, "s1"), [])
        self.assertEqual(analyze_raccord(project, "missing"), [])

    def test_same_location_insight_comes_first(self):
        insights = analyze_raccord(_project({}, {}), "s2", locale="en")
        self.assertEqual(len(insights), 1)
        self.assertEqual(insights[0].type, "environment")
        self.assertEqual(insights[0].severity, "info")
        self.assertEqual(insights[0].code, "same_location")

    def test_location_transition_names_both_groups(self):
        project = _project({}, {"groupId": "g2"})
        insight = analyze_raccord(project, "s2", locale="en")[0]
        self.assertEqual(insight.type, "flow")
        self.assertEqual(insight.code, "location_transition")
        self.assertIn("Kitchen", insight.message)
        self.assertIn("Garden", insight.message)

    def test_unknown_group_uses_placeholder_name(self):
        project = _project({}, {"groupId": "nowhere"})
        insight = analyze_raccord(project, "s2", locale="vi")[0]
        self.assertIn("Không xác định", insight.message)

    def test_prop_jump_without_pickup_verb_is_critical(self):
        project = _project(
            {"productIds": ["p1"], "contextDescription": "Lan looks out of the window"},
            {"productIds": ["p1", "p2"]},
        )
        insights = analyze_raccord(project, "s2", locale="en")
        critical = [i for i in insights if i.severity == "critical"]
        self.assertEqual(len(critical), 1)
        self.assertEqual(critical[0].type, "prop")
        self.assertEqual(critical[0].affected_ids, ["p2"])
        self.assertIn("Sword", critical[0].message)

    def test_pickup_verb_explains_new_prop(self):
        for description in ("Lan nhặt thanh kiếm lên", "Lan bends down to PICK UP the sword"):
            project = _project(
                {"productIds": ["p1"], "contextDescription": description},
                {"productIds": ["p1", "p2"]},
            )
            insights = analyze_raccord(project, "s2")
            self.assertFalse([i for i in insights if i.code == "prop_jump"], description)

    def test_disappeared_prop_is_warning(self):
        project = _project({"productIds": ["p1", "p2"]}, {"productIds": ["p2"]})
        insights = analyze_raccord(project, "s2", locale="en")
        warnings = [i for i in insights if i.severity == "warning"]
        self.assertEqual(len(warnings), 1)
        self.assertEqual(warnings[0].affected_ids, ["p1"])
        self.assertIn("Cup", warnings[0].message)

    def test_unknown_prop_name_falls_back_to_generic_label(self):
        project = _project({"productIds": ["ghost"]}, {})
        insight = [i for i in analyze_raccord(project, "s2", locale="en") if i.code == "prop_disappeared"][0]
        self.assertTrue(insight.message.startswith("Prop vanished: Prop appeared"))

    def test_character_leaving_is_info_but_arriving_is_not_flagged(self):
        project = _project({"characterIds": ["c1", "c2"]}, {"characterIds": ["c2"]})
        insights = analyze_raccord(project, "s2", locale="en")
        left = [i for i in insights if i.type == "character"]
        self.assertEqual(len(left), 1)
        self.assertEqual(left[0].severity, "info")
        self.assertIn("Lan", left[0].message)
        self.assertIsNone(left[0].suggestion)

        arriving = _project({"characterIds": ["c2"]}, {"characterIds": ["c1", "c2"]})
        self.assertFalse([i for i in analyze_raccord(arriving, "s2") if i.type == "character"])

    def test_posture_change_standing_to_sitting(self):
        project = _project(
            {"contextDescription": "Lan is standing by the door"},
            {"contextDescription": "Lan is sitting at the table"},
        )
        insights = analyze_raccord(project, "s2", locale="en")
        posture = [i for i in insights if i.code == "posture_change"]
        self.assertEqual(len(posture), 1)
        self.assertEqual(posture[0].type, "flow")
        self.assertEqual(posture[0].params, {"from_state": "standing", "to_state": "sitting"})

    def test_different_posture_words_across_languages_are_a_change(self):
        project = _project(
            {"contextDescription": "Lan ngồi trên ghế"},
            {"contextDescription": "Lan is sitting on the chair"},
        )
        insights = analyze_raccord(project, "s2", locale="en")
        self.assertEqual([i.code for i in insights], ["same_location", "posture_change"])
        self.assertEqual(insights[1].type, "flow")
        self.assertEqual(insights[1].severity, "info")
        self.assertEqual(insights[1].params, {"from_state": "ngồi", "to_state": "sitting"})

    def test_same_posture_word_is_not_a_change(self):
        project = _project(
            {"contextDescription": "Lan is sitting by the window"},
            {"contextDescription": "Lan keeps sitting, reading"},
        )
        self.assertFalse([i for i in analyze_raccord(project, "s2") if i.code == "posture_change"])

    def test_output_order_location_props_characters_posture(self):
        project = _project(
            {
                "productIds": ["p1"],
                "characterIds": ["c1"],
                "contextDescription": "Lan is standing",
            },
            {
                "groupId": "g2",
                "productIds": ["p2"],
                "characterIds": [],
                "contextDescription": "Lan is running",
            },
        )
        codes = [i.code for i in analyze_raccord(project, "s2")]
        self.assertEqual(
            codes,
            ["location_transition", "prop_disappeared", "prop_jump", "characters_left", "posture_change"],
        )

    def test_analysis_is_idempotent(self):
        project = _project(
            {"productIds": ["p1"], "contextDescription": "standing"},
            {"productIds": ["p2"], "contextDescription": "sitting"},
        )
        analyzer = ContinuityAnalyzer(project, vocabulary=DEFAULT_VOCABULARY, locale="vi")
        self.assertEqual(analyzer.analyze_raccord("s2"), analyzer.analyze_raccord("s2"))

    def test_sword_prop_jump_end_to_end_vietnamese(self):
        project = ProjectSnapshot.model_validate({
            "scenes": [
                {"id": "a", "groupId": "g", "productIds": [], "contextDescription": "Hiệp sĩ đứng nhìn xa xăm"},
                {"id": "b", "groupId": "g", "productIds": ["sword"], "contextDescription": "Hiệp sĩ vung kiếm"},
            ],
            "sceneGroups": [{"id": "g", "name": "Lâu đài"}],
            "products": [{"id": "sword", "name": "Sword"}],
        })
        insights = analyze_raccord(project, "b", locale="vi")
        jump = [i for i in insights if i.code == "prop_jump"]
        self.assertEqual(len(jump), 1)
        self.assertEqual(jump[0].message, 'Đạo cụ "nhảy": Sword bỗng dưng xuất hiện.')


class ExtractCharacterStateTests(unittest.TestCase):
    def test_states_and_props_in_table_order(self):
        fragment = extract_character_state("The suspect lies face down, hands cuffed, a gun on the floor")
        self.assertEqual(
            fragment,
            "[CONTINUITY FROM PREVIOUS SCENE: lying face down on ground, hands cuffed behind back, "
            "gun visible. MAINTAIN these positions/elements in current frame.]",
        )

    def test_vietnamese_description(self):
        fragment = extract_character_state("Cảnh sát quỳ bên cạnh, tay cầm súng")
        self.assertIn("kneeling, gun visible.", fragment)

    def test_no_known_state_returns_none(self):
        self.assertIsNone(extract_character_state("A quiet empty street at dawn"))
        self.assertIsNone(extract_character_state(""))
        self.assertIsNone(extract_character_state(None))

    def test_extended_vocabulary_adds_states(self):
        vocab = DEFAULT_VOCABULARY.extended(continuity_props=((r"\bsword\b", "sword in hand"),))
        self.assertIn("sword in hand", extract_character_state("The knight holds a sword", vocabulary=vocab))
        self.assertIsNone(extract_character_state("The knight holds a sword"))


if __name__ == "__main__":
    unittest.main()
