# ============================================================================
# tests/unit/test_chips.py
# ============================================================================
"""
Tests for questionnaire chips
"""

from intake_analysis.core.chips import build_questionnaire_chips
from intake_analysis.core.intake import aggregate_intake


def _pairs(chips):
    return [(c.text, c.type) for c in chips]


class TestGeneratedChips:
    """Test chips built from a stored update"""

    def test_colour_tags_win(self):
        update = {"generatedPoints": [
            {"text": "Pain improved", "color": "red"},
            {"text": "Refill due", "color": "blue"},
        ]}
        assert _pairs(build_questionnaire_chips(update)) == [
            ("Pain improved", "red"),
            ("Refill due", "blue"),
        ]

    def test_untagged_points_use_keywords(self):
        update = {"generatedPoints": [
            {"text": "Difficulty sleeping", "color": None},
            {"text": "Range of motion increased", "color": None},
            {"text": "Sleep unchanged", "color": None},
            {"text": "Ortho consult next week", "color": None},
        ]}
        assert [c.type for c in build_questionnaire_chips(update)] == ["red", "green", "green", "blue"]

    def test_raw_string_points_are_parsed(self):
        update = {"generatedPoints": ["Grip strength worsening (Red)", "  "]}
        assert _pairs(build_questionnaire_chips(update)) == [("Grip strength worsening", "red")]

    def test_adl_effect_points(self):
        update = {"adlEffectPoints": [
            "Limited lifting",
            "Walking improved",
            "Dressing unchanged",
            "Needs help bathing",
        ]}
        assert [c.type for c in build_questionnaire_chips(update)] == ["red", "green", "green", "amber"]

    def test_intake_patient_points(self):
        update = {"intakePatientPoints": [
            "Medication refill requested",
            "Consult with neurology",
            "Feels better overall",
            "Pain at night",
            "Missed one session",
        ]}
        assert [c.type for c in build_questionnaire_chips(update)] == ["blue", "blue", "green", "red", "amber"]

    def test_order_is_generated_then_adl_then_intake(self):
        update = {
            "intakePatientPoints": ["Refill requested"],
            "adlEffectPoints": ["Walking improved"],
            "generatedPoints": [{"text": "Follow up", "color": "amber"}],
        }
        assert [c.text for c in build_questionnaire_chips(update)] == [
            "Follow up", "Walking improved", "Refill requested",
        ]


class TestRecordFallbackChips:
    """Test chips derived from the intake when no points exist"""

    def test_full_intake(self):
        record = aggregate_intake({
            "patientName": "A",
            "refill": {"needed": True},
            "therapies": [{"name": "PT", "missed": True}],
            "newAppointments": [{"type": "Ortho"}],
            "adl": {"state": "worse", "list": ["grip"]},
        })
        assert _pairs(build_questionnaire_chips({"generatedPoints": []}, record)) == [
            ("Medication refill requested", "blue"),
            ("Missed PT session", "amber"),
            ("New appointment scheduled", "blue"),
            ("ADLs changed", "amber"),
            ("No ER visits", "green"),
        ]

    def test_quiet_intake(self):
        record = aggregate_intake({"patientName": "A", "adl": {"state": "same"}})
        assert _pairs(build_questionnaire_chips(None, record)) == [
            ("ADLs unchanged", "green"),
            ("No ER visits", "green"),
        ]

    def test_no_update_and_no_record(self):
        assert build_questionnaire_chips(None) == []

    def test_points_suppress_record_chips(self, lopez_record):
        chips = build_questionnaire_chips({"adlEffectPoints": ["Grip worse"]}, lopez_record)
        assert _pairs(chips) == [("Grip worse", "red")]
