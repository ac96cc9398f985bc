# ============================================================================
# tests/unit/test_fallbacks.py
# ============================================================================
"""
Tests for the fallback tiers and the parse entry points
"""

import pytest

from intake_analysis.core.fallbacks import (
    FALLBACK_TIERS,
    apply_fallbacks,
    build_key_findings,
    headerless_lines,
    strip_leading_label,
    synthesized_findings,
)
from intake_analysis.core.intake import aggregate_intake
from intake_analysis.core.parser import (
    PLACEHOLDER_SUMMARIES,
    STATUS_COMPLETED,
    STATUS_TIMEOUT_FALLBACK,
    degraded_result,
    parse_narrative,
)
from intake_analysis.core.sections import NarrativeSections


class TestStripLeadingLabel:
    """Test label removal on headerless lines"""

    @pytest.mark.parametrize("line, expected", [
        ("Summary: Patient reports worse grip.", "Patient reports worse grip."),
        ("**Changes**: Grip is worse.", "Grip is worse."),
        ("1. Grip is worse.", "Grip is worse."),
        ("- Interpretation: Needs review.", "Needs review."),
        ("Grip is worse than last visit.", "Grip is worse than last visit."),
        ("Pain at 8:30 was worse than before.", "Pain at 8:30 was worse than before."),
        ("Woke at 3:15 with pain", "Woke at 3:15 with pain"),
        ("Grip ratio 1:2 on the left", "Grip ratio 1:2 on the left"),
        ("Note: pain at 8:30 was worse.", "pain at 8:30 was worse."),
    ])
    def test_strip(self, line, expected):
        assert strip_leading_label(line) == expected

    def test_long_sentence_with_colon_is_kept(self):
        line = "The patient reports that since the injury: grip is worse."
        assert strip_leading_label(line) == line

    def test_label_only_line_is_not_emptied(self):
        assert strip_leading_label("Summary:") == "Summary:"


class TestHeaderlessLines:
    """Test tier A"""

    def test_fills_both_narrative_fields(self, lopez_record):
        raw = "\n\nSummary: Grip worse since last visit.\n\nInterpretation: Needs ortho review.\nMore text."
        result = headerless_lines(NarrativeSections(), raw, lopez_record)

        assert result.key_patient_reported_changes == "Grip worse since last visit."
        assert result.system_interpretation == "Needs ortho review."

    def test_single_line_fills_first_field_only(self, lopez_record):
        result = headerless_lines(NarrativeSections(), "Only one line.", lopez_record)
        assert result.key_patient_reported_changes == "Only one line."
        assert result.system_interpretation == ""

    def test_not_applied_when_a_narrative_field_exists(self, lopez_record):
        sections = NarrativeSections(system_interpretation="Already parsed.")
        assert headerless_lines(sections, "a\nb", lopez_record) is None

    def test_header_lines_are_skipped(self, lopez_record):
        raw = (
            "Grip worse since last visit.\n"
            "KEY FINDINGS:\n"
            "Needs ortho review.\n"
            "**ADL EFFECT POINTS**\n"
            "- Difficulty gripping"
        )
        result = headerless_lines(NarrativeSections(), raw, lopez_record)

        assert result.key_patient_reported_changes == "Grip worse since last visit."
        assert result.system_interpretation == "Needs ortho review."

    def test_reply_of_only_headers_is_not_used(self, lopez_record):
        assert headerless_lines(NarrativeSections(), "KEY FINDINGS:\n## GENERATED POINTS", lopez_record) is None

    def test_not_applied_to_blank_reply(self, lopez_record):
        assert headerless_lines(NarrativeSections(), "  \n\n ", lopez_record) is None


class TestSynthesizedFindings:
    """Test tier B"""

    def test_lopez_findings_sentence(self, lopez_record):
        assert build_key_findings(lopez_record) == (
            "Patient reports body area concerns with worsening ADL status. "
            "Medication refill requested. New appointments: Ortho."
        )

    def test_findings_sentence_defaults(self):
        record = aggregate_intake({"patientName": "A", "bodyAreas": "neck"})
        assert build_key_findings(record) == (
            "Patient reports neck concerns with stable ADL status. "
            "No medication refill requested. No new appointments reported."
        )

    def test_improving_trend(self):
        record = aggregate_intake({"patientName": "A", "adl": {"state": "better"}})
        assert "improving ADL status" in build_key_findings(record)

    def test_existing_findings_are_kept(self, lopez_record):
        sections = NarrativeSections(key_findings="From the generator.")
        assert synthesized_findings(sections, "", lopez_record) is None


class TestApplyFallbacks:
    """Test tier ordering"""

    def test_tiers_run_in_order(self):
        assert [name for name, _ in FALLBACK_TIERS] == ["headerless_lines", "synthesized_findings"]

    def test_applied_tiers_are_reported(self, lopez_record):
        sections, applied = apply_fallbacks(NarrativeSections(), "a\nb", lopez_record)
        assert applied == ["headerless_lines", "synthesized_findings"]
        assert sections.key_findings

    def test_custom_tier_list(self, lopez_record):
        sections, applied = apply_fallbacks(
            NarrativeSections(), "a\nb", lopez_record,
            tiers=[("synthesized_findings", synthesized_findings)],
        )
        assert applied == ["synthesized_findings"]
        assert sections.key_patient_reported_changes == ""


class TestParseNarrative:
    """Test the success and degraded entry points"""

    def test_well_formed_reply(self, well_formed_reply, lopez_record):
        result = parse_narrative(well_formed_reply, lopez_record)

        assert result.status == STATUS_COMPLETED
        assert not result.degraded
        assert result.applied_fallbacks == []
        assert result.sections.key_patient_reported_changes.startswith("Patient reports worsening grip")
        assert result.sections.system_interpretation.startswith("Functional decline")

    def test_headerless_reply(self, lopez_record):
        result = parse_narrative("Grip is worse.\nOrtho review advised.", lopez_record)

        assert result.status == STATUS_COMPLETED
        assert result.sections.key_patient_reported_changes == "Grip is worse."
        assert result.sections.system_interpretation == "Ortho review advised."
        assert result.sections.key_findings == build_key_findings(lopez_record)
        assert len(result.missing_sections) == 6

    @pytest.mark.parametrize("text", [
        "",
        "KEY PATIENT-REPORTED CHANGES:\nA.\nSYSTEM INTERPRETATION:\nB.\n",
        "KEY FINDINGS:\n   \n",
    ])
    def test_key_findings_never_empty(self, text, lopez_record):
        result = parse_narrative(text, lopez_record)
        assert result.sections.key_findings.strip()

    def test_degraded_result(self, lopez_record):
        result = degraded_result(lopez_record, reason="timeout", error="timed out")

        assert result.degraded
        assert result.status == STATUS_TIMEOUT_FALLBACK
        assert result.fallback_reason == "timeout"
        assert result.sections.key_patient_reported_changes == PLACEHOLDER_SUMMARIES["timeout"]
        assert result.sections.key_findings == build_key_findings(lopez_record)
        assert result.sections.system_interpretation == ""
        assert result.sections.adl_effect_points == []
        assert result.sections.generated_points == []

    def test_degraded_error_placeholder(self, lopez_record):
        result = degraded_result(lopez_record, reason="error")
        assert result.sections.key_patient_reported_changes == PLACEHOLDER_SUMMARIES["error"]
