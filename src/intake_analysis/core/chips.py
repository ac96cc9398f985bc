# ============================================================================
# src/intake_analysis/core/chips.py
# ============================================================================
"""
Questionnaire chips for the staff dashboard.

Turns a stored intake update into short coloured chips. Generated points keep
their colour tag when they have one; everything else is coloured by keyword.
With no generated content at all the chips are derived from the intake record.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .intake import AdlTrend, IntakeRecord
from .sections import POINT_COLORS, parse_generated_point

# (keywords, chip type); first match wins
GENERATED_POINT_RULES = (
    (("worse", "decreased", "limited", "difficulty", "pain"), "red"),
    (("improved", "better", "increased", "good", "unchanged", "same", "stable"), "green"),
)
ADL_EFFECT_RULES = (
    (("worse", "decreased", "limited", "difficulty"), "red"),
    (("improved", "better", "increased", "unchanged", "same"), "green"),
)
INTAKE_POINT_RULES = (
    (("refill", "medication", "appointment", "consult"), "blue"),
    (("improved", "better"), "green"),
    (("worse", "pain"), "red"),
)


@dataclass
class QuestionnaireChip:
    text: str
    type: str

    def to_dict(self) -> Dict[str, str]:
        return {"text": self.text, "type": self.type}


def classify(text: str, rules: Iterable[Tuple[Tuple[str, ...], str]], default: str) -> str:
    lowered = text.lower()
    for keywords, chip_type in rules:
        if any(k in lowered for k in keywords):
            return chip_type
    return default


def _generated_chip(point: Any) -> Optional[QuestionnaireChip]:
    if isinstance(point, dict):
        text = str(point.get("text") or "").strip()
        color = point.get("color")
    else:
        parsed = parse_generated_point(str(point or ""))
        text, color = parsed.text, parsed.color
    if not text:
        return None
    if color not in POINT_COLORS:
        color = classify(text, GENERATED_POINT_RULES, "blue")
    return QuestionnaireChip(text=text, type=color)


def _record_chips(record: IntakeRecord) -> List[QuestionnaireChip]:
    chips = []
    if record.refill.needed:
        chips.append(QuestionnaireChip("Medication refill requested", "blue"))
    if any(t.missed for t in record.therapies):
        chips.append(QuestionnaireChip("Missed PT session", "amber"))
    if record.new_appointments:
        chips.append(QuestionnaireChip("New appointment scheduled", "blue"))
    if record.adl.state in (AdlTrend.BETTER, AdlTrend.WORSE):
        chips.append(QuestionnaireChip("ADLs changed", "amber"))
    else:
        chips.append(QuestionnaireChip("ADLs unchanged", "green"))
    chips.append(QuestionnaireChip("No ER visits", "green"))
    return chips


def build_questionnaire_chips(
    update: Optional[Dict[str, Any]],
    record: Optional[IntakeRecord] = None,
) -> List[QuestionnaireChip]:
    """
    Chips for one patient.

    Args:
        update: Stored intake update (camelCase dict as returned by the API)
        record: Aggregated intake, used only when the update has no points

    Returns:
        Generated point chips first, then ADL effect, then intake points
    """
    chips: List[QuestionnaireChip] = []

    if update:
        for point in update.get("generatedPoints") or []:
            chip = _generated_chip(point)
            if chip:
                chips.append(chip)

        for point in update.get("adlEffectPoints") or []:
            text = str(point or "").strip()
            if text:
                chips.append(QuestionnaireChip(text, classify(text, ADL_EFFECT_RULES, "amber")))

        for point in update.get("intakePatientPoints") or []:
            text = str(point or "").strip()
            if text:
                chips.append(QuestionnaireChip(text, classify(text, INTAKE_POINT_RULES, "amber")))

    if not chips and record is not None:
        chips = _record_chips(record)

    return chips
