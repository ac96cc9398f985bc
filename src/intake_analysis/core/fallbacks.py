# ============================================================================
# src/intake_analysis/core/fallbacks.py
# ============================================================================
"""
Fallback tiers applied after the section scan.

Each tier is a pure function (sections, raw_text, record) -> sections | None.
It returns None when it does not apply, or a new NarrativeSections with the
gap filled. Tiers run in FALLBACK_TIERS order; each sees the output of the
previous one.
"""

import re
from dataclasses import replace
from typing import Callable, List, Optional, Tuple

from .intake import AdlTrend, IntakeRecord
from .sections import NarrativeSections, is_header_line

FallbackTier = Callable[[NarrativeSections, str, IntakeRecord], Optional[NarrativeSections]]

# "Summary:", "**Changes**:", "1.", "- " at the start of a headerless line
_LEADING_LABEL = re.compile(
    r"^\s*(?:[-•*]\s+|\d+[.)]\s*)?"
    r"(?:\*\*[^*\n]{1,60}\*\*\s*:?|[A-Za-z][\w&()'/-]*(?: [\w&()'/-]+){0,3}:(?=\s|$))?\s*"
)

_TREND_WORDS = {
    AdlTrend.WORSE: "worsening",
    AdlTrend.BETTER: "improving",
    AdlTrend.SAME: "stable",
}


def strip_leading_label(line: str) -> str:
    """Remove a leading bullet/number and a short "Label:" prefix."""
    stripped = _LEADING_LABEL.sub("", line, count=1).strip()
    # Never strip a whole line down to nothing
    return stripped or line.strip()


def headerless_lines(
    sections: NarrativeSections,
    raw_text: str,
    record: IntakeRecord,
) -> Optional[NarrativeSections]:
    """
    Both narrative fields empty: use the first two non-blank lines.

    Recovers a usable result when the generator skipped the headers but kept
    the content order.
    """
    if sections.key_patient_reported_changes or sections.system_interpretation:
        return None

    lines = [
        line.strip() for line in (raw_text or "").splitlines()
        if line.strip() and not is_header_line(line)
    ]
    if not lines:
        return None

    first = strip_leading_label(lines[0])
    second = strip_leading_label(lines[1]) if len(lines) > 1 else ""
    return replace(
        sections,
        key_patient_reported_changes=first,
        system_interpretation=second,
    )


def build_key_findings(record: IntakeRecord) -> str:
    """Deterministic findings sentence built from the intake alone."""
    body_areas = record.body_areas or "body area"
    trend = _TREND_WORDS.get(record.adl.state, "stable")

    if record.med_refills_requested == "Yes":
        medication = "Medication refill requested"
    else:
        medication = "No medication refill requested"

    if record.new_appointments_list:
        appointments = f"New appointments: {record.new_appointments_list}"
    else:
        appointments = "No new appointments reported"

    return (
        f"Patient reports {body_areas} concerns with {trend} ADL status. "
        f"{medication}. {appointments}."
    )


def synthesized_findings(
    sections: NarrativeSections,
    raw_text: str,
    record: IntakeRecord,
) -> Optional[NarrativeSections]:
    """keyFindings empty: synthesize it from the intake record."""
    if sections.key_findings:
        return None
    return replace(sections, key_findings=build_key_findings(record))


FALLBACK_TIERS: List[Tuple[str, FallbackTier]] = [
    ("headerless_lines", headerless_lines),
    ("synthesized_findings", synthesized_findings),
]


def apply_fallbacks(
    sections: NarrativeSections,
    raw_text: str,
    record: IntakeRecord,
    tiers: Optional[List[Tuple[str, FallbackTier]]] = None,
) -> Tuple[NarrativeSections, List[str]]:
    """
    Run the fallback tiers in order.

    Returns:
        (final sections, names of the tiers that changed something)
    """
    applied = []
    for name, tier in (tiers if tiers is not None else FALLBACK_TIERS):
        updated = tier(sections, raw_text, record)
        if updated is not None:
            sections = updated
            applied.append(name)
    return sections, applied
