# ============================================================================
# src/intake_analysis/core/parser.py
# ============================================================================
"""
Narrative parsing entry points.

parse_narrative()  - generator replied: section scan, then fallback tiers.
degraded_result()  - generator timed out or failed: no parsing, a flagged
                     placeholder built only from the intake record.

Either way all six fields are present and keyFindings is non-empty.
"""

import logging
from typing import Optional

from .fallbacks import apply_fallbacks, build_key_findings
from .intake import IntakeRecord
from .sections import NarrativeSections, ParseResult, extract_sections

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_TIMEOUT_FALLBACK = "timeout_fallback"
STATUS_FAILED = "failed"

PLACEHOLDER_SUMMARIES = {
    "timeout": "Analysis timed out; using basic patient information.",
    "error": "Analysis unavailable; using basic patient information.",
}


def parse_narrative(text: str, record: IntakeRecord) -> ParseResult:
    """
    Parse a generator reply into NarrativeSections.

    Args:
        text: Raw reply text
        record: The intake the reply was generated from (used by fallbacks)

    Returns:
        ParseResult with degraded=False
    """
    sections, missing = extract_sections(text)
    sections, applied = apply_fallbacks(sections, text, record)

    if applied:
        logger.info(f"Narrative parse used fallbacks {applied} (missing sections: {missing})")

    return ParseResult(
        sections=sections,
        degraded=False,
        status=STATUS_COMPLETED,
        applied_fallbacks=applied,
        missing_sections=missing,
    )


def degraded_result(
    record: IntakeRecord,
    reason: str = "timeout",
    error: Optional[str] = None,
) -> ParseResult:
    """
    Result for a submission whose narrative could not be generated.

    Only the placeholder summary and the deterministic findings sentence are
    filled; no clinical narrative is invented.
    """
    summary = PLACEHOLDER_SUMMARIES.get(reason, PLACEHOLDER_SUMMARIES["error"])
    sections = NarrativeSections(
        key_patient_reported_changes=summary,
        key_findings=build_key_findings(record),
    )
    return ParseResult(
        sections=sections,
        degraded=True,
        status=STATUS_TIMEOUT_FALLBACK,
        applied_fallbacks=["synthesized_findings"],
        fallback_reason=reason,
        error=error,
    )
