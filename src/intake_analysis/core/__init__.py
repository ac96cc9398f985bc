# ============================================================================
# src/intake_analysis/core/__init__.py
# ============================================================================
"""
Core intake analysis: aggregation, section parsing, persistence.

The pipeline and ADL inference depend on the generator package and are
imported from their modules directly.
"""

from .intake import IntakeRecord, aggregate_intake
from .sections import NarrativeSections, ParseResult, scan_sections, extract_sections
from .parser import parse_narrative, degraded_result
from .store import IntakeUpdateStore, IntakeUpdateRecord, UNSPECIFIED
from .chips import QuestionnaireChip, build_questionnaire_chips

__all__ = [
    "IntakeRecord",
    "aggregate_intake",
    "NarrativeSections",
    "ParseResult",
    "scan_sections",
    "extract_sections",
    "parse_narrative",
    "degraded_result",
    "IntakeUpdateStore",
    "IntakeUpdateRecord",
    "UNSPECIFIED",
    "QuestionnaireChip",
    "build_questionnaire_chips",
]
