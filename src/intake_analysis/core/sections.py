# ============================================================================
# src/intake_analysis/core/sections.py
# ============================================================================
"""
Structured Response Parser

Splits the narrative generator's free-text reply into the six named fields of
a patient intake update.

The reply is expected to contain six headers in a fixed order:

    KEY PATIENT-REPORTED CHANGES
    SYSTEM INTERPRETATION
    KEY FINDINGS
    ADL EFFECT POINTS
    INTAKE PATIENT POINTS
    GENERATED POINTS

scan_sections() walks the text once with a cursor. Each marker is searched
from the cursor onward, so a marker that is missing or only appears earlier
than the previous one is reported as not found and its section stays empty.
A section runs until the next marker that was found (or end of text).
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


# (header text, record field name) in canonical order
SECTION_MARKERS: Tuple[Tuple[str, str], ...] = (
    ("KEY PATIENT-REPORTED CHANGES", "keyPatientReportedChanges"),
    ("SYSTEM INTERPRETATION", "systemInterpretation"),
    ("KEY FINDINGS", "keyFindings"),
    ("ADL EFFECT POINTS", "adlEffectPoints"),
    ("INTAKE PATIENT POINTS", "intakePatientPoints"),
    ("GENERATED POINTS", "generatedPoints"),
)

TEXT_FIELDS = ("keyPatientReportedChanges", "systemInterpretation", "keyFindings")
LIST_FIELDS = ("adlEffectPoints", "intakePatientPoints", "generatedPoints")

POINT_COLORS = ("red", "amber", "green", "blue")

# Markdown/numbering allowed before a header on its own line: "**", "## ", "1. "
_HEADER_PREFIX = re.compile(r"[\s*#>_\d.)]*")
# Decoration allowed right after a header: ":", "**", " -"
_HEADER_SUFFIX = re.compile(r"[ \t]*[*_#]*[ \t]*[:\-]?[ \t]*[*_#]*[ \t]*")
_BULLET = re.compile(r"^\s*(?:[-•*–]|\d+[.)])\s*")
_COLOR_TAG = re.compile(r"\s*[(\[]\s*(red|amber|green|blue)\s*[)\]]", re.IGNORECASE)
# "Grip worse - Red", "Grip worse: red"; a bare trailing colour word is content
_TRAILING_COLOR = re.compile(r"(?:\s+[-–]|\s*:)\s*(red|amber|green|blue)\s*$", re.IGNORECASE)
_HEADER_LINE = re.compile(
    r"[\s*#>_\d.)]*(?:" + "|".join(re.escape(m) for m, _ in SECTION_MARKERS) + r")\b",
    re.IGNORECASE,
)


@dataclass
class SectionSpan:
    """Location of one section inside the raw reply."""
    name: str
    marker: str
    found: bool = False
    header_start: int = -1
    content_start: int = -1
    end: int = -1
    header: str = ""
    content: str = ""


@dataclass
class GeneratedPoint:
    """A generated bullet with an optional intent color."""
    text: str
    color: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "color": self.color}


@dataclass
class NarrativeSections:
    key_patient_reported_changes: str = ""
    system_interpretation: str = ""
    key_findings: str = ""
    adl_effect_points: List[str] = field(default_factory=list)
    intake_patient_points: List[str] = field(default_factory=list)
    generated_points: List[GeneratedPoint] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyPatientReportedChanges": self.key_patient_reported_changes,
            "systemInterpretation": self.system_interpretation,
            "keyFindings": self.key_findings,
            "adlEffectPoints": list(self.adl_effect_points),
            "intakePatientPoints": list(self.intake_patient_points),
            "generatedPoints": [p.to_dict() for p in self.generated_points],
        }


@dataclass
class ParseResult:
    """Parser output plus how it was obtained."""
    sections: NarrativeSections
    degraded: bool = False
    status: str = "completed"
    applied_fallbacks: List[str] = field(default_factory=list)
    missing_sections: List[str] = field(default_factory=list)
    fallback_reason: Optional[str] = None
    error: Optional[str] = None


# ============================================================================
# Marker scan
# ============================================================================

def _header_start(text: str, marker_index: int) -> int:
    """Pull the header start back over markdown/numbering on the same line."""
    line_start = text.rfind("\n", 0, marker_index) + 1
    if _HEADER_PREFIX.fullmatch(text[line_start:marker_index]):
        return line_start
    return marker_index


def _find_marker(text: str, marker: str, cursor: int) -> Optional[int]:
    """
    Index of the marker at or after cursor.

    A case-insensitive match that starts its own line wins; otherwise the
    first exact-case match anywhere (inline "... KEY FINDINGS: ..." replies).
    """
    for match in re.finditer(re.escape(marker), text[cursor:], re.IGNORECASE):
        index = cursor + match.start()
        line_start = text.rfind("\n", 0, index) + 1
        if _HEADER_PREFIX.fullmatch(text[line_start:index]):
            return index

    index = text.find(marker, cursor)
    return index if index >= 0 else None


def is_header_line(line: str) -> bool:
    """True when the line opens with one of the six section headers."""
    return _HEADER_LINE.match(line) is not None


def scan_sections(text: str) -> List[SectionSpan]:
    """
    Locate the six sections in canonical order.

    Returns one SectionSpan per marker (found or not). For found spans,
    text[header_start:content_start] is the header and
    text[content_start:end] is the raw content; consecutive found spans
    tile the text from the first header to the end.
    """
    spans = [SectionSpan(name=name, marker=marker) for marker, name in SECTION_MARKERS]
    text = text or ""

    # Pass 1: advance a cursor through the markers in order
    cursor = 0
    for span in spans:
        index = _find_marker(text, span.marker, cursor)
        if index is None:
            continue

        marker_end = index + len(span.marker)
        suffix = _HEADER_SUFFIX.match(text, marker_end)
        span.found = True
        span.header_start = _header_start(text, index)
        span.content_start = suffix.end() if suffix else marker_end
        cursor = span.content_start

    # Pass 2: each found section ends where the next found header begins
    found = [s for s in spans if s.found]
    for current, following in zip(found, found[1:] + [None]):
        current.end = following.header_start if following else len(text)
        current.header = text[current.header_start:current.content_start]
        current.content = text[current.content_start:current.end]

    return spans


def split_points(content: str) -> List[str]:
    """Split a bulleted section into its items."""
    points = []
    for line in content.splitlines():
        item = _BULLET.sub("", line, count=1).strip()
        item = item.strip("*_").strip()
        if item:
            points.append(item)
    return points


def parse_generated_point(point: str) -> GeneratedPoint:
    """Separate an optional (Red)/(Amber)/(Green)/(Blue) tag from the text."""
    match = _COLOR_TAG.search(point)
    if match:
        text = (point[:match.start()] + point[match.end():]).strip()
        return GeneratedPoint(text=text, color=match.group(1).lower())

    match = _TRAILING_COLOR.search(point)
    if match and match.start() > 0:
        return GeneratedPoint(text=point[:match.start()].strip(), color=match.group(1).lower())

    return GeneratedPoint(text=point.strip())


def sections_from_spans(spans: List[SectionSpan]) -> NarrativeSections:
    by_name = {s.name: s.content for s in spans}
    return NarrativeSections(
        key_patient_reported_changes=by_name["keyPatientReportedChanges"].strip(),
        system_interpretation=by_name["systemInterpretation"].strip(),
        key_findings=by_name["keyFindings"].strip(),
        adl_effect_points=split_points(by_name["adlEffectPoints"]),
        intake_patient_points=split_points(by_name["intakePatientPoints"]),
        generated_points=[parse_generated_point(p) for p in split_points(by_name["generatedPoints"])],
    )


def extract_sections(text: str) -> Tuple[NarrativeSections, List[str]]:
    """
    Run the marker scan and shape the captured text.

    Returns:
        (sections, names of markers that were not found)
    """
    spans = scan_sections(text)
    missing = [s.name for s in spans if not s.found]
    if missing:
        logger.debug(f"Sections missing from generator reply: {missing}")
    return sections_from_spans(spans), missing
