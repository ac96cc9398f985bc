# ============================================================================
# src/intake_analysis/core/intake.py
# ============================================================================
"""
Intake Aggregator

Collects a patient's questionnaire answers into one normalized IntakeRecord.

Every field of the incoming payload is optional and loosely typed (the intake
form, the dashboard and the browser extension all post slightly different
shapes, and nested fields sometimes arrive as JSON strings). All defaulting
happens here, once, so downstream components never re-check for missing keys.

aggregate_intake() never raises.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from json_repair import repair_json

logger = logging.getLogger(__name__)

# Claim values the dashboard uses when a patient has no claim on file
UNSET_CLAIM_VALUES = {"", "not specified", "n/a", "na", "general", "none", "null"}

_DOB_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y", "%Y/%m/%d")


class AdlTrend(Enum):
    """Patient-reported direction of activities of daily living."""
    SAME = "same"
    BETTER = "better"
    WORSE = "worse"


class TherapyEffect(Enum):
    """Patient rating of a therapy since the last visit."""
    MUCH_BETTER = "Much Better"
    SLIGHTLY_BETTER = "Slightly Better"
    NO_CHANGE = "No Change"


@dataclass
class Refill:
    needed: bool = False
    before: Optional[int] = None
    after: Optional[int] = None
    medication: Optional[str] = None


@dataclass
class Appointment:
    type: str = "Unknown"
    date: Optional[str] = None


@dataclass
class AdlStatus:
    state: Optional[AdlTrend] = None
    activities: List[str] = field(default_factory=list)


@dataclass
class TherapyRating:
    name: str
    effect: Optional[TherapyEffect] = None
    missed: bool = False


@dataclass
class IntakeRecord:
    """
    Fully-defaulted intake submission.

    Identity fields are already normalized: claim_number is None when the
    patient has no claim, dob is ISO formatted when it could be parsed.
    """
    patient_name: str
    dob: Optional[str] = None
    claim_number: Optional[str] = None
    doi: Optional[str] = None
    language: Optional[str] = None
    body_areas: Optional[str] = None
    refill: Refill = field(default_factory=Refill)
    new_appointments: List[Appointment] = field(default_factory=list)
    adl: AdlStatus = field(default_factory=AdlStatus)
    therapies: List[TherapyRating] = field(default_factory=list)
    notes: Optional[str] = None

    # Derived
    med_refills_requested: str = "No"
    new_appointments_list: Optional[str] = None
    adl_changes_text: Optional[str] = None

    @property
    def identity(self) -> tuple:
        """(patient_name, dob, claim_number) dedup key."""
        return (self.patient_name, self.dob, self.claim_number)

    def to_intake_data(self) -> Dict[str, Any]:
        """Echo of the normalized submission, stored for audit."""
        return {
            "patientName": self.patient_name,
            "dob": self.dob,
            "claimNumber": self.claim_number,
            "doi": self.doi,
            "language": self.language,
            "bodyAreas": self.body_areas,
            "refill": {
                "needed": self.refill.needed,
                "before": self.refill.before,
                "after": self.refill.after,
                "medication": self.refill.medication,
            },
            "newAppointments": [
                {"type": a.type, "date": a.date} for a in self.new_appointments
            ],
            "adl": {
                "state": self.adl.state.value if self.adl.state else None,
                "list": list(self.adl.activities),
            },
            "therapies": [
                {
                    "name": t.name,
                    "effect": t.effect.value if t.effect else None,
                    "missed": t.missed,
                }
                for t in self.therapies
            ],
            "notes": self.notes,
            "medRefillsRequested": self.med_refills_requested,
            "newAppointmentsList": self.new_appointments_list,
            "adlChangesText": self.adl_changes_text,
        }


# ============================================================================
# Boundary normalization
# ============================================================================

def normalize_claim_number(value: Any) -> Optional[str]:
    """Map every "no claim" spelling to None; otherwise the stripped claim."""
    if value is None:
        return None
    text = str(value).strip()
    if text.lower() in UNSET_CLAIM_VALUES:
        return None
    return text


def normalize_dob(value: Any) -> Optional[str]:
    """Return an ISO date string, or the stripped input if it is not a date."""
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    # Drop time component from ISO timestamps
    iso = re.match(r"(\d{4}-\d{2}-\d{2})T", text)
    if iso:
        text = iso.group(1)

    for fmt in _DOB_FORMATS:
        try:
            return datetime.strptime(text, fmt).date().isoformat()
        except ValueError:
            continue

    match = re.search(r"\d{4}-\d{2}-\d{2}", text)
    if match:
        return match.group(0)

    logger.debug(f"Could not parse DOB {text!r}, keeping as-is")
    return text


def normalize_patient_name(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


# ============================================================================
# Loose field coercion
# ============================================================================

def _coerce_json(value: Any) -> Any:
    """Decode nested fields that were posted as JSON strings."""
    if not isinstance(value, str):
        return value
    stripped = value.strip()
    if not stripped or stripped[0] not in "[{":
        return value
    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass
    try:
        repaired = repair_json(stripped, return_objects=True)
        if isinstance(repaired, (dict, list)):
            return repaired
    except Exception as e:
        logger.debug(f"json_repair could not decode field: {e}")
    return value


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("yes", "true", "1", "y")
    return bool(value)


def _pain_score(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return None
    return max(0, min(10, score))


def _optional_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_refill(raw: Any) -> Refill:
    raw = _coerce_json(raw)
    if not isinstance(raw, dict):
        return Refill(needed=_truthy(raw) if raw is not None else False)

    pain = _coerce_json(raw.get("pain"))
    pain = pain if isinstance(pain, dict) else {}

    medication = _optional_text(raw.get("med") or raw.get("medication"))
    needed = _truthy(raw.get("needed")) or _truthy(raw.get("requested")) or bool(medication)

    return Refill(
        needed=needed,
        before=_pain_score(raw.get("before", pain.get("pre"))),
        after=_pain_score(raw.get("after", pain.get("post"))),
        medication=medication,
    )


def _parse_appointments(raw: Any) -> List[Appointment]:
    raw = _coerce_json(raw)
    if isinstance(raw, dict):
        # Single appointment posted as an object
        raw = [raw]
    if not isinstance(raw, list):
        return []

    appointments = []
    for item in raw:
        item = _coerce_json(item)
        if isinstance(item, dict):
            appt_type = _optional_text(item.get("type") or item.get("specialist"))
            appointments.append(Appointment(
                type=appt_type or "Unknown",
                date=_optional_text(item.get("date")),
            ))
        elif isinstance(item, str) and item.strip():
            appointments.append(Appointment(type=item.strip()))
    return appointments


def _parse_adl(raw: Any) -> AdlStatus:
    raw = _coerce_json(raw)
    if not isinstance(raw, dict):
        return AdlStatus()

    state_raw = raw.get("state", raw.get("trend"))
    state = None
    if state_raw:
        try:
            state = AdlTrend(str(state_raw).strip().lower())
        except ValueError:
            logger.debug(f"Unknown ADL trend {state_raw!r}")

    activities_raw = _coerce_json(raw.get("list", raw.get("activities")))
    if isinstance(activities_raw, str):
        activities_raw = [a for a in activities_raw.split(",")]
    if not isinstance(activities_raw, list):
        activities_raw = []
    activities = [str(a).strip() for a in activities_raw if a and str(a).strip()]

    return AdlStatus(state=state, activities=activities)


def _parse_effect(value: Any) -> Optional[TherapyEffect]:
    if value is None:
        return None
    text = str(value).strip().lower()
    for effect in TherapyEffect:
        if effect.value.lower() == text:
            return effect
    return None


def _parse_therapies(raw: Any) -> List[TherapyRating]:
    raw = _coerce_json(raw)
    ratings = []

    if isinstance(raw, dict):
        # {"Physical Therapy": "Much Better", ...}
        for name, effect in raw.items():
            if isinstance(effect, dict):
                ratings.append(TherapyRating(
                    name=str(name),
                    effect=_parse_effect(effect.get("effect")),
                    missed=_truthy(effect.get("missed")),
                ))
            else:
                ratings.append(TherapyRating(name=str(name), effect=_parse_effect(effect)))
        return ratings

    if not isinstance(raw, list):
        return ratings

    for item in raw:
        item = _coerce_json(item)
        if isinstance(item, dict):
            name = _optional_text(item.get("name") or item.get("therapy") or item.get("type"))
            if not name:
                continue
            missed = _truthy(item.get("missed")) or str(item.get("status", "")).lower() == "missed"
            ratings.append(TherapyRating(
                name=name,
                effect=_parse_effect(item.get("effect") or item.get("rating")),
                missed=missed,
            ))
        elif isinstance(item, str) and item.strip():
            ratings.append(TherapyRating(name=item.strip(), missed="missed" in item.lower()))
    return ratings


def _parse_body_areas(raw: Any) -> Optional[str]:
    raw = _coerce_json(raw)
    if isinstance(raw, list):
        parts = [str(p).strip() for p in raw if p and str(p).strip()]
        return ", ".join(parts) or None
    return _optional_text(raw)


# ============================================================================
# Derived fields
# ============================================================================

def med_refills_requested(refill: Refill) -> str:
    return "Yes" if refill.needed else "No"


def new_appointments_list(appointments: List[Appointment]) -> Optional[str]:
    if not appointments:
        return None
    return ", ".join(a.type or "Unknown" for a in appointments)


def adl_changes_text(adl: AdlStatus) -> Optional[str]:
    if adl.state is None or adl.state == AdlTrend.SAME:
        return None
    if not adl.activities:
        return None
    arrow = "↑" if adl.state == AdlTrend.BETTER else "↓"
    return f"{adl.activities[0]} {arrow}"


def aggregate_intake(payload: Optional[Dict[str, Any]]) -> IntakeRecord:
    """
    Build a fully-defaulted IntakeRecord from a raw submission payload.

    Args:
        payload: Submission dict (camelCase keys as posted by the intake form)

    Returns:
        IntakeRecord with derived fields populated
    """
    payload = payload or {}

    refill = _parse_refill(payload.get("refill"))
    appointments = _parse_appointments(payload.get("newAppointments"))
    adl = _parse_adl(payload.get("adl"))

    record = IntakeRecord(
        patient_name=normalize_patient_name(payload.get("patientName")),
        dob=normalize_dob(payload.get("dob")),
        claim_number=normalize_claim_number(payload.get("claimNumber")),
        doi=normalize_dob(payload.get("doi")),
        language=_optional_text(payload.get("language") or payload.get("lang")),
        body_areas=_parse_body_areas(payload.get("bodyAreas")),
        refill=refill,
        new_appointments=appointments,
        adl=adl,
        therapies=_parse_therapies(payload.get("therapies")),
        notes=_optional_text(payload.get("notes")),
        med_refills_requested=med_refills_requested(refill),
        new_appointments_list=new_appointments_list(appointments),
        adl_changes_text=adl_changes_text(adl),
    )

    logger.debug(
        f"Aggregated intake for {record.patient_name!r}: refill={record.med_refills_requested}, "
        f"appointments={len(appointments)}, adl={adl.state.value if adl.state else None}"
    )
    return record
