# ============================================================================
# src/intake_analysis/generator/prompts.py
# ============================================================================
"""
Prompt Templates

- Intake narrative prompt (six fixed sections, parsed by core.sections)
- ADL / work restriction prompt (two comma-separated lines)
"""

import json
from typing import Any, Dict, Optional

from ..core.intake import IntakeRecord
from ..core.sections import SECTION_MARKERS

NARRATIVE_SYSTEM_PROMPT = (
    "You are a clinical documentation assistant for a workers' compensation "
    "practice. You summarize patient-reported intake updates for the treating "
    "physician. Use only the information provided, do not invent diagnoses, "
    "and always answer with the exact section headers requested, in order."
)

NARRATIVE_TEMPLATE = """Summarize this patient's intake update for the physician.

Patient Information:
- Patient: {patient_name}
- DOB: {dob}
- Claim Number: {claim_number}
- Date of Injury: {doi}
- Language: {language}
- Body Areas: {body_areas}

Intake Responses:
- Medication Refill Requested: {med_refills}
- Pain Level (before -> after medication): {pain_level}
- New Appointments: {appointments}
- ADL Trend: {adl_trend}
- Affected Activities: {adl_activities}
- Therapy Effects: {therapies}
- Patient Notes: {notes}

Respond with exactly these six sections, in this order, each header on its own line followed by a colon:

{header_1}:
2-3 sentences describing what the patient reports has changed since the last visit.

{header_2}:
Exactly two sentences interpreting what these changes mean for the claim and care plan.

{header_3}:
One short paragraph with the key clinical findings from this intake.

{header_4}:
3-5 bullet points ("- ") on how the patient's daily activities are affected.

{header_5}:
3-5 bullet points ("- ") restating what the patient reported on the intake form.

{header_6}:
3-5 bullet points ("- ") of short action-oriented observations. End each point with one
color tag in parentheses: (Red) worsening or urgent, (Amber) needs follow-up,
(Green) improving or stable, (Blue) informational.

Do not add any other sections, introductions or closing remarks."""


ADL_SYSTEM_PROMPT = (
    "You are a medical ADL analyzer. Output exactly 2 lines with comma-separated "
    "short phrases only. Line 1 = affected daily activities, Line 2 = work "
    'restrictions. Use direct phrases like "lifting heavy objects" not sentences '
    'like "patient cannot lift".'
)

ADL_TEMPLATE = """Based on the patient's intake form responses, determine which ADL activities are affected and what work restrictions apply.

Patient Information:
- Body Areas: {body_areas}
- Language: {language}
- Pain Level (before -> after medication): {pain_level}
- Symptom Trend (from ADLs): {adl_trend}
- Patient Selected ADLs: {adl_activities}
- New Appointments: {appointments}
- Therapies and Effects: {therapies}

{previous}

Task: Generate 2 lines based on the data above.

Line 1 Format: List affected daily activities as short phrases (e.g., "dressing, bathing, walking, climbing stairs")
Line 2 Format: List work restrictions as short phrases (e.g., "lifting heavy objects, prolonged standing, driving long distances")

Rules:
- Use ONLY short noun phrases separated by commas
- NO complete sentences, NO words like "may", "patient", "restrictions in", "unable to"
- Base affected ADLs on the selected list and symptom trend ("better": focus on improved ones, "worse": emphasize impacts)
- If a previous ADL result is given, reduce restrictions when the trend is "better" and add restrictions when it is "worse"
- If pain is high (before > 5) or therapies show positive effects, adjust restrictions accordingly
- Include body areas in restrictions if relevant (e.g., "neck strain" for neck issues)

Example Output:
bathing, dressing, prolonged walking
lifting heavy objects, overhead reaching, repetitive bending

Output your 2 lines now:"""


def _or_na(value: Optional[Any]) -> str:
    if value is None or value == "" or value == []:
        return "N/A"
    return str(value)


def _pain_level(record: IntakeRecord) -> str:
    if record.refill.before is None and record.refill.after is None:
        return "N/A"
    return f"{_or_na(record.refill.before)} -> {_or_na(record.refill.after)}"


def _appointments(record: IntakeRecord) -> str:
    if not record.new_appointments:
        return "None"
    return ", ".join(
        f"{a.type} ({a.date})" if a.date else a.type
        for a in record.new_appointments
    )


def _therapies(record: IntakeRecord) -> str:
    if not record.therapies:
        return "None reported"
    parts = []
    for t in record.therapies:
        effect = t.effect.value if t.effect else "not rated"
        parts.append(f"{t.name}: {effect}{' (missed session)' if t.missed else ''}")
    return "; ".join(parts)


def build_narrative_prompt(record: IntakeRecord) -> str:
    """Render the fixed six-section narrative prompt for one intake."""
    headers = {f"header_{i + 1}": marker for i, (marker, _) in enumerate(SECTION_MARKERS)}
    return NARRATIVE_TEMPLATE.format(
        patient_name=record.patient_name,
        dob=_or_na(record.dob),
        claim_number=_or_na(record.claim_number),
        doi=_or_na(record.doi),
        language=_or_na(record.language),
        body_areas=_or_na(record.body_areas),
        med_refills=record.med_refills_requested,
        pain_level=_pain_level(record),
        appointments=_appointments(record),
        adl_trend=record.adl.state.value if record.adl.state else "N/A",
        adl_activities=", ".join(record.adl.activities) or "None",
        therapies=_therapies(record),
        notes=_or_na(record.notes),
        **headers,
    )


def build_adl_prompt(record: IntakeRecord, previous: Optional[Dict[str, Any]] = None) -> str:
    """Render the ADL / work restriction prompt, with the prior result if any."""
    if previous:
        previous_text = (
            f'Previous ADL: adlsAffected="{previous.get("adlsAffected", "")}", '
            f'workRestrictions="{previous.get("workRestrictions", "")}"'
        )
    else:
        previous_text = "No previous ADL available"

    return ADL_TEMPLATE.format(
        body_areas=_or_na(record.body_areas),
        language=_or_na(record.language),
        pain_level=_pain_level(record),
        adl_trend=record.adl.state.value if record.adl.state else "N/A",
        adl_activities=json.dumps(record.adl.activities),
        appointments=json.dumps([{"type": a.type, "date": a.date} for a in record.new_appointments]),
        therapies=json.dumps([
            {"name": t.name, "effect": t.effect.value if t.effect else None}
            for t in record.therapies
        ]),
        previous=previous_text,
    )
