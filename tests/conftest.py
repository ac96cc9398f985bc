# ============================================================================
# FILE: tests/conftest.py
# ============================================================================
"""
Pytest configuration and shared fixtures for testing.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from intake_analysis.core.intake import aggregate_intake
from intake_analysis.core.pipeline import IntakeUpdatePipeline
from intake_analysis.core.store import IntakeUpdateStore
from intake_analysis.generator.base import BackendType, BaseNarrativeClient
from intake_analysis.generator.prompts import ADL_SYSTEM_PROMPT


WELL_FORMED_REPLY = """KEY PATIENT-REPORTED CHANGES:
Patient reports worsening grip strength in the right hand since the last visit. Pain persists despite medication.

SYSTEM INTERPRETATION:
Functional decline suggests the current plan is not controlling symptoms. An orthopedic review is warranted.

KEY FINDINGS:
Worsening grip with ongoing pain; medication refill requested and orthopedic consult scheduled.

ADL EFFECT POINTS:
- Difficulty gripping objects
- Limited ability to carry groceries
- Dressing takes longer

INTAKE PATIENT POINTS:
- Medication refill requested
- New orthopedic appointment
- Grip reported worse

GENERATED POINTS:
- Grip strength worsening (Red)
- Confirm refill with pharmacy (Amber)
- Ortho consult scheduled (Blue)
"""

ADL_REPLY = "gripping, carrying groceries, dressing\nlifting heavy objects, repetitive gripping"


class FakeNarrativeClient(BaseNarrativeClient):
    """
    Scripted generator client.

    Replies with `text` for narrative prompts and `adl_text` for ADL prompts,
    after `delay` seconds. `error` / `adl_error` are raised instead when set.
    """

    def __init__(
        self,
        text: str = WELL_FORMED_REPLY,
        adl_text: str = ADL_REPLY,
        delay: float = 0.0,
        error: Optional[Exception] = None,
        adl_delay: float = 0.0,
        adl_error: Optional[Exception] = None,
    ):
        super().__init__({})
        self.text = text
        self.adl_text = adl_text
        self.delay = delay
        self.error = error
        self.adl_delay = adl_delay
        self.adl_error = adl_error
        self.calls: List[Dict[str, Any]] = []
        self.cancelled = 0

    @property
    def backend_type(self) -> BackendType:
        return BackendType.OPENAI

    @property
    def model_name(self) -> str:
        return "fake-model"

    async def generate(self, prompt, system_prompt=None, model=None, max_tokens=None, temperature=None):
        is_adl = system_prompt == ADL_SYSTEM_PROMPT
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "temperature": temperature,
            "max_tokens": max_tokens,
            "adl": is_adl,
        })

        delay = self.adl_delay if is_adl else self.delay
        error = self.adl_error if is_adl else self.error
        try:
            if delay:
                await asyncio.sleep(delay)
        except asyncio.CancelledError:
            self.cancelled += 1
            raise
        if error is not None:
            raise error

        return {
            "text": self.adl_text if is_adl else self.text,
            "model": self.model_name,
            "backend": "openai",
            "prompt_tokens": 0,
            "generated_tokens": 0,
            "inference_time": delay,
        }

    async def health_check(self) -> Dict[str, Any]:
        return {"healthy": True, "backend": "openai", "model": self.model_name, "details": "fake"}

    @property
    def narrative_calls(self) -> List[Dict[str, Any]]:
        return [c for c in self.calls if not c["adl"]]


@pytest.fixture
def lopez_payload():
    """The reference submission used across the pipeline tests"""
    return {
        "patientName": "Lopez, M",
        "dob": "1980-01-01",
        "refill": {"needed": True},
        "adl": {"state": "worse", "list": ["grip"]},
        "newAppointments": [{"type": "Ortho"}],
    }


@pytest.fixture
def lopez_record(lopez_payload):
    return aggregate_intake(lopez_payload)


@pytest.fixture
def well_formed_reply():
    return WELL_FORMED_REPLY


@pytest.fixture
def fake_client():
    return FakeNarrativeClient()


@pytest.fixture
def store(tmp_path):
    """Intake update store in a throwaway database"""
    return IntakeUpdateStore(tmp_path / "intake_updates.db")


@pytest.fixture
def make_pipeline(store):
    """Build a pipeline around a fake client and the temp store"""
    def _make(client: Optional[BaseNarrativeClient] = None, **config):
        settings = {"narrative_timeout": 1.0, "adl_timeout": 1.0}
        settings.update(config)
        return IntakeUpdatePipeline(
            client=client or FakeNarrativeClient(),
            store=store,
            config=settings,
        )
    return _make


@pytest.fixture
def fake_client_cls():
    """The scripted client class, for tests that need custom replies"""
    return FakeNarrativeClient
