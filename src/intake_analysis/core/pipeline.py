# ============================================================================
# src/intake_analysis/core/pipeline.py
# ============================================================================
"""
Intake Update Pipeline

This is the MAIN entry point for processing a patient intake submission.

Flow:
1. Validate (patientName required, no external call otherwise)
2. Aggregate the questionnaire into an IntakeRecord
3. Concurrently:
   a. Request the narrative (own timeout, cancelled when it runs out)
   b. Infer ADL / work restrictions (own timeout, failures only logged,
      cancelled if still running at the narrative deadline)
4. Parse the narrative, or build the degraded placeholder
5. Persist (update-or-insert on the identity triple)

Every submission that passes validation ends in a stored record. If the full
write fails, a stub carrying only the identity and the error is written; only
when that also fails does the caller see an error.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .adl_inference import AdlInferenceAgent, AdlInferenceResult
from .config import get_config
from .intake import IntakeRecord, aggregate_intake, normalize_claim_number, normalize_dob, normalize_patient_name
from .parser import STATUS_FAILED, degraded_result, parse_narrative
from .sections import ParseResult
from .store import UNSPECIFIED, IntakeUpdateRecord, IntakeUpdateStore
from ..generator.base import BaseNarrativeClient
from ..generator.client import create_client
from ..generator.prompts import NARRATIVE_SYSTEM_PROMPT, build_narrative_prompt
from ..utils.exceptions import (
    GenerationError,
    GenerationTimeoutError,
    IntakeAnalysisError,
    PersistenceError,
    StoreError,
    ValidationError,
)
from ..utils.logging import LogContext


@dataclass
class GenerationOutcome:
    """What came back from the narrative generator, if anything."""
    text: Optional[str] = None
    reason: Optional[str] = None      # "timeout" | "error" when text is None
    error: Optional[str] = None
    elapsed: float = 0.0
    model: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.text is not None


@dataclass
class PipelineResult:
    record: IntakeUpdateRecord
    intake: IntakeRecord
    parse: Optional[ParseResult] = None
    adl: Optional[AdlInferenceResult] = None
    timings: Dict[str, float] = field(default_factory=dict)

    @property
    def status(self) -> Optional[str]:
        return self.record.status

    def to_dict(self) -> Dict[str, Any]:
        return self.record.to_dict()


class IntakeUpdatePipeline:
    """
    Turns one intake submission into a stored intake update.

    Components are injectable; by default the generator client comes from the
    factory and the store from the configured database path.
    """

    def __init__(
        self,
        client: Optional[BaseNarrativeClient] = None,
        store: Optional[IntakeUpdateStore] = None,
        config: Optional[Dict[str, Any]] = None,
    ):
        self.config = {**get_config(), **(config or {})}
        self.logger = logging.getLogger(self.__class__.__name__)

        self.client = client or create_client(self.config)
        self.store = store or IntakeUpdateStore(self.config.get('db_path'))
        self.adl_agent = AdlInferenceAgent(self.client, self.config)

        self.narrative_timeout = float(self.config.get('narrative_timeout', 25.0))
        self.temperature = float(self.config.get('temperature', 0.2))
        self.max_tokens = int(self.config.get('max_tokens', 800))
        self.adl_enabled = bool(self.config.get('adl_enabled', True))

        self.logger.info(
            f"Intake update pipeline initialized "
            f"(backend={self.client.backend_type.value}, timeout={self.narrative_timeout}s)"
        )

    # ========================================================================
    # SUBMISSION
    # ========================================================================

    async def submit(self, payload: Optional[Dict[str, Any]]) -> PipelineResult:
        """
        Process one intake submission.

        Args:
            payload: Raw submission (camelCase keys, every field optional
                     except patientName)

        Returns:
            PipelineResult wrapping the stored record

        Raises:
            ValidationError: patientName missing or blank
            PersistenceError: neither the record nor the error stub could be stored
        """
        payload = payload or {}
        if not normalize_patient_name(payload.get("patientName")):
            raise ValidationError("Patient name is required", field_name="patientName")

        start = time.monotonic()
        intake = aggregate_intake(payload)

        with LogContext(self.logger, patient_name=intake.patient_name, claim_number=intake.claim_number):
            self.logger.info(f"Processing intake update for {intake.patient_name!r}")

            # ADL never extends the submission past the narrative deadline
            deadline = time.monotonic() + self.narrative_timeout
            adl_task = asyncio.ensure_future(self._infer_adl(intake))
            try:
                generation = await self._generate_narrative(intake)
            except BaseException:
                adl_task.cancel()
                raise
            adl = await self._collect_adl(adl_task, deadline)

            if generation.succeeded:
                parse = parse_narrative(generation.text, intake)
            else:
                parse = degraded_result(intake, reason=generation.reason, error=generation.error)

            record = self._persist(intake, parse, generation)

            total = time.monotonic() - start
            self.logger.info(
                f"Intake update {record.id} stored with status {record.status} "
                f"({total:.2f}s, generation {generation.elapsed:.2f}s)"
            )

        return PipelineResult(
            record=record,
            intake=intake,
            parse=parse,
            adl=adl,
            timings={"total": total, "generation": generation.elapsed},
        )

    async def _generate_narrative(self, intake: IntakeRecord) -> GenerationOutcome:
        """Single-shot narrative request; timeouts cancel the request."""
        prompt = build_narrative_prompt(intake)
        start = time.monotonic()
        try:
            result = await asyncio.wait_for(
                self.client.generate(
                    prompt,
                    system_prompt=NARRATIVE_SYSTEM_PROMPT,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.narrative_timeout,
            )
        except asyncio.TimeoutError:
            elapsed = time.monotonic() - start
            error = GenerationTimeoutError(
                f"Narrative generation timed out after {self.narrative_timeout}s",
                timeout=self.narrative_timeout,
                backend=self.client.backend_type.value,
            )
            self.logger.warning(str(error))
            return GenerationOutcome(reason="timeout", error=str(error), elapsed=elapsed)
        except GenerationError as e:
            elapsed = time.monotonic() - start
            self.logger.warning(f"Narrative generation failed: {e}")
            return GenerationOutcome(reason="error", error=str(e), elapsed=elapsed)
        except Exception as e:
            elapsed = time.monotonic() - start
            self.logger.error(f"Narrative generator crashed: {e}", exc_info=True)
            return GenerationOutcome(reason="error", error=str(e), elapsed=elapsed)

        elapsed = time.monotonic() - start
        text = (result.get("text") or "").strip()
        if not text:
            self.logger.warning("Narrative generator returned an empty reply")
            return GenerationOutcome(reason="error", error="Empty response from narrative generator", elapsed=elapsed)

        return GenerationOutcome(text=text, elapsed=elapsed, model=result.get("model"))

    async def _infer_adl(self, intake: IntakeRecord) -> Optional[AdlInferenceResult]:
        """ADL inference in its own failure domain: errors are logged, never raised."""
        if not self.adl_enabled:
            return None

        try:
            previous = self.store.get_adl_restrictions(intake.identity)
            result = await self.adl_agent.infer(intake, previous)
            self.store.save_adl_restrictions(
                intake.identity, result.adls_affected, result.work_restrictions
            )
            return result
        except IntakeAnalysisError as e:
            self.logger.warning(f"ADL inference skipped for {intake.patient_name!r}: {e}")
            return None
        except Exception as e:
            self.logger.error(f"ADL inference crashed for {intake.patient_name!r}: {e}", exc_info=True)
            return None

    async def _collect_adl(
        self,
        task: "asyncio.Future[Optional[AdlInferenceResult]]",
        deadline: float,
    ) -> Optional[AdlInferenceResult]:
        """Wait for the ADL task until the deadline, then cancel it."""
        remaining = max(deadline - time.monotonic(), 0.0)
        done, _ = await asyncio.wait({task}, timeout=remaining)
        if task in done:
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        self.logger.warning(
            f"ADL inference cancelled: still running at the {self.narrative_timeout}s narrative deadline"
        )
        return None

    # ========================================================================
    # PERSISTENCE
    # ========================================================================

    def _persist(
        self,
        intake: IntakeRecord,
        parse: ParseResult,
        generation: GenerationOutcome,
    ) -> IntakeUpdateRecord:
        sections = parse.sections
        fields = {
            "key_patient_reported_changes": sections.key_patient_reported_changes,
            "system_interpretation": sections.system_interpretation,
            "key_findings": sections.key_findings,
            "adl_effect_points": sections.adl_effect_points,
            "intake_patient_points": sections.intake_patient_points,
            "generated_points": [p.to_dict() for p in sections.generated_points],
            "med_refills_requested": intake.med_refills_requested,
            "new_appointments": intake.new_appointments_list,
            "adl_changes": intake.adl_changes_text,
        }

        intake_data = intake.to_intake_data()
        intake_data["status"] = parse.status
        intake_data["appliedFallbacks"] = parse.applied_fallbacks
        if parse.missing_sections:
            intake_data["missingSections"] = parse.missing_sections
        if parse.degraded:
            intake_data["fallbackReason"] = parse.fallback_reason
            intake_data["error"] = parse.error
        if generation.model:
            intake_data["model"] = generation.model

        try:
            return self.store.upsert(intake.identity, fields, intake_data)
        except StoreError as e:
            self.logger.error(f"Failed to store intake update for {intake.patient_name!r}: {e}")
            stub_data = {"status": STATUS_FAILED, "error": str(e)}
            try:
                return self.store.upsert(intake.identity, {}, stub_data)
            except StoreError as stub_error:
                self.logger.error(f"Failed to store error stub for {intake.patient_name!r}: {stub_error}")
                raise PersistenceError(
                    f"Could not persist intake update: {stub_error}",
                    original_error=str(e),
                ) from stub_error

    # ========================================================================
    # READ PATH
    # ========================================================================

    def get_latest(
        self,
        patient_name: str,
        dob: Optional[str] = None,
        claim_number: Any = UNSPECIFIED,
    ) -> Optional[IntakeUpdateRecord]:
        """
        Latest stored update for a patient.

        dob=None and an omitted claim_number do not filter; an explicit claim
        number is normalized first, so "Not specified" matches a NULL claim.
        """
        name = normalize_patient_name(patient_name)
        if not name:
            raise ValidationError("Patient name is required", field_name="patientName")

        dob_filter = normalize_dob(dob) if dob else UNSPECIFIED
        claim_filter = claim_number if claim_number is UNSPECIFIED else normalize_claim_number(claim_number)
        return self.store.find_latest(name, dob_filter, claim_filter)
