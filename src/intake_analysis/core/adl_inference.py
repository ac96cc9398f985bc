# ============================================================================
# src/intake_analysis/core/adl_inference.py
# ============================================================================
"""
ADL / Work Restriction Inference

Asks the narrative generator for two comma-separated lines:
    Line 1: affected daily activities
    Line 2: work restrictions

Runs beside the narrative request with its own timeout. Its failures are
never allowed to affect the intake update itself.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .intake import IntakeRecord
from ..generator.base import BaseNarrativeClient
from ..generator.prompts import ADL_SYSTEM_PROMPT, build_adl_prompt
from ..utils.exceptions import GenerationTimeoutError, ResponseParseError

# "Line 1:", "1.", "- ", "ADLs Affected:" before the phrases
_LINE_LABEL = re.compile(
    r"^\s*(?:[-•*]\s*)?(?:line\s*\d\s*[:.)-]\s*|\d[.)]\s*)?"
    r"(?:(?:adls?(?: affected)?|affected (?:adls|activities)|work restrictions?)\s*:\s*)?",
    re.IGNORECASE,
)


@dataclass
class AdlInferenceResult:
    adls_affected: str
    work_restrictions: str

    def to_dict(self) -> Dict[str, str]:
        return {
            "adlsAffected": self.adls_affected,
            "workRestrictions": self.work_restrictions,
        }


def _clean_line(line: str) -> str:
    line = _LINE_LABEL.sub("", line, count=1)
    return line.strip().strip('"').strip("*").strip()


def parse_adl_lines(text: str) -> Tuple[str, str]:
    """
    Pull (adls_affected, work_restrictions) from a generator reply.

    Raises:
        ResponseParseError: fewer than two non-blank lines
    """
    lines = [_clean_line(line) for line in (text or "").splitlines()]
    lines = [line for line in lines if line]
    if len(lines) < 2:
        raise ResponseParseError(
            f"Expected 2 lines of ADL output, got {len(lines)}"
        )
    return lines[0], lines[1]


class AdlInferenceAgent:
    """
    Infers affected ADLs and work restrictions from an intake record.
    """

    def __init__(self, client: BaseNarrativeClient, config: Optional[Dict[str, Any]] = None):
        self.client = client
        self.config = config or {}
        self.logger = logging.getLogger(self.__class__.__name__)

        self.timeout = float(self.config.get('adl_timeout', 25.0))
        self.temperature = float(self.config.get('adl_temperature', 0.1))
        self.max_tokens = int(self.config.get('adl_max_tokens', 200))

    async def infer(
        self,
        record: IntakeRecord,
        previous: Optional[Dict[str, Any]] = None,
    ) -> AdlInferenceResult:
        """
        Run one inference.

        Args:
            record: Aggregated intake
            previous: Last stored {"adlsAffected", "workRestrictions"}, if any

        Raises:
            GenerationTimeoutError: no reply within the ADL timeout
            GenerationError: generator call failed
            ResponseParseError: reply did not contain two lines
        """
        prompt = build_adl_prompt(record, previous)
        try:
            result = await asyncio.wait_for(
                self.client.generate(
                    prompt,
                    system_prompt=ADL_SYSTEM_PROMPT,
                    max_tokens=self.max_tokens,
                    temperature=self.temperature,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise GenerationTimeoutError(
                f"ADL inference timed out after {self.timeout}s",
                timeout=self.timeout,
                backend=self.client.backend_type.value,
            ) from e

        adls, restrictions = parse_adl_lines(result.get("text", ""))
        self.logger.info(f"ADL inference for {record.patient_name!r}: {adls!r} / {restrictions!r}")
        return AdlInferenceResult(adls_affected=adls, work_restrictions=restrictions)
