# ============================================================================
# src/intake_analysis/generator/__init__.py
# ============================================================================
"""
Narrative generator module - hosted or local LLM clients and prompts
"""

from .base import BaseNarrativeClient, BackendType
from .client import create_client, close_clients
from .prompts import (
    NARRATIVE_SYSTEM_PROMPT,
    ADL_SYSTEM_PROMPT,
    build_narrative_prompt,
    build_adl_prompt,
)

__all__ = [
    "BaseNarrativeClient",
    "BackendType",
    "create_client",
    "close_clients",
    "NARRATIVE_SYSTEM_PROMPT",
    "ADL_SYSTEM_PROMPT",
    "build_narrative_prompt",
    "build_adl_prompt",
]
