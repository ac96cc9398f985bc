# ============================================================================
# src/intake_analysis/generator/base.py
# ============================================================================
"""
Base Narrative Generator Client Interface

Defines the abstract interface that all narrative generator backends must
implement. Supported backends:
- openai: OpenAI chat completions
- azure: Azure OpenAI deployment
- ollama: Ollama server (local models)
"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from enum import Enum
import logging


class BackendType(Enum):
    """Supported generation backends."""
    OPENAI = "openai"
    AZURE = "azure"
    OLLAMA = "ollama"


class BaseNarrativeClient(ABC):
    """
    Abstract base class for narrative generator clients.

    All backends must implement:
    - generate(): Async text generation from a system + user prompt
    - health_check(): Verify backend is available

    Clients never retry. Timeouts are enforced by the caller, which cancels
    the generate() task when its budget runs out.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.logger = logging.getLogger(self.__class__.__name__)

        self.default_max_tokens = self.config.get('max_tokens', 800)
        self.default_temperature = self.config.get('temperature', 0.2)

        # Common statistics
        self._inference_count = 0
        self._failure_count = 0
        self._total_inference_time = 0.0

    @property
    @abstractmethod
    def backend_type(self) -> BackendType:
        """Return the backend type."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the default model / deployment identifier."""
        pass

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Generate a completion.

        Args:
            prompt: User prompt
            system_prompt: System instruction
            model: Model / deployment override
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0.0 = deterministic)

        Returns:
            {
                "text": str,              # Generated text
                "model": str,             # Model identifier
                "backend": str,           # Backend type
                "prompt_tokens": int,
                "generated_tokens": int,
                "inference_time": float,  # Seconds
            }

        Raises:
            GenerationError: network error, non-2xx response or empty reply
        """
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """
        Check if the backend is available and ready.

        Returns:
            {
                "healthy": bool,
                "backend": str,
                "model": str,
                "details": str
            }
        """
        pass

    async def close(self):
        """Release network resources held by the client."""
        return None

    def _build_messages(self, prompt: str, system_prompt: Optional[str]) -> list:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    def _record_success(self, inference_time: float):
        self._inference_count += 1
        self._total_inference_time += inference_time

    def _record_failure(self):
        self._failure_count += 1

    def get_statistics(self) -> Dict[str, Any]:
        """Get inference statistics."""
        avg_time = (
            self._total_inference_time / self._inference_count
            if self._inference_count > 0
            else 0.0
        )

        return {
            "backend": self.backend_type.value,
            "model": self.model_name,
            "inference_count": self._inference_count,
            "failure_count": self._failure_count,
            "total_inference_time": self._total_inference_time,
            "average_inference_time": avg_time,
        }
