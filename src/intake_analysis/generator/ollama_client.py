# ============================================================================
# src/intake_analysis/generator/ollama_client.py
# ============================================================================
"""
Ollama Narrative Client

Uses a local Ollama server for narrative generation, for offices that keep
patient data on-premises.

Setup:
    1. Install Ollama: https://ollama.ai
    2. Pull model: ollama pull llama3.1:8b
    3. Start server: ollama serve (or it runs automatically)
"""

import aiohttp
import asyncio
import time
from typing import Dict, Any, Optional

from .base import BaseNarrativeClient, BackendType
from ..utils.exceptions import GenerationError

DEFAULT_OLLAMA_MODEL = "llama3.1:8b"


class OllamaNarrativeClient(BaseNarrativeClient):
    """
    Ollama-based narrative client (/api/chat).

    Config options:
        ollama_host: Ollama server URL (default: http://localhost:11434)
        ollama_model: Model name (default: llama3.1:8b)
        max_tokens: Default max tokens (default: 800)
        temperature: Default temperature (default: 0.2)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)

        self.host = self.config.get('ollama_host', 'http://localhost:11434').rstrip('/')
        self._model_name = self.config.get('ollama_model', DEFAULT_OLLAMA_MODEL)

        # HTTP session (created lazily, tied to event loop)
        self._session: Optional[aiohttp.ClientSession] = None
        self._session_loop: Optional[asyncio.AbstractEventLoop] = None

        self.logger.info(f"Initialized Ollama client: {self.host} / {self._model_name}")

    @property
    def backend_type(self) -> BackendType:
        return BackendType.OLLAMA

    @property
    def model_name(self) -> str:
        return self._model_name

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session for current event loop."""
        current_loop = asyncio.get_running_loop()

        needs_new_session = (
            self._session is None
            or self._session.closed
            or self._session_loop is not current_loop
        )

        if needs_new_session:
            if self._session is not None and not self._session.closed:
                await self._session.close()

            timeout = aiohttp.ClientTimeout(
                total=None,       # Overall budget is enforced by the caller
                sock_connect=10,
            )
            self._session = aiohttp.ClientSession(timeout=timeout)
            self._session_loop = current_loop

        return self._session

    async def close(self):
        """Close HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None
        self._session_loop = None

    async def health_check(self) -> Dict[str, Any]:
        """
        Check if Ollama server is running and model is available.
        """
        try:
            session = await self._get_session()

            async with session.get(f"{self.host}/api/tags") as response:
                if response.status != 200:
                    return {
                        "healthy": False,
                        "backend": "ollama",
                        "model": self._model_name,
                        "details": f"Ollama server returned status {response.status}"
                    }

                data = await response.json()
                models = [m.get('name', '') for m in data.get('models', [])]

                if not any(self._model_name in m for m in models):
                    return {
                        "healthy": False,
                        "backend": "ollama",
                        "model": self._model_name,
                        "details": f"Model not found. Available: {models}. Run: ollama pull {self._model_name}"
                    }

                return {
                    "healthy": True,
                    "backend": "ollama",
                    "model": self._model_name,
                    "details": "Ollama server running and model available"
                }

        except aiohttp.ClientError as e:
            return {
                "healthy": False,
                "backend": "ollama",
                "model": self._model_name,
                "details": f"Cannot connect to Ollama at {self.host}: {e}"
            }

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> Dict[str, Any]:
        start = time.monotonic()
        model = model or self._model_name
        max_tokens = max_tokens or self.default_max_tokens
        temperature = temperature if temperature is not None else self.default_temperature

        payload = {
            "model": model,
            "messages": self._build_messages(prompt, system_prompt),
            "stream": False,
            "options": {
                "num_predict": max_tokens,
                "temperature": temperature,
            }
        }

        try:
            session = await self._get_session()
            async with session.post(f"{self.host}/api/chat", json=payload) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise GenerationError(
                        f"Ollama error ({response.status}): {error_text[:200]}",
                        backend="ollama",
                    )
                data = await response.json()
        except aiohttp.ClientError as e:
            self._record_failure()
            raise GenerationError(f"Cannot reach Ollama at {self.host}: {e}", backend="ollama") from e
        except GenerationError:
            self._record_failure()
            raise

        text = (data.get('message') or {}).get('content', '').strip()
        if not text:
            self._record_failure()
            raise GenerationError("Empty response from narrative generator", backend="ollama")

        inference_time = time.monotonic() - start
        self._record_success(inference_time)

        generated_tokens = data.get('eval_count', 0)
        self.logger.info(f"Generated {generated_tokens} tokens in {inference_time:.2f}s (model={model})")

        return {
            "text": text,
            "model": model,
            "backend": "ollama",
            "prompt_tokens": data.get('prompt_eval_count', 0),
            "generated_tokens": generated_tokens,
            "inference_time": inference_time,
        }

    def get_statistics(self) -> Dict[str, Any]:
        stats = super().get_statistics()
        stats["ollama_host"] = self.host
        return stats
