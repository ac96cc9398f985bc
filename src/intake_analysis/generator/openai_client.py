# ============================================================================
# src/intake_analysis/generator/openai_client.py
# ============================================================================
"""
OpenAI / Azure OpenAI Narrative Client

Sends the intake prompt to a hosted chat-completions model.

- backend "openai": api.openai.com (or OPENAI_BASE_URL), model gpt-4o-mini
- backend "azure":  Azure OpenAI, model = deployment name

The SDK's built-in retries are disabled: the call runs inside a user-facing
request and is single-shot.

Usage:
    client = OpenAINarrativeClient({"openai_api_key": "..."})
    result = await client.generate(prompt, system_prompt=NARRATIVE_SYSTEM_PROMPT)
"""

import time
from typing import Dict, Any, Optional

import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI

from .base import BaseNarrativeClient, BackendType
from ..utils.exceptions import GenerationError

DEFAULT_OPENAI_MODEL = "gpt-4o-mini"


class OpenAINarrativeClient(BaseNarrativeClient):
    """
    Chat-completions client for OpenAI and Azure OpenAI.

    Config options:
        backend: "openai" | "azure" (default: openai)
        openai_api_key / openai_model / openai_base_url
        azure_endpoint / azure_api_key / azure_api_version / azure_deployment
        max_tokens: Default max tokens (default: 800)
        temperature: Default temperature (default: 0.2)
        narrative_timeout: Transport-level timeout in seconds (default: 25)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        super().__init__(config)
        self._client = None

        self.use_azure = str(self.config.get('backend', 'openai')).lower() == 'azure'

        self.api_key = self.config.get('openai_api_key', '')
        self.base_url = self.config.get('openai_base_url') or None
        self.azure_endpoint = self.config.get('azure_endpoint', '')
        self.azure_api_key = self.config.get('azure_api_key', '')
        self.azure_api_version = self.config.get('azure_api_version', '2024-02-01')

        if self.use_azure:
            self._model_name = self.config.get('azure_deployment') or DEFAULT_OPENAI_MODEL
        else:
            self._model_name = self.config.get('openai_model') or DEFAULT_OPENAI_MODEL

        self.timeout = float(self.config.get('narrative_timeout', 25.0))

        if not self.is_configured():
            self.logger.warning(
                "Narrative generator credentials not configured. "
                "Set OPENAI_API_KEY (or AZURE_OPENAI_ENDPOINT and AZURE_OPENAI_API_KEY)."
            )

    @property
    def backend_type(self) -> BackendType:
        return BackendType.AZURE if self.use_azure else BackendType.OPENAI

    @property
    def model_name(self) -> str:
        return self._model_name

    @property
    def client(self):
        """Lazy load the async SDK client."""
        if self._client is None:
            if self.use_azure:
                self._client = AsyncAzureOpenAI(
                    azure_endpoint=self.azure_endpoint,
                    api_key=self.azure_api_key,
                    api_version=self.azure_api_version,
                    max_retries=0,
                    timeout=self.timeout,
                )
                self.logger.info(f"Azure OpenAI client initialized: deployment={self._model_name}")
            else:
                self._client = AsyncOpenAI(
                    api_key=self.api_key or None,
                    base_url=self.base_url,
                    max_retries=0,
                    timeout=self.timeout,
                )
                self.logger.info(f"OpenAI client initialized: model={self._model_name}")
        return self._client

    def is_configured(self) -> bool:
        if self.use_azure:
            return bool(self.azure_endpoint and self.azure_api_key and self._model_name)
        return bool(self.api_key)

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

        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=self._build_messages(prompt, system_prompt),
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except openai.APIStatusError as e:
            self._record_failure()
            raise GenerationError(
                f"{self.backend_type.value} returned status {e.status_code}: {e.message}",
                backend=self.backend_type.value,
            ) from e
        except openai.OpenAIError as e:
            self._record_failure()
            raise GenerationError(
                f"{self.backend_type.value} request failed: {e}",
                backend=self.backend_type.value,
            ) from e

        text = ""
        if response.choices:
            text = (response.choices[0].message.content or "").strip()
        if not text:
            self._record_failure()
            raise GenerationError("Empty response from narrative generator", backend=self.backend_type.value)

        inference_time = time.monotonic() - start
        self._record_success(inference_time)

        usage = response.usage
        prompt_tokens = usage.prompt_tokens if usage else 0
        generated_tokens = usage.completion_tokens if usage else 0

        self.logger.info(
            f"Generated {generated_tokens} tokens in {inference_time:.2f}s (model={model})"
        )

        return {
            "text": text,
            "model": model,
            "backend": self.backend_type.value,
            "prompt_tokens": prompt_tokens,
            "generated_tokens": generated_tokens,
            "inference_time": inference_time,
        }

    async def health_check(self) -> Dict[str, Any]:
        if not self.is_configured():
            return {
                "healthy": False,
                "backend": self.backend_type.value,
                "model": self._model_name,
                "details": "Credentials not configured",
            }
        try:
            await self.client.models.list()
        except openai.OpenAIError as e:
            return {
                "healthy": False,
                "backend": self.backend_type.value,
                "model": self._model_name,
                "details": f"Health check failed: {e}",
            }
        return {
            "healthy": True,
            "backend": self.backend_type.value,
            "model": self._model_name,
            "details": "API reachable",
        }

    async def close(self):
        if self._client is not None:
            await self._client.close()
            self._client = None
