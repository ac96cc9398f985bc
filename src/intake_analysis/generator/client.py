# ============================================================================
# src/intake_analysis/generator/client.py
# ============================================================================
"""
Narrative Client Factory

Provides a unified interface for creating narrative generator clients.
Supports multiple backends:
- openai: OpenAI chat completions (default)
- azure: Azure OpenAI deployment
- ollama: Ollama server

Usage:
    from intake_analysis.generator.client import create_client

    client = create_client()                      # backend from NARRATIVE_BACKEND
    client = create_client({'backend': 'ollama'})

    result = await client.generate(prompt, system_prompt=system)
"""

import logging
from typing import Dict, Any, Optional

from .base import BaseNarrativeClient, BackendType
from .openai_client import OpenAINarrativeClient, DEFAULT_OPENAI_MODEL
from .ollama_client import OllamaNarrativeClient, DEFAULT_OLLAMA_MODEL
from ..core.config import get_config
from ..utils.exceptions import ConfigurationError

DEFAULT_BACKEND = "openai"

# Singleton cache keyed by connection identity so HTTP sessions are reused
# across submissions.
_client_cache: Dict[tuple, BaseNarrativeClient] = {}

_logger = logging.getLogger(__name__)


def _cache_key(backend: str, config: Dict[str, Any]) -> tuple:
    if backend == "ollama":
        return (backend, config.get('ollama_host'), config.get('ollama_model'))
    if backend == "azure":
        return (backend, config.get('azure_endpoint'), config.get('azure_deployment'))
    return (backend, config.get('openai_base_url'), config.get('openai_model'))


def create_client(config: Optional[Dict[str, Any]] = None) -> BaseNarrativeClient:
    """
    Factory function to create a narrative generator client.

    Configuration is loaded from the environment (.env) and merged with any
    passed config. Passed config values take precedence.

    Args:
        config: Optional overrides, at minimum:
            - backend: "openai" | "azure" | "ollama" (default: "openai")

    Returns:
        Configured client instance (cached per connection identity)

    Raises:
        ConfigurationError: If backend type is not supported
    """
    env_config = get_config()
    config = {**env_config, **(config or {})}
    backend = str(config.get('backend') or DEFAULT_BACKEND).lower()

    key = _cache_key(backend, config)
    if key in _client_cache:
        _logger.debug(f"Reusing cached {backend} client: {key}")
        return _client_cache[key]

    if backend in ("openai", "azure"):
        client = OpenAINarrativeClient(config)
    elif backend == "ollama":
        client = OllamaNarrativeClient(config)
    else:
        raise ConfigurationError(
            f"Unknown narrative backend: {backend}. "
            f"Supported backends: {', '.join(b.value for b in BackendType)}"
        )

    _client_cache[key] = client
    _logger.info(f"Created and cached {backend} client: {key}")
    return client


async def close_clients():
    """Close and forget every cached client."""
    for client in list(_client_cache.values()):
        await client.close()
    _client_cache.clear()


__all__ = [
    "create_client",
    "close_clients",
    "BaseNarrativeClient",
    "BackendType",
    "OpenAINarrativeClient",
    "OllamaNarrativeClient",
    "DEFAULT_BACKEND",
    "DEFAULT_OPENAI_MODEL",
    "DEFAULT_OLLAMA_MODEL",
]
