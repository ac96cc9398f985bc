# ============================================================================
# src/intake_analysis/core/config.py
# ============================================================================
"""
Centralized Configuration Management

Loads configuration from environment variables (.env file) with sensible defaults.
All config values flow from this single source of truth.

Usage:
    from intake_analysis.core.config import get_config, Config

    # Get full config dict
    config = get_config()

    # Or use Config class for attribute access
    cfg = Config()
    print(cfg.narrative_timeout)
"""

import os
from pathlib import Path
from typing import Dict, Any
from dataclasses import dataclass, field, asdict
from functools import lru_cache

from dotenv import load_dotenv


def _load_dotenv() -> bool:
    """Load .env file if it exists."""
    # Look for .env in project root
    env_path = Path(__file__).parent.parent.parent.parent / '.env'
    if env_path.exists():
        load_dotenv(env_path)
        return True

    # Also check current working directory
    cwd_env = Path.cwd() / '.env'
    if cwd_env.exists():
        load_dotenv(cwd_env)
        return True

    return False


def _get_int(key: str, default: int = 0) -> int:
    """Get integer from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_float(key: str, default: float = 0.0) -> float:
    """Get float from environment variable."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class Config:
    """
    Configuration container with attribute access.

    All values are loaded from environment variables with defaults.
    """

    # General
    log_level: str = field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO'))
    db_path: str = field(default_factory=lambda: os.getenv('INTAKE_DB_PATH', 'data/intake_updates.db'))

    # Narrative generator backend: "openai" | "azure" | "ollama"
    backend: str = field(default_factory=lambda: os.getenv('NARRATIVE_BACKEND', 'openai'))

    # OpenAI
    openai_api_key: str = field(default_factory=lambda: os.getenv('OPENAI_API_KEY', ''))
    openai_model: str = field(default_factory=lambda: os.getenv('OPENAI_MODEL', 'gpt-4o-mini'))
    openai_base_url: str = field(default_factory=lambda: os.getenv('OPENAI_BASE_URL', ''))

    # Azure OpenAI
    azure_deployment: str = field(default_factory=lambda: os.getenv('AZURE_OPENAI_CHAT_MODEL_DEPLOYMENT', 'gpt-4o-mini'))
    azure_endpoint: str = field(default_factory=lambda: os.getenv('AZURE_OPENAI_ENDPOINT', ''))
    azure_api_key: str = field(default_factory=lambda: os.getenv('AZURE_OPENAI_API_KEY', ''))
    azure_api_version: str = field(default_factory=lambda: os.getenv('AZURE_OPENAI_API_VERSION', '2024-02-01'))

    # Ollama
    ollama_host: str = field(default_factory=lambda: os.getenv('OLLAMA_HOST', 'http://localhost:11434'))
    ollama_model: str = field(default_factory=lambda: os.getenv('OLLAMA_MODEL', 'llama3.1:8b'))

    # Narrative generation
    max_tokens: int = field(default_factory=lambda: _get_int('NARRATIVE_MAX_TOKENS', 800))
    temperature: float = field(default_factory=lambda: _get_float('NARRATIVE_TEMPERATURE', 0.2))
    narrative_timeout: float = field(default_factory=lambda: _get_float('NARRATIVE_TIMEOUT', 25.0))

    # ADL / work restriction inference runs beside the narrative call with its own budget
    adl_temperature: float = field(default_factory=lambda: _get_float('ADL_TEMPERATURE', 0.1))
    adl_max_tokens: int = field(default_factory=lambda: _get_int('ADL_MAX_TOKENS', 200))
    adl_timeout: float = field(default_factory=lambda: _get_float('ADL_TIMEOUT', 25.0))

    def __post_init__(self):
        """Ensure .env is loaded before accessing values."""
        _load_dotenv()

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary for passing to components."""
        return asdict(self)


@lru_cache(maxsize=1)
def get_config() -> Dict[str, Any]:
    """
    Get configuration dictionary.

    Cached for performance - call once and pass to components.

    Returns:
        Configuration dictionary with all settings
    """
    _load_dotenv()
    return Config().to_dict()


def get_config_instance() -> Config:
    """Get Config instance for attribute access."""
    _load_dotenv()
    return Config()


def reload_config() -> Dict[str, Any]:
    """Reload configuration from environment."""
    get_config.cache_clear()
    return get_config()
