# ============================================================================
# src/intake_analysis/config/__init__.py
# ============================================================================
"""
Convenient imports for all settings
"""

from .base_config import base_settings
from .logging_config import logging_settings
