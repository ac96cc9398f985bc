# ============================================================================
# src/intake_analysis/utils/__init__.py
# ============================================================================
"""
Utility modules for the intake analysis service.
"""

from .exceptions import (
    IntakeAnalysisError,
    ValidationError,
    ConfigurationError,
    GenerationError,
    GenerationTimeoutError,
    ResponseParseError,
    StoreError,
    PersistenceError,
)

from .logging import (
    setup_logging,
    get_logger,
    JsonFormatter,
    LogContext,
    log_performance,
)

__all__ = [
    # Exceptions
    'IntakeAnalysisError',
    'ValidationError',
    'ConfigurationError',
    'GenerationError',
    'GenerationTimeoutError',
    'ResponseParseError',
    'StoreError',
    'PersistenceError',
    # Logging
    'setup_logging',
    'get_logger',
    'JsonFormatter',
    'LogContext',
    'log_performance',
]
