# ============================================================================
# src/intake_analysis/utils/exceptions.py
# ============================================================================
"""
Custom exceptions for the intake analysis service.
"""

from typing import Optional


class IntakeAnalysisError(Exception):
    """Base exception for all intake analysis errors."""
    pass


class ValidationError(IntakeAnalysisError):
    """Submission rejected before any external call."""
    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(message)
        self.field_name = field_name


class ConfigurationError(IntakeAnalysisError):
    """Invalid configuration."""
    pass


class GenerationError(IntakeAnalysisError):
    """Narrative generator call failed (network, non-2xx, empty reply)."""
    def __init__(self, message: str, backend: Optional[str] = None):
        super().__init__(message)
        self.backend = backend


class GenerationTimeoutError(GenerationError):
    """Narrative generator did not answer within the configured timeout."""
    def __init__(self, message: str, timeout: float, backend: Optional[str] = None):
        super().__init__(message, backend=backend)
        self.timeout = timeout


class ResponseParseError(IntakeAnalysisError):
    """Generator reply could not be mapped onto the expected layout."""
    pass


class StoreError(IntakeAnalysisError):
    """Error reading from or writing to the intake update store."""
    pass


class PersistenceError(StoreError):
    """Both the full write and the error-tagged stub write failed."""
    def __init__(self, message: str, original_error: Optional[str] = None):
        super().__init__(message)
        self.original_error = original_error
