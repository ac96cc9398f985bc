# ============================================================================
# src/intake_analysis/__init__.py
# ============================================================================
"""
Patient intake update analysis

aggregate -> narrative request -> section parse -> persist
"""

__version__ = "1.0.0"
