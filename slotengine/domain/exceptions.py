"""
Domain-specific exception hierarchy for the availability engine.
"""


class SlotEngineError(Exception):
    """Base class for all application-level errors."""


class InvalidTimeError(SlotEngineError, ValueError):
    """Raised when a time or date string cannot be parsed."""


class ConfigurationError(SlotEngineError):
    """Raised when configuration cannot be loaded or validated."""
