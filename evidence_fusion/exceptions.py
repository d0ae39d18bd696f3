"""
Exception hierarchy for the evidence fusion engine.

These exceptions are raised where a failure is detected and caught at
component boundaries, where they are converted into degraded results.
None of them escape ``FusionEngine.evaluate``.
"""
from typing import Optional


class FusionError(Exception):
    """Base exception for fusion engine errors."""
    def __init__(self, message: str, component: Optional[str] = None):
        self.message = message
        self.component = component
        super().__init__(self.message)


class DataUnavailableError(FusionError):
    """A required reading could not be obtained even after fallback."""
    pass


class ConfigurationError(FusionError):
    """Configuration values that cannot be used as given."""
    pass


class ZoneComputationError(FusionError):
    """Not enough price history to detect swing zones."""
    pass
