"""
Exception hierarchy for throttling.

Denials are not exceptions: they come back as admission decisions.
"""


class ThrottleError(Exception):
    """Base class for all throttling errors."""


class ConfigurationError(ThrottleError, ValueError):
    """Raised when a throttle is configured with invalid values."""


class LockServiceError(ThrottleError):
    """
    Raised by lock service clients when the service cannot answer.

    Covers transport failures and timeouts. A clean "no slot available"
    answer is never reported this way.
    """

    def __init__(self, message: str, key: str | None = None):
        super().__init__(message)
        self.key = key
