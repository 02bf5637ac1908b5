"""Custom exception hierarchy for RoleSift."""


class RoleSiftError(Exception):
    """Base exception for all RoleSift errors."""


class ConfigurationError(RoleSiftError):
    """Raised when settings are invalid or missing."""


class BrowserLaunchError(RoleSiftError):
    """Raised when the browser fails to start."""


class ProviderError(RoleSiftError):
    """Raised when an AI provider call fails in a way worth retrying."""


class ProviderResponseError(ProviderError):
    """Raised when a provider answers with something other than a JSON object."""


class RetryExhaustedError(RoleSiftError):
    """Raised when every attempt of a retry policy has failed."""

    def __init__(self, label: str, attempts: int, last_error: BaseException | None) -> None:
        super().__init__(f"{label} failed after {attempts} attempt(s): {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


class TitleFilterError(RoleSiftError):
    """Raised when a title batch is exhausted under the ``abort`` policy."""


class SourceError(RoleSiftError):
    """Raised when a listing source or description extractor cannot produce data."""
