"""
Defines custom exceptions for the application to allow for more specific error handling.
"""

from typing import Optional


class CrowdplayError(Exception):
    """Base exception for all application-specific errors."""


class RemoteUnavailableError(CrowdplayError):
    """Raised when the counter store cannot be reached (network or transport failure)."""


class RemoteError(CrowdplayError):
    """Raised when the counter store answers with a non-success status or a bad body."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class RecordNotFoundError(CrowdplayError):
    """Raised when an update targets a track that has no counter record yet."""


class PlaybackResourceError(CrowdplayError):
    """Raised when the audio output fails to load or play a source."""


class ConfigurationError(CrowdplayError):
    """Raised for issues related to configuration loading or validation."""


class SessionError(CrowdplayError):
    """Raised when a second playback session is opened while one is still live."""
