"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class SoundRelayError(Exception):
    """Base exception for all application-specific errors."""


class QueueFullError(SoundRelayError):
    """Raised synchronously when the download backlog is at capacity."""

    def __init__(self, message: str = "Download queue is full."):
        super().__init__(message)


class RetrievalError(SoundRelayError):
    """
    Raised when the retrieval engine fails.

    Carries any captured standard output / standard error text so the failure
    can be classified (e.g. upstream rate limiting).
    """

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class UserFacingRetrievalError(RetrievalError):
    """
    Raised when a retrieval technically succeeded but produced nothing usable.
    `user_message` is ready to be shown to the requester as is.
    """

    def __init__(self, message: str, user_message: str):
        super().__init__(message)
        self.user_message = user_message


class LinkResolutionError(SoundRelayError):
    """Raised when the link-resolution service cannot be reached in time."""


class PersistenceError(SoundRelayError):
    """Raised when durable state could not be written to disk."""


class ConfigurationError(SoundRelayError):
    """Raised for issues related to configuration loading or validation."""


class QualityProbeError(SoundRelayError):
    """Raised when a bitrate measuring command fails."""

    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr
