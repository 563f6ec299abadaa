"""Custom exceptions for Prescience."""


class PrescienceError(Exception):
    """Base exception for all Prescience errors."""

    def __init__(self, message: str, *args: object) -> None:
        self.message = message
        super().__init__(message, *args)


# Upstream errors
class UpstreamError(PrescienceError):
    """Base error for the prediction-market API layer."""


class UpstreamUnavailableError(UpstreamError):
    """Top-level market listing failed (transport error or non-2xx)."""


# Storage errors
class StorageError(PrescienceError):
    """Base error for the persisted JSON files."""


class StorageWriteError(StorageError):
    """Writing a persisted file failed; fatal for the current invocation."""


# Publishing errors
class PublishError(PrescienceError):
    """Base error for the signal publisher."""


class PublisherConfigError(PublishError):
    """Publisher cannot emit (e.g. messaging credentials missing)."""
