"""
Error taxonomy for the adaptation engine.

Request-level errors (`ValidationError`, `NotFoundError`, `JobStateError`)
abort a request before any work starts. Everything else is task-local: it is
caught at the per-size task boundary and recorded on the failed job.
"""

from __future__ import annotations

from typing import Any


class AdaptationError(RuntimeError):
    """Base class for every error raised by the adaptation engine."""

    retryable: bool = False


class ValidationError(AdaptationError):
    """Bad or missing request fields."""


class NotFoundError(AdaptationError):
    """Referenced job does not exist."""


class JobStateError(AdaptationError):
    """Requested status transition is not allowed for the job's current state."""


class InvalidSourceImage(AdaptationError):
    """Source image could not be decoded or has no usable dimensions."""


class SourceFetchError(AdaptationError):
    """An image could not be downloaded."""

    retryable = True


class StorageError(AdaptationError):
    """Blob upload or removal failed."""

    retryable = True


class ProviderError(AdaptationError):
    """An outpainting provider call failed before producing output."""

    retryable = True

    def __init__(self, message: str, provider: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderOutputError(ProviderError):
    """Provider responded with an output shape the gateway cannot resolve."""

    retryable = False

    def __init__(self, message: str, payload: Any, provider: str | None = None) -> None:
        raw = repr(payload)
        if len(raw) > 500:
            raw = raw[:500] + "..."
        super().__init__(f"{message}; raw payload: {raw}", provider=provider)
        self.payload = payload


class AdaptationTimeout(AdaptationError):
    """The batch wall-clock budget ran out before the task settled."""

    retryable = True
