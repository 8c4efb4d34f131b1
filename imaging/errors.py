"""Error types raised by the pipeline, storage and orchestration layers."""

from __future__ import annotations


class AppError(Exception):
    """Base class for errors rendered as HTTP responses."""

    status_code = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class BadRequestError(AppError):
    status_code = 400


class NotFoundError(AppError):
    status_code = 404

    def __init__(self, message: str = "Not Found") -> None:
        super().__init__(message)


class InternalServerError(AppError):
    """Opaque to the client; the message is only logged."""

    status_code = 500


class ImageOperationError(Exception):
    """Raised when Pillow fails to decode, transform or encode an image."""


class ModifierError(ImageOperationError):
    """Raised when a modifier cannot be applied to the working image."""


class NoValidOptionsError(Exception):
    """Raised when an option string yields no modifiers."""


class PipelineError(Exception):
    """Raised by the worker when a configuration cannot be processed."""


class ChannelClosedError(Exception):
    """Raised on the worker side once the consumer abandoned the channel."""


class StorageError(Exception):
    """Raised when a storage backend fails to read or write an object."""


class ObjectNotFoundError(StorageError):
    """Raised when a requested object does not exist."""
