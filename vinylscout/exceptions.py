"""Exception hierarchy shared by the transport, services and routes."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from vinylscout.acquisition.types import ErrorKind


class VinylScoutError(Exception):
    """Base for all errors raised by this package."""


class ConfigurationError(VinylScoutError):
    """A required credential or setting is missing. Never retried."""


class TransportError(VinylScoutError):
    """A provider call failed at the transport level.

    ``kind`` is the only thing the scheduler looks at; ``status`` and the
    message are kept for diagnostics.
    """

    def __init__(self, kind: ErrorKind, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.kind.retryable


class ImageFetchError(VinylScoutError):
    """The shelf photo could not be downloaded or is not a readable image."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
