"""Error taxonomy shared across the harvester."""

from __future__ import annotations


class HarvesterError(RuntimeError):
    """Base class for errors raised by listing-harvester."""


class ConfigurationError(HarvesterError):
    """Raised when catalog or global configuration is invalid."""


class FetchError(HarvesterError):
    """Raised when a remote resource could not be fetched after all attempts."""

    def __init__(self, url: str, attempts: int, last_error: Exception | None = None) -> None:
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error is not None else ""
        super().__init__(f"Fetch failed after {attempts} attempts: {url}{detail}")


class PersistenceError(HarvesterError):
    """Raised when the durable record store cannot be read or written."""


class RunInProgressError(HarvesterError):
    """Raised when a synchronous run is requested while another run is active."""


__all__ = [
    "ConfigurationError",
    "FetchError",
    "HarvesterError",
    "PersistenceError",
    "RunInProgressError",
]
