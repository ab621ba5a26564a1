"""
Error taxonomy for Weather App backend.

Errors are carried inside result objects rather than raised out of the
core operations:
- FetchError family: returned by the weather API client
- StoreError family: returned by the score store
"""

from typing import Optional


class WeatherAppError(Exception):
    """Base class for every error the backend reports."""
    kind = "error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message or self.kind


class FetchError(WeatherAppError):
    """Failure of a weather fetch."""
    kind = "fetch"


class StoreError(WeatherAppError):
    """Failure of a score store operation."""
    kind = "store"


class InvalidInputError(FetchError, StoreError):
    """Caller passed an empty city or player name."""
    kind = "invalid_input"


class ConfigError(FetchError):
    """API key missing or left at its placeholder."""
    kind = "config"


class NetworkError(FetchError):
    """Server could not be reached (DNS, TCP, TLS, timeout)."""
    kind = "network"


class HttpError(FetchError):
    """Server answered with a non-2xx status."""
    kind = "http"

    def __init__(self, status: int, message: str = "") -> None:
        super().__init__(message)
        self.status = status

    def __str__(self) -> str:
        return f"HTTP {self.status}: {self.message}" if self.message else f"HTTP {self.status}"


class TransportError(FetchError):
    """Response arrived but its body could not be read."""
    kind = "transport"


class DecodeError(FetchError):
    """Body was not a decodable weather payload."""
    kind = "decode"


class StoreUnavailableError(StoreError):
    """Store was never opened, failed to open, or is already closed."""
    kind = "store_unavailable"


class IoError(StoreError):
    """Storage failed during a live operation."""
    kind = "io"


class StoreAlreadyOpenError(StoreError):
    """A second store was opened while another one is active."""
    kind = "store_already_open"

    def __init__(self, active_path: Optional[str] = None) -> None:
        super().__init__(f"A score store is already open at {active_path}")
        self.active_path = active_path
