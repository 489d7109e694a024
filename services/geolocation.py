import asyncio
import logging
from typing import Optional, Protocol

from core.exceptions import (
    GeolocationError,
    LocationPermissionDenied,
    LocationTimeout,
    PositionUnavailable,
)
from models.location import LocationSample

logger = logging.getLogger(__name__)

# Device error codes as reported by the browser/mobile positioning API
DEVICE_ERRORS: dict[str, type[GeolocationError]] = {
    LocationPermissionDenied.code: LocationPermissionDenied,
    PositionUnavailable.code: PositionUnavailable,
    LocationTimeout.code: LocationTimeout,
}


class GeolocationProvider(Protocol):
    """Interface for the device positioning API."""

    async def get_current_location(self) -> LocationSample:
        """Return a fresh sample or raise a GeolocationError."""
        ...


class ClientReportedLocation:
    """
    Location reported by the client with the access check request.

    The device fetch itself happens on the client; it forwards either the
    sample or the error code it got, and this provider replays it.
    """

    def __init__(
        self,
        sample: Optional[LocationSample] = None,
        error_code: Optional[str] = None,
        error_message: Optional[str] = None,
    ):
        self.sample = sample
        self.error_code = error_code
        self.error_message = error_message

    async def get_current_location(self) -> LocationSample:
        if self.error_code:
            error_cls = DEVICE_ERRORS.get(self.error_code.upper(), PositionUnavailable)
            raise error_cls(self.error_message)
        if self.sample is None:
            raise PositionUnavailable()
        return self.sample


async def fetch_location(provider: GeolocationProvider, timeout_seconds: float = 30) -> LocationSample:
    """Ask the provider for a sample, failing with LocationTimeout instead of hanging."""
    try:
        return await asyncio.wait_for(provider.get_current_location(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Location fetch timed out after {timeout_seconds}s")
        raise LocationTimeout()
