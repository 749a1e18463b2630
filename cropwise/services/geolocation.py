"""
Where is the farm?

The browser (or whatever embeds the workflow) usually knows the coordinate
and passes it in. Otherwise a fixed farm location from configuration is
used. With neither, location access is treated as denied.
"""
import logging
from typing import Awaitable, Callable, Dict, Optional

from ..errors import EnrichmentUnavailable

logger = logging.getLogger(__name__)

Geolocator = Callable[[], Awaitable[Dict[str, float]]]


def static_geolocator(lat: float, lng: float) -> Geolocator:
    async def locate() -> Dict[str, float]:
        return {"lat": lat, "lng": lng}

    return locate


async def _denied() -> Dict[str, float]:
    raise EnrichmentUnavailable("Location access denied or unavailable")


def geolocator_from_location(location: Optional[Dict[str, float]]) -> Geolocator:
    if location and location.get("lat") is not None and location.get("lng") is not None:
        return static_geolocator(float(location["lat"]), float(location["lng"]))
    logger.debug("[geolocation] no farm location configured; weather needs manual entry")
    return _denied
