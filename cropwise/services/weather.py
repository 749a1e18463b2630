import logging
from typing import Any, Dict, Optional

import httpx

from ..errors import EnrichmentUnavailable
from ..models import WeatherConditions

logger = logging.getLogger(__name__)

OWM_BASE = "https://api.openweathermap.org/data/2.5"
OPEN_METEO_BASE = "https://api.open-meteo.com/v1"


def _coords(location: Dict[str, float]):
    lat = location.get("lat")
    lon = location.get("lng") if location.get("lng") is not None else location.get("lon")
    if lat is None or lon is None:
        raise ValueError("location requires lat and lng/lon")
    return float(lat), float(lon)


async def fetch_current_weather(
    client: httpx.AsyncClient,
    location: Dict[str, float],
    api_key: str = "",
    base_url: str = OWM_BASE,
    fallback_base_url: Optional[str] = OPEN_METEO_BASE,
) -> WeatherConditions:
    """Current temperature, humidity and rainfall at a coordinate.

    OpenWeather is tried first when a key is configured; on a missing key or
    any failure the keyless Open-Meteo endpoint is used instead. Raises
    `EnrichmentUnavailable` when no provider answers.
    """
    lat, lon = _coords(location)
    first_error: Optional[Exception] = None
    if api_key:
        try:
            return await fetch_weather_openweather(client, lat, lon, api_key, base_url)
        except (httpx.HTTPError, AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("[weather] OpenWeather lookup failed, trying Open-Meteo: %s", e)
            first_error = e
    else:
        logger.debug("[weather] OPENWEATHER_API_KEY not set; using Open-Meteo")

    if not fallback_base_url:
        raise EnrichmentUnavailable(f"Weather API error: {first_error or 'no provider configured'}")
    try:
        return await fetch_weather_open_meteo(client, lat, lon, fallback_base_url)
    except (httpx.HTTPError, AttributeError, KeyError, TypeError, ValueError) as e2:
        if first_error is not None:
            raise EnrichmentUnavailable(f"Weather API error: {first_error}; fallback error: {e2}") from e2
        raise EnrichmentUnavailable(f"Weather API error: {e2}") from e2


async def fetch_weather_openweather(
    client: httpx.AsyncClient, lat: float, lon: float, api_key: str, base_url: str = OWM_BASE
) -> WeatherConditions:
    params = {"lat": lat, "lon": lon, "appid": api_key, "units": "metric"}
    resp = await client.get(f"{base_url.rstrip('/')}/weather", params=params)
    resp.raise_for_status()
    data: Dict[str, Any] = resp.json()

    main = data["main"]
    # `rain` is omitted entirely when nothing fell in the last hour
    rain = data.get("rain") or {}
    return WeatherConditions(
        temperature=float(main["temp"]),
        humidity=float(main["humidity"]),
        rainfall=float(rain.get("1h", 0.0)),
        source="openweather",
    )


async def fetch_weather_open_meteo(
    client: httpx.AsyncClient, lat: float, lon: float, base_url: str = OPEN_METEO_BASE
) -> WeatherConditions:
    """Fallback to the Open-Meteo public API, which needs no key."""
    params = {
        "latitude": lat,
        "longitude": lon,
        "current": "temperature_2m,relative_humidity_2m,precipitation",
        "timezone": "auto",
    }
    resp = await client.get(f"{base_url.rstrip('/')}/forecast", params=params)
    resp.raise_for_status()
    current = resp.json()["current"]

    temp = current.get("temperature_2m")
    humidity = current.get("relative_humidity_2m")
    if temp is None or humidity is None:
        raise ValueError("Open-Meteo response missing temperature or humidity")
    return WeatherConditions(
        temperature=float(temp),
        humidity=float(humidity),
        rainfall=float(current.get("precipitation") or 0.0),
        source="open-meteo",
    )
