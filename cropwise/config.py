"""
Runtime configuration.

Values come from the environment (optionally a `.env` file). Only service
endpoints, API keys, an optional fixed farm coordinate, the HTTP timeout and
the log level are configurable; everything else is a design constant.
"""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel


def _float_env(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}") from None


class Settings(BaseModel):
    prediction_api: str = "http://127.0.0.1:5000"

    openweather_api_key: str = ""
    openweather_base: str = "https://api.openweathermap.org/data/2.5"
    open_meteo_base: str = "https://api.open-meteo.com/v1"

    unsplash_access_key: str = ""
    unsplash_base: str = "https://api.unsplash.com"

    # Fixed farm location used when the embedding app does not pass one
    farm_lat: Optional[float] = None
    farm_lng: Optional[float] = None

    http_timeout: float = 20.0
    log_level: str = "INFO"

    @property
    def farm_location(self) -> Optional[dict]:
        if self.farm_lat is None or self.farm_lng is None:
            return None
        return {"lat": self.farm_lat, "lng": self.farm_lng}

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        timeout = _float_env("CROPWISE_HTTP_TIMEOUT")
        return cls(
            prediction_api=os.getenv("CROPWISE_PREDICTION_API", cls.model_fields["prediction_api"].default).rstrip("/"),
            openweather_api_key=os.getenv("OPENWEATHER_API_KEY", ""),
            openweather_base=os.getenv("OPENWEATHER_BASE", cls.model_fields["openweather_base"].default),
            open_meteo_base=os.getenv("OPEN_METEO_BASE", cls.model_fields["open_meteo_base"].default),
            unsplash_access_key=os.getenv("UNSPLASH_ACCESS_KEY", ""),
            unsplash_base=os.getenv("UNSPLASH_BASE", cls.model_fields["unsplash_base"].default),
            farm_lat=_float_env("CROPWISE_FARM_LAT"),
            farm_lng=_float_env("CROPWISE_FARM_LNG"),
            http_timeout=timeout if timeout is not None else 20.0,
            log_level=os.getenv("CROPWISE_LOG_LEVEL", "INFO").upper(),
        )
