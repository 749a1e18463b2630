import logging
from typing import List

import httpx

from ..errors import PredictionServiceError
from ..models import SoilReading

logger = logging.getLogger(__name__)


def _error_message(resp: httpx.Response, default: str) -> str:
    try:
        body = resp.json()
    except ValueError:
        return default
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return default


class PredictionClient:
    """Client for the remote crop prediction service.

    The service is also the system of record for history: every successful
    `POST /predict` persists a record on its side.
    """

    def __init__(self, client: httpx.AsyncClient, base_url: str):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def predict(self, reading: SoilReading) -> List[str]:
        """Submit a reading; return crop names in rank order (index 0 is best)."""
        url = f"{self.base_url}/predict"
        try:
            resp = await self.client.post(url, json=reading.to_payload())
        except httpx.HTTPError as e:
            logger.warning("[prediction] request to %s failed: %s", url, e)
            raise PredictionServiceError(f"Prediction service unreachable: {e}") from e

        if resp.is_error:
            message = _error_message(resp, "Something went wrong with prediction")
            logger.warning("[prediction] service returned %s: %s", resp.status_code, message)
            raise PredictionServiceError(message, status_code=resp.status_code)

        try:
            crops = resp.json()["top_3_crops"]
        except (ValueError, KeyError, TypeError) as e:
            raise PredictionServiceError("Prediction service returned an unexpected response") from e
        if not isinstance(crops, list) or not all(isinstance(c, str) for c in crops):
            raise PredictionServiceError("Prediction service returned an unexpected response")

        logger.info("[prediction] top crops: %s", ", ".join(crops))
        return list(crops)
