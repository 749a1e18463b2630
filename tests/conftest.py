import asyncio
import copy
import json
from typing import Any, Dict, List, Optional

import httpx
import pytest

from cropwise.config import Settings
from cropwise.workflow import create_workflow

PREDICT_HOST = "predict.test"
OWM_HOST = "owm.test"
METEO_HOST = "meteo.test"
UNSPLASH_HOST = "unsplash.test"

SEED_RECORDS: List[Dict[str, Any]] = [
    {
        "id": 3, "timestamp": "2024-06-03T09:15:00", "predicted_crop": "Maize",
        "N": 90, "P": 42, "K": 43, "temperature": 20.8, "humidity": 82.0, "ph": 6.5, "rainfall": 202.9,
        "top_3_crops": ["Maize", "Rice", "Jute"],
    },
    {
        "id": 1, "timestamp": "2024-06-01T08:00:00", "predicted_crop": "Rice",
        "N": 85, "P": 58, "K": 41, "temperature": 21.7, "humidity": 80.3, "ph": 7.0, "rainfall": 226.6,
        "top_3_crops": ["Rice", "Jute", "Maize"],
    },
    {
        "id": 2, "timestamp": "2024-06-02T10:30:00", "predicted_crop": "Rice",
        "N": 60, "P": 55, "K": 44, "temperature": 23.0, "humidity": 82.3, "ph": 7.8, "rainfall": 263.9,
        "top_3_crops": ["Rice", "Maize", "Cotton"],
    },
]


class FakeBackend:
    """In-memory stand-in for the prediction, weather and image services."""

    def __init__(self):
        self.records = copy.deepcopy(SEED_RECORDS)
        self.next_id = 4
        self.top_crops = ["Rice", "Maize", "Cotton"]
        self.predict_status = 200
        self.predict_error = "Model unavailable"
        self.predict_gate: Optional[asyncio.Event] = None
        self.history_status = 200
        self.stale_history: List[Dict[str, Any]] = []
        self.delete_refusals = set()
        self.owm_status = 200
        self.meteo_status = 200
        self.weather_payload: Optional[Dict[str, Any]] = None
        self.images: Dict[str, Any] = {"Rice": "https://images.test/rice.jpg"}
        self.image_in_flight = 0
        self.image_max_in_flight = 0
        self.calls: List[tuple] = []

    def count(self, host: str, method: Optional[str] = None) -> int:
        return sum(1 for m, h, _ in self.calls if h == host and (method is None or m == method))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        host, path = request.url.host, request.url.path
        self.calls.append((request.method, host, path))
        if host == PREDICT_HOST:
            return await self._predict_service(request, path)
        if host == OWM_HOST:
            if self.owm_status != 200:
                return httpx.Response(self.owm_status, json={"message": "Invalid API key"})
            if self.weather_payload is not None:
                return httpx.Response(200, json=self.weather_payload)
            return httpx.Response(200, json={"main": {"temp": 27.5, "humidity": 65}, "rain": {"1h": 2.5}})
        if host == METEO_HOST:
            if self.meteo_status != 200:
                return httpx.Response(self.meteo_status, json={"reason": "unavailable"})
            if self.weather_payload is not None:
                return httpx.Response(200, json=self.weather_payload)
            return httpx.Response(
                200, json={"current": {"temperature_2m": 26.0, "relative_humidity_2m": 70, "precipitation": 0.4}}
            )
        if host == UNSPLASH_HOST:
            return await self._image_search(request)
        return httpx.Response(404)

    async def _predict_service(self, request: httpx.Request, path: str) -> httpx.Response:
        if path == "/predict" and request.method == "POST":
            if self.predict_gate is not None:
                await self.predict_gate.wait()
            if self.predict_status != 200:
                return httpx.Response(self.predict_status, json={"error": self.predict_error})
            body = json.loads(request.content)
            self.records.append({
                "id": self.next_id, "timestamp": "2024-06-10T12:00:00", "predicted_crop": self.top_crops[0],
                "top_3_crops": list(self.top_crops), **body,
            })
            self.next_id += 1
            return httpx.Response(200, json={"top_3_crops": list(self.top_crops)})
        if path == "/history" and request.method == "GET":
            if self.history_status != 200:
                return httpx.Response(self.history_status, json={"error": "database offline"})
            return httpx.Response(200, json=self.records + self.stale_history)
        if path.startswith("/delete-history/") and request.method == "DELETE":
            record_id = int(path.rsplit("/", 1)[1])
            if record_id in self.delete_refusals:
                return httpx.Response(200, json={"success": False})
            if not any(r["id"] == record_id for r in self.records):
                return httpx.Response(404, json={"error": "Record not found"})
            self.records = [r for r in self.records if r["id"] != record_id]
            return httpx.Response(200, json={"success": True})
        return httpx.Response(404)

    async def _image_search(self, request: httpx.Request) -> httpx.Response:
        crop = request.url.params.get("query")
        self.image_in_flight += 1
        self.image_max_in_flight = max(self.image_max_in_flight, self.image_in_flight)
        try:
            await asyncio.sleep(0.01)
        finally:
            self.image_in_flight -= 1
        image = self.images.get(crop)
        if isinstance(image, int):
            return httpx.Response(image, json={"errors": ["Rate Limit Exceeded"]})
        if image is None:
            return httpx.Response(200, json={"results": []})
        return httpx.Response(200, json={"results": [{"urls": {"small": image}}]})


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def settings():
    return Settings(
        prediction_api=f"http://{PREDICT_HOST}",
        openweather_api_key="owm-key",
        openweather_base=f"http://{OWM_HOST}/data/2.5",
        open_meteo_base=f"http://{METEO_HOST}/v1",
        unsplash_access_key="unsplash-key",
        unsplash_base=f"http://{UNSPLASH_HOST}",
        farm_lat=12.97,
        farm_lng=77.59,
    )


@pytest.fixture
def run_workflow(backend, settings):
    """Run `scenario(workflow)` against the fake backend and return its result."""

    def run(scenario, settings_override: Optional[Settings] = None):
        async def main():
            transport = httpx.MockTransport(backend.handler)
            async with httpx.AsyncClient(transport=transport) as client:
                workflow = create_workflow(settings_override or settings, client)
                try:
                    return await scenario(workflow)
                finally:
                    await workflow.drain()

        return asyncio.run(main())

    return run


@pytest.fixture
def mock_client(backend):
    """Run `coro_fn(client)` with an AsyncClient wired to the fake backend."""

    def run(coro_fn):
        async def main():
            async with httpx.AsyncClient(transport=httpx.MockTransport(backend.handler)) as client:
                return await coro_fn(client)

        return asyncio.run(main())

    return run
