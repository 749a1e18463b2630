"""
Prediction Workflow Orchestrator

Drives one crop recommendation cycle as an explicit state machine:

    IDLE -> LOCATING_WEATHER -> AWAITING_INPUT -> SUBMITTING -> ENRICHING -> READY

with FAILED(stage) entered when the prediction call fails (the machine then
drops back to AWAITING_INPUT with the user's values intact). Every transition
is appended to `trace` so the presentation layer and logs see the same story.
"""
import asyncio
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

import httpx
from pydantic import BaseModel

from ..config import Settings
from ..errors import (
    HistoryServiceError,
    PredictionServiceError,
    WorkflowBusy,
    WorkflowStateError,
)
from ..models import NUMERIC_FIELDS, WEATHER_FIELDS, CropCandidate, SoilReading, WeatherConditions
from ..services.geolocation import Geolocator, geolocator_from_location
from ..services.history import HistoryStore
from ..services.imagery import fetch_crop_image
from ..services.prediction import PredictionClient
from ..services.weather import fetch_current_weather
from .candidates import CandidateDetailer, build_candidates, nutrient_comparison, placeholder_details
from .validator import validate_inputs

logger = logging.getLogger(__name__)

WeatherLookup = Callable[[Dict[str, float]], Awaitable[WeatherConditions]]
ImageLookup = Callable[[str], Awaitable[Optional[str]]]

EDITABLE_FIELDS = NUMERIC_FIELDS + ("soil_type",)
MANUAL_WEATHER_NOTICE = "Could not fetch local weather. Please enter temperature, humidity and rainfall manually."


class WorkflowState(str, Enum):
    IDLE = "idle"
    LOCATING_WEATHER = "locating_weather"
    AWAITING_INPUT = "awaiting_input"
    SUBMITTING = "submitting"
    ENRICHING = "enriching"
    READY = "ready"
    FAILED = "failed"


class StageFailure(BaseModel):
    stage: WorkflowState
    message: str


class PredictionWorkflow:
    def __init__(
        self,
        predictor: PredictionClient,
        history: HistoryStore,
        weather_lookup: WeatherLookup,
        image_lookup: ImageLookup,
        geolocator: Optional[Geolocator] = None,
        detailer: CandidateDetailer = placeholder_details,
    ):
        self.predictor = predictor
        self.history = history
        self.weather_lookup = weather_lookup
        self.image_lookup = image_lookup
        self.geolocator = geolocator or geolocator_from_location(None)
        self.detailer = detailer

        self.state = WorkflowState.IDLE
        self.fields: Dict[str, Any] = {name: "" for name in NUMERIC_FIELDS}
        self.fields["soil_type"] = None
        self.manual_entry_required = False
        self.notices: List[str] = []
        self.reading: Optional[SoilReading] = None
        self.candidates: List[CropCandidate] = []
        self.active_index: Optional[int] = None
        self.failure: Optional[StageFailure] = None
        self.trace: List[Dict[str, Any]] = []
        self._background: Set[asyncio.Task] = set()

    def _transition(self, to: WorkflowState, detail: Optional[str] = None):
        step = {"from": self.state.value, "to": to.value, "at": time.time()}
        if detail:
            step["detail"] = detail
        self.trace.append(step)
        logger.debug("[workflow] %s -> %s%s", self.state.value, to.value, f" ({detail})" if detail else "")
        self.state = to

    @property
    def busy(self) -> bool:
        return self.state in (WorkflowState.SUBMITTING, WorkflowState.ENRICHING)

    @property
    def active_candidate(self) -> Optional[CropCandidate]:
        if self.active_index is None:
            return None
        return self.candidates[self.active_index]

    async def start(self, location: Optional[Dict[str, float]] = None) -> WorkflowState:
        """Locate the farm and pre-fill weather fields, then wait for input.

        Location or weather failures never abort the workflow: the three
        weather fields are left empty and `manual_entry_required` is raised.
        """
        if self.state is not WorkflowState.IDLE:
            raise WorkflowStateError(f"Workflow already started (state: {self.state.value})")
        self._transition(WorkflowState.LOCATING_WEATHER)
        try:
            if location is None:
                location = await self.geolocator()
            weather = await self.weather_lookup(location)
        except Exception as e:
            logger.warning("[workflow] weather lookup unavailable, manual entry required: %s", e)
            for name in WEATHER_FIELDS:
                self.fields[name] = ""
            self.manual_entry_required = True
            self.notices.append(MANUAL_WEATHER_NOTICE)
            self._transition(WorkflowState.AWAITING_INPUT, "manual entry required")
        else:
            self.fields.update(
                temperature=weather.temperature,
                humidity=weather.humidity,
                rainfall=weather.rainfall,
            )
            self.manual_entry_required = False
            self._transition(WorkflowState.AWAITING_INPUT, f"weather from {weather.source}")
        return self.state

    def update_fields(self, **values: Any) -> Dict[str, Any]:
        unknown = [name for name in values if name not in EDITABLE_FIELDS]
        if unknown:
            raise ValueError(f"unknown input field(s): {', '.join(unknown)}")
        self.fields.update(values)
        return dict(self.fields)

    def validate(self) -> SoilReading:
        return validate_inputs(self.fields)

    async def submit(self) -> List[CropCandidate]:
        """Validate inputs, request a prediction and enrich the candidates.

        Only one submission may be in flight. Validation errors leave the state
        untouched; a failed prediction passes through FAILED back to
        AWAITING_INPUT and the error is re-raised for display.
        A cancelled caller also releases the machine back to AWAITING_INPUT.
        """
        if self.busy:
            raise WorkflowBusy("A prediction is already in progress")
        if self.state not in (WorkflowState.AWAITING_INPUT, WorkflowState.READY):
            raise WorkflowStateError(f"Cannot submit while {self.state.value}")

        reading = self.validate()
        if self.state is WorkflowState.READY:
            self._transition(WorkflowState.AWAITING_INPUT, "new cycle")
        self._transition(WorkflowState.SUBMITTING)
        self.candidates = []
        self.active_index = None
        self.failure = None

        try:
            crops = await self.predictor.predict(reading)
        except asyncio.CancelledError:
            self._abandon_submission()
            raise
        except Exception as e:
            message = e.message if isinstance(e, PredictionServiceError) else str(e)
            self.failure = StageFailure(stage=WorkflowState.SUBMITTING, message=message)
            self._transition(WorkflowState.FAILED, message)
            self._transition(WorkflowState.AWAITING_INPUT, "inputs preserved")
            raise

        self.reading = reading
        self.candidates = build_candidates(crops, self.detailer)
        self.active_index = 0 if self.candidates else None
        self._transition(WorkflowState.ENRICHING)

        try:
            await self._enrich_images()
        except asyncio.CancelledError:
            self._abandon_submission()
            raise
        self._transition(WorkflowState.READY)
        self._schedule_history_refresh()
        return self.candidates

    def _abandon_submission(self):
        # caller went away mid-flight; drop any partial result, keep the inputs
        self.candidates = []
        self.active_index = None
        self._transition(WorkflowState.AWAITING_INPUT, "submission cancelled")

    async def _enrich_images(self):
        results = await asyncio.gather(
            *(self.image_lookup(candidate.name) for candidate in self.candidates),
            return_exceptions=True,
        )
        for candidate, result in zip(self.candidates, results):
            if isinstance(result, BaseException):
                logger.warning("[workflow] image lookup for %s failed: %s", candidate.name, result)
                continue
            candidate.image_url = result

    def _schedule_history_refresh(self):
        task = asyncio.create_task(self._refresh_after_prediction())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_after_prediction(self):
        try:
            await self.history.refresh()
        except HistoryServiceError as e:
            logger.warning("[workflow] history refresh after prediction skipped: %s", e)

    async def drain(self):
        """Wait for background history refreshes to settle."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def select_candidate(self, index: int) -> CropCandidate:
        if self.state is not WorkflowState.READY or not self.candidates:
            raise WorkflowStateError("No crop candidates to select from")
        if not 0 <= index < len(self.candidates):
            raise IndexError(f"candidate index {index} out of range")
        self.active_index = index
        return self.candidates[index]

    def new_cycle(self) -> WorkflowState:
        if self.state is not WorkflowState.READY:
            raise WorkflowStateError(f"Cannot start a new cycle while {self.state.value}")
        self.candidates = []
        self.active_index = None
        self._transition(WorkflowState.AWAITING_INPUT, "new cycle")
        return self.state

    async def refresh_history(self):
        return await self.history.refresh()

    async def delete_history(self, record_id: int) -> None:
        await self.history.delete(record_id)

    def snapshot(self) -> Dict[str, Any]:
        active = self.active_candidate
        return {
            "state": self.state.value,
            "failure": self.failure.model_dump(mode="json") if self.failure else None,
            "manual_entry_required": self.manual_entry_required,
            "notices": list(self.notices),
            "fields": dict(self.fields),
            "reading": self.reading.model_dump() if self.reading else None,
            "candidates": [c.model_dump() for c in self.candidates],
            "active_index": self.active_index,
            "nutrient_comparison": nutrient_comparison(active) if active else [],
            "history_count": len(self.history),
        }


def create_workflow(
    settings: Settings,
    client: httpx.AsyncClient,
    detailer: CandidateDetailer = placeholder_details,
) -> PredictionWorkflow:
    """Wire a workflow to the real services through one shared HTTP client."""

    async def weather_lookup(location: Dict[str, float]) -> WeatherConditions:
        return await fetch_current_weather(
            client,
            location,
            api_key=settings.openweather_api_key,
            base_url=settings.openweather_base,
            fallback_base_url=settings.open_meteo_base,
        )

    async def image_lookup(crop: str) -> Optional[str]:
        return await fetch_crop_image(
            client, crop, access_key=settings.unsplash_access_key, base_url=settings.unsplash_base
        )

    return PredictionWorkflow(
        predictor=PredictionClient(client, settings.prediction_api),
        history=HistoryStore(client, settings.prediction_api),
        weather_lookup=weather_lookup,
        image_lookup=image_lookup,
        geolocator=geolocator_from_location(settings.farm_location),
        detailer=detailer,
    )
