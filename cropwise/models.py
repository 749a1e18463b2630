"""
Domain models shared by the workflow, the service clients and analytics.
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SoilType(str, Enum):
    SANDY = "Sandy"
    LOAMY = "Loamy"
    CLAY = "Clay"
    SILTY = "Silty"
    PEATY = "Peaty"
    CHALKY = "Chalky"


# Numeric inputs in the order the prediction service and the input form use
NUMERIC_FIELDS = ("N", "P", "K", "temperature", "humidity", "ph", "rainfall")
WEATHER_FIELDS = ("temperature", "humidity", "rainfall")

# Reference profile shown next to candidates
IDEAL_VALUES: Dict[str, float] = {
    "N": 50,
    "P": 40,
    "K": 30,
    "ph": 6.5,
    "temperature": 25,
    "humidity": 60,
    "rainfall": 100,
}


class SoilReading(BaseModel):
    model_config = ConfigDict(frozen=True)

    N: float
    P: float
    K: float
    temperature: float
    humidity: float
    ph: float
    rainfall: float
    soil_type: SoilType

    def to_payload(self) -> Dict[str, float]:
        """Body for `POST /predict`; the service does not take a soil type."""
        return {name: getattr(self, name) for name in NUMERIC_FIELDS}


class WeatherConditions(BaseModel):
    temperature: float
    humidity: float
    rainfall: float
    source: str = "openweather"


class NutrientProfile(BaseModel):
    N: float
    P: float
    K: float


class CropCandidate(BaseModel):
    name: str
    suitability_score: float = Field(..., ge=0, le=100)
    expected_yield: float
    market_price: float
    reasons: List[str] = Field(default_factory=list)
    reference_nutrients: NutrientProfile
    image_url: Optional[str] = None


class HistoryRecord(BaseModel):
    """A persisted past prediction, in the flat shape `GET /history` returns."""

    model_config = ConfigDict(frozen=True)

    id: int
    timestamp: str
    predicted_crop: str
    N: float
    P: float
    K: float
    temperature: float
    humidity: float
    ph: float
    rainfall: float
    top_3_crops: List[str] = Field(default_factory=list)

    @field_validator("top_3_crops", mode="before")
    @classmethod
    def _split_crop_list(cls, value: Any) -> Any:
        # some deployments store the list as "Rice, Maize, Cotton"
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    @property
    def inputs(self) -> Dict[str, float]:
        return {name: getattr(self, name) for name in NUMERIC_FIELDS}

    @property
    def date(self) -> str:
        return self.timestamp.replace(" ", "T").split("T")[0]

    def value(self, field: str) -> Any:
        if field not in HistoryRecord.model_fields:
            raise ValueError(f"unknown history field: {field}")
        return getattr(self, field)
