"""
History analytics.

Pure, synchronous views over a collection of `HistoryRecord`s: the history
table (filter, sort, paginate), crop frequencies and trends, outliers,
averages and a rule-based recommendation summary. Nothing here does I/O or
mutates the records it is given.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from .models import HistoryRecord

PAGE_SIZE = 5

SORTABLE_FIELDS = (
    "id",
    "timestamp",
    "predicted_crop",
    "N",
    "P",
    "K",
    "temperature",
    "humidity",
    "ph",
    "rainfall",
)

# Outlier thresholds: nutrients in kg/ha, temperature in C
NUTRIENT_MAX = 150
TEMPERATURE_MAX = 45
PH_MIN = 4
PH_MAX = 9

GENERAL_RECOMMENDATION = (
    "Maintain balanced soil nutrients and monitor environmental conditions regularly to optimize crop yield."
)


class SortState(BaseModel):
    """Which column the history table is sorted by, and in which direction."""

    key: str = "timestamp"
    order: str = "desc"

    def toggle(self, key: str) -> "SortState":
        if key not in SORTABLE_FIELDS:
            raise ValueError(f"cannot sort by {key!r}")
        if key == self.key:
            return SortState(key=key, order="asc" if self.order == "desc" else "desc")
        return SortState(key=key, order="asc")


class Page(BaseModel):
    items: List[HistoryRecord]
    page: int
    page_size: int
    total: int
    has_next: bool
    has_previous: bool


class RecommendationSummary(BaseModel):
    top_crop: Optional[str] = None
    top_crop_count: int = 0
    top_crop_message: str
    fertilizer_advice: str
    ph_advice: str
    environment_note: str
    general: str = GENERAL_RECOMMENDATION


def filter_records(records: Sequence[HistoryRecord], query: str = "") -> List[HistoryRecord]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(records)
    return [r for r in records if needle in r.predicted_crop.lower()]


def sort_records(records: Sequence[HistoryRecord], key: str = "timestamp", order: str = "asc") -> List[HistoryRecord]:
    """Stable single-key sort; equal keys keep their relative order either way."""
    if key not in SORTABLE_FIELDS:
        raise ValueError(f"cannot sort by {key!r}")
    if order not in ("asc", "desc"):
        raise ValueError(f"sort order must be 'asc' or 'desc', got {order!r}")
    return sorted(records, key=lambda r: r.value(key), reverse=(order == "desc"))


def paginate(records: Sequence[HistoryRecord], page: int = 1, page_size: int = PAGE_SIZE) -> Page:
    if page < 1:
        raise ValueError("page numbers start at 1")
    if page_size < 1:
        raise ValueError("page_size must be positive")
    total = len(records)
    start = (page - 1) * page_size
    return Page(
        items=list(records[start:start + page_size]),
        page=page,
        page_size=page_size,
        total=total,
        has_next=page * page_size < total,
        has_previous=page > 1,
    )


def history_table(
    records: Sequence[HistoryRecord],
    query: str = "",
    sort: Optional[SortState] = None,
    page: int = 1,
) -> Page:
    sort = sort or SortState()
    rows = sort_records(filter_records(records, query), sort.key, sort.order)
    return paginate(rows, page)


def crop_frequencies(records: Sequence[HistoryRecord]) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for r in records:
        counts[r.predicted_crop] = counts.get(r.predicted_crop, 0) + 1
    return counts


def crop_trends(records: Sequence[HistoryRecord]) -> List[Dict[str, str]]:
    return [{"date": r.date, "crop": r.predicted_crop} for r in records]


def is_outlier(record: HistoryRecord) -> bool:
    return (
        record.N > NUTRIENT_MAX
        or record.P > NUTRIENT_MAX
        or record.K > NUTRIENT_MAX
        or record.temperature > TEMPERATURE_MAX
        or record.ph > PH_MAX
        or record.ph < PH_MIN
    )


def find_outliers(records: Sequence[HistoryRecord]) -> List[HistoryRecord]:
    return [r for r in records if is_outlier(r)]


def _mean(records: Sequence[HistoryRecord], field: str) -> float:
    if not records:
        return 0.0
    return sum(getattr(r, field) for r in records) / len(records)


def nutrient_averages(records: Sequence[HistoryRecord]) -> Dict[str, float]:
    return {name: _mean(records, name) for name in ("N", "P", "K")}


def environment_averages(records: Sequence[HistoryRecord]) -> Dict[str, float]:
    return {name: _mean(records, name) for name in ("temperature", "humidity", "ph", "rainfall")}


def top_crops(records: Sequence[HistoryRecord], n: int = 3) -> List[Tuple[str, int]]:
    # sorted() is stable, so equal counts keep first-encountered order
    ranked = sorted(crop_frequencies(records).items(), key=lambda kv: kv[1], reverse=True)
    return ranked[:n]


def most_frequent_crop(records: Sequence[HistoryRecord]) -> Optional[Tuple[str, int]]:
    best: Optional[Tuple[str, int]] = None
    for crop, count in crop_frequencies(records).items():
        if best is None or count > best[1]:
            best = (crop, count)
    return best


def fertilizer_advice(nutrients: Dict[str, float]) -> str:
    if nutrients["N"] < 50:
        return "Apply Nitrogen-rich fertilizer."
    if nutrients["P"] < 30:
        return "Apply Phosphorus-rich fertilizer."
    if nutrients["K"] < 40:
        return "Apply Potassium-rich fertilizer."
    return "Nutrient levels are balanced."


def ph_advice(ph: float) -> str:
    if ph < 5.5:
        return "Soil is acidic. Consider adding lime to raise pH."
    if ph > 7.5:
        return "Soil is alkaline. Consider adding sulfur to lower pH."
    return "Soil pH is optimal."


def recommendation_summary(records: Sequence[HistoryRecord]) -> RecommendationSummary:
    nutrients = nutrient_averages(records)
    env = environment_averages(records)
    top = most_frequent_crop(records)
    if top:
        top_message = f"{top[0]} (predicted {top[1]} times)"
    else:
        top_message = "No crop prediction data available."
    return RecommendationSummary(
        top_crop=top[0] if top else None,
        top_crop_count=top[1] if top else 0,
        top_crop_message=top_message,
        fertilizer_advice=fertilizer_advice(nutrients),
        ph_advice=ph_advice(env["ph"]),
        environment_note=(
            f"The average temperature is {env['temperature']:.1f}°C, humidity is {env['humidity']:.1f}%, "
            f"and average rainfall is {env['rainfall']:.1f} mm."
        ),
    )


def dashboard(records: Sequence[HistoryRecord]) -> Dict[str, Any]:
    """Every derived view of the full collection, ready to serialize."""
    return {
        "total": len(records),
        "crop_counts": crop_frequencies(records),
        "trends": crop_trends(records),
        "outliers": [r.model_dump() for r in find_outliers(records)],
        "nutrient_averages": nutrient_averages(records),
        "environment_averages": environment_averages(records),
        "top_crops": [{"name": name, "value": count} for name, count in top_crops(records)],
        "summary": recommendation_summary(records).model_dump(),
    }
