"""
Input Validator
Checks raw form values before a prediction is submitted and normalizes them
into a `SoilReading`. Nothing is sent to the prediction service unless every
numeric field parses as a finite number and a soil type is chosen.
"""
import math
from typing import Any, Dict, List, Optional

from ..errors import ValidationError
from ..models import NUMERIC_FIELDS, SoilReading, SoilType


def parse_number(value: Any) -> Optional[float]:
    """Finite float from a form value, or None when it is blank or not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_soil_type(value: Any) -> Optional[SoilType]:
    if isinstance(value, SoilType):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    wanted = value.strip().lower()
    for soil in SoilType:
        if soil.value.lower() == wanted:
            return soil
    return None


def missing_fields(fields: Dict[str, Any]) -> List[str]:
    """Names of the fields that block a submit, numeric fields first in form order."""
    missing = [name for name in NUMERIC_FIELDS if parse_number(fields.get(name)) is None]
    if parse_soil_type(fields.get("soil_type")) is None:
        missing.append("soil_type")
    return missing


def validate_inputs(fields: Dict[str, Any]) -> SoilReading:
    missing = missing_fields(fields)
    if missing:
        raise ValidationError(missing)
    values = {name: parse_number(fields[name]) for name in NUMERIC_FIELDS}
    return SoilReading(soil_type=parse_soil_type(fields["soil_type"]), **values)
