# =============================================================================
# vibrate_core/validation.py
# Measurement record schema validation
# =============================================================================
"""
Field validators raise a single ``ValidationError``; the batch validators run
every field validator and collect all violations so the operator can fix the
whole entry in one pass.
"""

from __future__ import annotations
import math
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pandas as pd

from vibrate_core import catalog
from vibrate_core.errors import ValidationError, RecordValidationError
from vibrate_core.models import MeasurementRecord


def decimal_places(number: float) -> int:
    """Number of digits after the decimal point in the shortest repr."""
    try:
        exponent = Decimal(repr(number)).normalize().as_tuple().exponent
    except InvalidOperation:
        return 0
    return max(0, -exponent)


# =============================================================================
# FIELD VALIDATORS
# =============================================================================

def validate_parameter_value(value: Any, parameter_id: str) -> float:
    """Validate one reading and return it as a float."""
    field = f"parameters.{parameter_id}"

    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Value is required", field, "required")

    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Value must be a number", field, "not_a_number", value=value)
    if math.isnan(number) or math.isinf(number):
        raise ValidationError("Value must be a number", field, "not_a_number", value=value)

    if number < catalog.VALIDATION_RULES["parameters"]["min_value"]:
        raise ValidationError("Value cannot be negative", field, "negative", value=number)

    parameter = catalog.get_parameter(parameter_id)
    if parameter is None:
        raise ValidationError("Unknown parameter", field, "unknown_parameter", value=parameter_id)

    # Precision is checked before range: 20.005 is a precision problem
    max_places = catalog.VALIDATION_RULES["parameters"]["max_decimal_places"]
    if decimal_places(number) > max_places:
        raise ValidationError(
            f"At most {max_places} decimal places are allowed",
            field, "max_decimal_places", value=number, limit=max_places,
        )

    max_value = catalog.parameter_max_value(parameter)
    if number > max_value:
        raise ValidationError(
            f"Maximum value is {max_value}",
            field, "max_value", value=number, limit=max_value,
        )

    return number


def validate_unit(unit: Any) -> str:
    if not unit:
        raise ValidationError("Unit is required", "unit", "required")
    if catalog.get_unit(unit) is None:
        raise ValidationError("Invalid unit", "unit", "invalid_unit", value=unit)
    return unit


def validate_equipment(equipment: Any, unit: Any = None) -> str:
    if not equipment:
        raise ValidationError("Equipment is required", "equipment", "required")
    if catalog.get_equipment(equipment) is None:
        raise ValidationError("Invalid equipment", "equipment", "invalid_equipment", value=equipment)
    if unit and catalog.get_unit(unit) is not None and equipment not in catalog.equipment_for_unit(unit):
        raise ValidationError(
            "Equipment does not belong to this unit",
            "equipment", "equipment_not_in_unit", value=equipment,
        )
    return equipment


def one_year_before(day: date) -> date:
    """Same calendar day a year earlier (Feb 29 falls back to Feb 28)."""
    return (pd.Timestamp(day) - pd.DateOffset(years=1)).date()


def validate_measurement_date(value: Any, today: Optional[date] = None) -> date:
    if value is None or value == "":
        raise ValidationError("Measurement date is required", "date", "required")

    if isinstance(value, datetime):
        day = value.date()
    elif isinstance(value, date):
        day = value
    else:
        try:
            day = date.fromisoformat(str(value))
        except ValueError:
            raise ValidationError("Invalid date format", "date", "invalid_date", value=value)

    today = today or date.today()
    if day > today:
        raise ValidationError("Date cannot be in the future", "date", "future_date", value=day)

    earliest = one_year_before(today)
    if day < earliest:
        raise ValidationError(
            "Date cannot be more than one year ago",
            "date", "too_old", value=day, limit=earliest,
        )

    return day


def validate_notes(notes: Any) -> str:
    if not notes:
        return ""
    if not isinstance(notes, str):
        raise ValidationError("Notes must be text", "notes", "notes_type")

    max_length = catalog.VALIDATION_RULES["notes"]["max_length"]
    if len(notes) > max_length:
        raise ValidationError(
            f"Notes cannot exceed {max_length} characters",
            "notes", "notes_too_long", value=len(notes), limit=max_length,
        )
    return notes.strip()


# =============================================================================
# BATCH VALIDATION
# =============================================================================

def _check_entry(
    unit: Any,
    equipment: Any,
    day: Any,
    parameters: Any,
    notes: Any,
    today: Optional[date] = None,
) -> Tuple[Dict[str, Any], List[ValidationError]]:
    errors: List[ValidationError] = []
    cleaned: Dict[str, Any] = {}

    checks = (
        ("unit", lambda: validate_unit(unit)),
        ("equipment", lambda: validate_equipment(equipment, unit)),
        ("date", lambda: validate_measurement_date(day, today)),
        ("notes", lambda: validate_notes(notes)),
    )
    for name, check in checks:
        try:
            cleaned[name] = check()
        except ValidationError as e:
            errors.append(e)

    if not isinstance(parameters, Mapping):
        errors.append(ValidationError("Parameters are required", "parameters", "required"))
    else:
        values = {}
        for parameter_id, value in parameters.items():
            try:
                values[parameter_id] = validate_parameter_value(value, parameter_id)
            except ValidationError as e:
                errors.append(e)
        cleaned["parameters"] = values

    return cleaned, errors


def collect_entry_errors(data: Mapping[str, Any], today: Optional[date] = None) -> List[ValidationError]:
    """Every violation in a raw entry (``unit``, ``equipment``, ``date``, ``parameters``, ``notes``)."""
    _, errors = _check_entry(
        data.get("unit"),
        data.get("equipment"),
        data.get("date"),
        data.get("parameters"),
        data.get("notes"),
        today,
    )
    return errors


def clean_entry(data: Mapping[str, Any], today: Optional[date] = None) -> Dict[str, Any]:
    """
    Validate a raw entry and return normalized fields.

    Raises:
        RecordValidationError: with every violation found
    """
    cleaned, errors = _check_entry(
        data.get("unit"),
        data.get("equipment"),
        data.get("date"),
        data.get("parameters"),
        data.get("notes"),
        today,
    )
    if errors:
        raise RecordValidationError(errors)
    return cleaned


def validate_record(record: MeasurementRecord, today: Optional[date] = None) -> List[ValidationError]:
    """Full schema check of a stored record; empty list when valid."""
    _, errors = _check_entry(
        record.unit,
        record.equipment,
        record.date,
        record.parameters,
        record.notes,
        today,
    )
    return errors
