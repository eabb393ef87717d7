# =============================================================================
# vibrate_core/catalog.py
# Fixed plant catalog: units, equipment, vibration parameters
# =============================================================================
"""
Static catalog shared by validation, the record model and the analyzer.

Parameters come in two types: ``velocity`` channels (mm/s, max 20) and
``acceleration`` channels (g, max 2). Suffix 1 is the coupled (connected)
bearing, suffix 2 the free end.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class Unit:
    id: str
    name: str
    code: str


@dataclass(frozen=True)
class Equipment:
    id: str
    name: str
    code: str


@dataclass(frozen=True)
class Parameter:
    id: str
    name: str
    type: str       # velocity | acceleration
    category: str   # connected | free
    max_value: float
    order: int


UNITS: Tuple[Unit, ...] = (
    Unit("DRI1", "Direct Reduction Unit 1", "DRI 1"),
    Unit("DRI2", "Direct Reduction Unit 2", "DRI 2"),
)

EQUIPMENTS: Tuple[Equipment, ...] = (
    Equipment("GB-cp48A", "Compressor 48A gearbox", "GB-cp 48A"),
    Equipment("CP-cp48A", "Compressor 48A", "CP-cp 48A"),
    Equipment("GB-cp48B", "Compressor 48B gearbox", "GB-cp 48B"),
    Equipment("CP-cp48B", "Compressor 48B", "CP-cp 48B"),
    Equipment("GB-cp51", "Compressor 51 gearbox", "GB-cp 51"),
    Equipment("CP-cp51", "Compressor 51", "CP-cp 51"),
    Equipment("GB-cp71", "Compressor 71 gearbox", "GB-cp 71"),
    Equipment("CP-cp71", "Compressor 71", "CP-cp 71"),
    Equipment("CP-cpSGC", "Seal gas compressor", "CP-cp SGC"),
    Equipment("FN-fnESF", "Stack fan", "FN-fn ESF"),
    Equipment("FN-fnAUX", "Auxiliary fan", "FN-fn AUX"),
    Equipment("FN-fnMAB", "Main air blower", "FN-fn MAB"),
)

PARAMETERS: Tuple[Parameter, ...] = (
    Parameter("V1", "Vertical velocity (connected)", "velocity", "connected", 20, 1),
    Parameter("GV1", "Vertical acceleration (connected)", "acceleration", "connected", 2, 2),
    Parameter("H1", "Horizontal velocity (connected)", "velocity", "connected", 20, 3),
    Parameter("GH1", "Horizontal acceleration (connected)", "acceleration", "connected", 2, 4),
    Parameter("A1", "Axial velocity (connected)", "velocity", "connected", 20, 5),
    Parameter("GA1", "Axial acceleration (connected)", "acceleration", "connected", 2, 6),
    Parameter("V2", "Vertical velocity (free)", "velocity", "free", 20, 7),
    Parameter("GV2", "Vertical acceleration (free)", "acceleration", "free", 2, 8),
    Parameter("H2", "Horizontal velocity (free)", "velocity", "free", 20, 9),
    Parameter("GH2", "Horizontal acceleration (free)", "acceleration", "free", 2, 10),
    Parameter("A2", "Axial velocity (free)", "velocity", "free", 20, 11),
    Parameter("GA2", "Axial acceleration (free)", "acceleration", "free", 2, 12),
)

# Every unit runs the same equipment train
UNIT_EQUIPMENT: Dict[str, Tuple[str, ...]] = {
    unit.id: tuple(e.id for e in EQUIPMENTS) for unit in UNITS
}

TYPE_MAX_VALUES = {"velocity": 20, "acceleration": 2}

VALIDATION_RULES = {
    "parameters": {"min_value": 0, "max_decimal_places": 2},
    "notes": {"max_length": 500},
}

# Per-user preferences, mirrored locally and in the remote user_settings table
DEFAULT_SETTINGS = {
    "analysis_threshold": 20,
    "analysis_time_range": 7,
    "analysis_comparison_days": 1,
    "auto_sync": False,
    "sync_on_data_entry": False,
    "notifications_enabled": True,
}

_UNITS_BY_ID = {u.id: u for u in UNITS}
_EQUIPMENT_BY_ID = {e.id: e for e in EQUIPMENTS}
_PARAMETERS_BY_ID = {p.id: p for p in PARAMETERS}


def get_unit(unit_id: str) -> Optional[Unit]:
    return _UNITS_BY_ID.get(unit_id)


def get_equipment(equipment_id: str) -> Optional[Equipment]:
    return _EQUIPMENT_BY_ID.get(equipment_id)


def get_parameter(parameter_id: str) -> Optional[Parameter]:
    return _PARAMETERS_BY_ID.get(parameter_id)


def unit_ids() -> List[str]:
    return [u.id for u in UNITS]


def equipment_for_unit(unit_id: str) -> Tuple[str, ...]:
    """Equipment ids registered under a unit (empty for unknown units)."""
    return UNIT_EQUIPMENT.get(unit_id, ())


def parameter_max_value(parameter: Parameter) -> float:
    """Upper bound for a parameter, falling back to its type's limit."""
    return parameter.max_value or TYPE_MAX_VALUES.get(parameter.type, 20)
