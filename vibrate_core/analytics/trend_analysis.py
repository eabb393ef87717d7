# =============================================================================
# trend_analysis.py - Abnormal Increase Detection and Trend Analysis
# =============================================================================
"""
Analysis of daily vibration readings per (equipment, parameter) series.

This module implements:
1. Grouping of measurement records into per-parameter time series
2. Abnormal increase detection against a reading N positions earlier
3. Linear trend estimation (OLS on the reading index) with R² confidence
4. Descriptive statistics per series
5. Per-alert and global maintenance recommendations

Everything here is pure: no storage, no network, no clock except the
optional ``as_of`` default in ``run_analysis``.
"""

from __future__ import annotations
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from vibrate_core import catalog
from vibrate_core.errors import ValidationError
from vibrate_core.models import MeasurementRecord


# =============================================================================
# DATA STRUCTURES
# =============================================================================

SEVERITY_ORDER = {"critical": 0, "high": 1, "medium": 2}

TREND_EPSILON = 0.01            # |slope| below this is "stable"
RELIABLE_TREND_CONFIDENCE = 70  # percent
MIN_RELIABLE_TRENDS = 3         # more than 2 reliable increasing trends


class ReadingPoint(NamedTuple):
    date: date
    value: float


@dataclass
class AnalysisSettings:
    """User-tunable analysis parameters."""
    threshold_percent: float = 20
    time_range_days: int = 7
    comparison_days: int = 1
    unit: str = "DRI1"

    def __post_init__(self):
        if not 1 <= self.threshold_percent <= 100:
            raise ValidationError(
                "Threshold must be between 1 and 100 percent",
                "threshold_percent", "out_of_range",
                value=self.threshold_percent, limit="1 - 100",
            )
        if not 1 <= self.time_range_days <= 365:
            raise ValidationError(
                "Time range must be between 1 and 365 days",
                "time_range_days", "out_of_range",
                value=self.time_range_days, limit="1 - 365",
            )
        if self.comparison_days < 1:
            raise ValidationError(
                "Comparison distance must be at least one reading",
                "comparison_days", "out_of_range",
                value=self.comparison_days, limit="1 - 365",
            )
        if catalog.get_unit(self.unit) is None:
            raise ValidationError("Invalid unit", "unit", "invalid_unit", value=self.unit)

    @classmethod
    def from_user_settings(cls, settings: Mapping[str, Any], unit: str = "DRI1") -> AnalysisSettings:
        defaults = catalog.DEFAULT_SETTINGS
        return cls(
            threshold_percent=float(settings.get("analysis_threshold", defaults["analysis_threshold"])),
            time_range_days=int(settings.get("analysis_time_range", defaults["analysis_time_range"])),
            comparison_days=int(settings.get("analysis_comparison_days", defaults["analysis_comparison_days"])),
            unit=unit,
        )

    def window(self, as_of: Optional[date] = None) -> Tuple[date, date]:
        """(date_from, date_to) covered by ``time_range_days`` ending at ``as_of``."""
        as_of = as_of or date.today()
        return as_of - timedelta(days=self.time_range_days), as_of


@dataclass
class AnalysisAlert:
    equipment: str
    equipment_name: str
    parameter: str
    parameter_name: str
    severity: str
    current_value: float
    previous_value: float
    increase_percent: float
    date: date
    recommendation: str = ""


@dataclass
class TrendResult:
    equipment: str
    equipment_name: str
    parameter: str
    parameter_name: str
    direction: str
    slope: float
    confidence: int
    predicted_next_value: float


@dataclass
class ParameterStatistics:
    count: int
    min: float
    max: float
    mean: float
    std: float
    latest: float
    first_date: date
    last_date: date


@dataclass
class Recommendation:
    kind: str
    title: str
    description: str
    action: str


@dataclass
class AnalysisReport:
    """Everything one analysis run produced."""
    settings: AnalysisSettings
    alerts: List[AnalysisAlert] = field(default_factory=list)
    trends: List[TrendResult] = field(default_factory=list)
    statistics: Dict[str, Dict[str, ParameterStatistics]] = field(default_factory=dict)
    recommendations: List[Recommendation] = field(default_factory=list)
    record_count: int = 0
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def is_empty(self) -> bool:
        return self.record_count == 0

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly export (dates as ISO strings)."""
        def _plain(value):
            if isinstance(value, (date, datetime)):
                return value.isoformat()
            if isinstance(value, dict):
                return {k: _plain(v) for k, v in value.items()}
            if isinstance(value, list):
                return [_plain(v) for v in value]
            return value

        return _plain({
            "generated_at": self.generated_at,
            "settings": asdict(self.settings),
            "record_count": self.record_count,
            "alerts": [asdict(a) for a in self.alerts],
            "trends": [asdict(t) for t in self.trends],
            "statistics": {
                equipment: {pid: asdict(s) for pid, s in params.items()}
                for equipment, params in self.statistics.items()
            },
            "recommendations": [asdict(r) for r in self.recommendations],
        })

    def alerts_frame(self) -> pd.DataFrame:
        columns = [f.name for f in AnalysisAlert.__dataclass_fields__.values()]
        return pd.DataFrame([asdict(a) for a in self.alerts], columns=columns)

    def trends_frame(self) -> pd.DataFrame:
        columns = [f.name for f in TrendResult.__dataclass_fields__.values()]
        return pd.DataFrame([asdict(t) for t in self.trends], columns=columns)


# =============================================================================
# GROUPING
# =============================================================================

def readings_frame(records: Iterable[MeasurementRecord]) -> pd.DataFrame:
    """
    Long frame of numeric readings: equipment, parameter, date, value.

    Non-numeric values and ids missing from the catalog are dropped; rows are
    stably sorted by date so same-day readings keep their input order.
    """
    rows = [
        {"equipment": r.equipment, "parameter": pid, "date": r.date, "value": value}
        for r in records
        for pid, value in (r.parameters or {}).items()
    ]
    frame = pd.DataFrame(rows, columns=["equipment", "parameter", "date", "value"])
    if frame.empty:
        return frame

    frame["value"] = pd.to_numeric(frame["value"], errors="coerce")
    known = (
        frame["equipment"].map(lambda e: catalog.get_equipment(e) is not None)
        & frame["parameter"].map(lambda p: catalog.get_parameter(p) is not None)
    )
    frame = frame[known & frame["value"].notna()]
    return frame.sort_values("date", kind="stable").reset_index(drop=True)


def group_readings(records: Iterable[MeasurementRecord]) -> Dict[Tuple[str, str], List[ReadingPoint]]:
    """Partition readings by (equipment, parameter), each series oldest first."""
    frame = readings_frame(records)
    grouped: Dict[Tuple[str, str], List[ReadingPoint]] = {}
    if frame.empty:
        return grouped

    for (equipment, parameter), series in frame.groupby(["equipment", "parameter"], sort=False):
        grouped[(equipment, parameter)] = [
            ReadingPoint(day, float(value)) for day, value in zip(series["date"], series["value"])
        ]
    return grouped


# =============================================================================
# DETECTORS
# =============================================================================

def classify_severity(increase_percent: float, threshold_percent: float) -> str:
    if increase_percent > threshold_percent * 2:
        return "critical"
    if increase_percent > threshold_percent * 1.5:
        return "high"
    return "medium"


def detect_abnormal_increase(
    points: Sequence[ReadingPoint],
    comparison_days: int = 1,
    threshold_percent: float = 20,
) -> Optional[Dict[str, Any]]:
    """
    Compare the latest reading with the one ``comparison_days`` positions
    earlier within the last ``2 * comparison_days`` readings.

    Returns:
        dict with current_value, previous_value, increase_percent, date and
        severity, or None when there is nothing to compare or no alert
    """
    if len(points) < 2:
        return None

    recent = list(points[-comparison_days * 2:])
    if len(recent) < 2:
        return None

    previous_index = len(recent) - 1 - comparison_days
    if previous_index < 0:
        return None

    current = recent[-1]
    previous_value = recent[previous_index].value
    if not previous_value:
        return None

    increase = (current.value - previous_value) / previous_value * 100
    if increase <= threshold_percent:
        return None

    return {
        "current_value": current.value,
        "previous_value": previous_value,
        "increase_percent": round(increase, 2),
        "date": current.date,
        "severity": classify_severity(increase, threshold_percent),
    }


def analyze_trend(points: Sequence[ReadingPoint]) -> Optional[Dict[str, Any]]:
    """
    Least-squares line through (index, value).

    Returns:
        dict with direction, slope (3 dp), confidence (R² in percent, 0 for
        a flat series) and prediction at the next index (2 dp); None for
        fewer than 3 readings
    """
    n = len(points)
    if n < 3:
        return None

    x = np.arange(n, dtype=float)
    y = np.array([p.value for p in points], dtype=float)

    fit = stats.linregress(x, y)
    slope, intercept = float(fit.slope), float(fit.intercept)

    ss_tot = float(np.sum((y - y.mean()) ** 2))
    if ss_tot == 0:
        r_squared = 0.0
    else:
        ss_res = float(np.sum((y - (slope * x + intercept)) ** 2))
        r_squared = 1 - ss_res / ss_tot

    if slope > TREND_EPSILON:
        direction = "increasing"
    elif slope < -TREND_EPSILON:
        direction = "decreasing"
    else:
        direction = "stable"

    return {
        "direction": direction,
        "slope": round(slope, 3),
        "confidence": int(round(r_squared * 100)),
        "prediction": round(slope * n + intercept, 2),
    }


def calculate_statistics(points: Sequence[ReadingPoint]) -> ParameterStatistics:
    """Descriptive statistics; ``std`` is the population standard deviation."""
    values = np.array([p.value for p in points], dtype=float)
    return ParameterStatistics(
        count=len(values),
        min=float(values.min()),
        max=float(values.max()),
        mean=float(values.mean()),
        std=float(values.std(ddof=0)),
        latest=float(values[-1]),
        first_date=points[0].date,
        last_date=points[-1].date,
    )


# =============================================================================
# RECOMMENDATIONS
# =============================================================================

ALERT_ADVICE = {
    "critical": "Stop the equipment immediately and have a technician inspect it",
    "high": "Schedule emergency maintenance at the earliest opportunity",
    "medium": "Increase monitoring over the coming days",
}


def generate_recommendation(severity: str) -> str:
    return ALERT_ADVICE.get(severity, "Further investigation required")


def generate_global_recommendations(
    alerts: Sequence[AnalysisAlert],
    trends: Sequence[TrendResult],
) -> List[Recommendation]:
    recommendations: List[Recommendation] = []

    critical = [a for a in alerts if a.severity == "critical"]
    if critical:
        recommendations.append(Recommendation(
            kind="critical",
            title="Critical alert",
            description=f"{len(critical)} readings are in a critical state",
            action="Stop the affected equipment and carry out a full inspection",
        ))

    reliable = [
        t for t in trends
        if t.direction == "increasing" and t.confidence > RELIABLE_TREND_CONFIDENCE
    ]
    if len(reliable) >= MIN_RELIABLE_TRENDS:
        recommendations.append(Recommendation(
            kind="trend",
            title="Increasing trend",
            description=f"{len(reliable)} parameters show a reliable increasing trend",
            action="Plan preventive maintenance",
        ))

    return recommendations


# =============================================================================
# FULL RUN
# =============================================================================

def run_analysis(
    records: Iterable[MeasurementRecord],
    settings: Optional[AnalysisSettings] = None,
    as_of: Optional[date] = None,
) -> AnalysisReport:
    """
    Analyze the settings' unit over its time window ending at ``as_of``.

    Records outside the unit or window are ignored, so callers may pass an
    unfiltered history.
    """
    settings = settings or AnalysisSettings()
    date_from, date_to = settings.window(as_of)
    selected = [
        r for r in records
        if r.unit == settings.unit and date_from <= r.date <= date_to
    ]

    report = AnalysisReport(settings=settings, record_count=len(selected))

    for (equipment_id, parameter_id), points in group_readings(selected).items():
        equipment = catalog.get_equipment(equipment_id)
        parameter = catalog.get_parameter(parameter_id)

        increase = detect_abnormal_increase(points, settings.comparison_days, settings.threshold_percent)
        if increase:
            report.alerts.append(AnalysisAlert(
                equipment=equipment_id,
                equipment_name=equipment.name,
                parameter=parameter_id,
                parameter_name=parameter.name,
                severity=increase["severity"],
                current_value=increase["current_value"],
                previous_value=increase["previous_value"],
                increase_percent=increase["increase_percent"],
                date=increase["date"],
                recommendation=generate_recommendation(increase["severity"]),
            ))

        trend = analyze_trend(points)
        if trend:
            report.trends.append(TrendResult(
                equipment=equipment_id,
                equipment_name=equipment.name,
                parameter=parameter_id,
                parameter_name=parameter.name,
                direction=trend["direction"],
                slope=trend["slope"],
                confidence=trend["confidence"],
                predicted_next_value=trend["prediction"],
            ))

        report.statistics.setdefault(equipment_id, {})[parameter_id] = calculate_statistics(points)

    report.alerts.sort(key=lambda a: SEVERITY_ORDER.get(a.severity, len(SEVERITY_ORDER)))
    report.recommendations = generate_global_recommendations(report.alerts, report.trends)
    return report
