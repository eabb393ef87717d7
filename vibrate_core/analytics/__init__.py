# =============================================================================
# vibrate_core/analytics/__init__.py
# =============================================================================

from .trend_analysis import (
    AnalysisAlert,
    AnalysisReport,
    AnalysisSettings,
    ParameterStatistics,
    ReadingPoint,
    Recommendation,
    TrendResult,
    analyze_trend,
    calculate_statistics,
    detect_abnormal_increase,
    generate_global_recommendations,
    generate_recommendation,
    group_readings,
    readings_frame,
    run_analysis,
)

__all__ = [
    "AnalysisAlert",
    "AnalysisReport",
    "AnalysisSettings",
    "ParameterStatistics",
    "ReadingPoint",
    "Recommendation",
    "TrendResult",
    "analyze_trend",
    "calculate_statistics",
    "detect_abnormal_increase",
    "generate_global_recommendations",
    "generate_recommendation",
    "group_readings",
    "readings_frame",
    "run_analysis",
]
