"""Precipitation analysis from hourly rainfall and soil-moisture history."""

from agrisite.precipitation.analyzer import (
    PrecipitationAnalyzer,
    analyze_precipitation_trends,
    analyze_recharge_patterns,
    analyze_seasonal_patterns,
    calculate_annual_metrics,
    calculate_precipitation_metrics,
    calculate_reliability_scores,
    flatten_grouped,
    group_precipitation_data,
    identify_extreme_events,
    parse_weather_archive,
)
from agrisite.precipitation.models import (
    AnnualMetrics,
    ExtremeEvents,
    PrecipMetrics,
    PrecipRecord,
    RechargePatterns,
    ReliabilityScores,
    SeasonalPatterns,
    TrendAnalysis,
)

__all__ = [
    "AnnualMetrics",
    "ExtremeEvents",
    "PrecipMetrics",
    "PrecipRecord",
    "PrecipitationAnalyzer",
    "RechargePatterns",
    "ReliabilityScores",
    "SeasonalPatterns",
    "TrendAnalysis",
    "analyze_precipitation_trends",
    "analyze_recharge_patterns",
    "analyze_seasonal_patterns",
    "calculate_annual_metrics",
    "calculate_precipitation_metrics",
    "calculate_reliability_scores",
    "flatten_grouped",
    "group_precipitation_data",
    "identify_extreme_events",
    "parse_weather_archive",
]
