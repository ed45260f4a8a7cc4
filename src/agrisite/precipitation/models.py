"""Data models for precipitation analysis."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Optional


def to_iso(timestamp: int) -> str:
    """Format epoch seconds as an ISO-8601 UTC string."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


@dataclass(frozen=True)
class PrecipRecord:
    """One hourly observation.

    Attributes:
        timestamp: Observation time in epoch seconds (UTC)
        rain_mm: Rainfall in millimetres
        soil_moisture: Volumetric soil moisture (m3/m3), if reported
    """

    timestamp: int
    rain_mm: float
    soil_moisture: Optional[float] = None

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    @property
    def year(self) -> int:
        return self.time.year

    @property
    def month_index(self) -> int:
        """Month as 0..11."""
        return self.time.month - 1


@dataclass
class AnnualMetrics:
    year: int
    total_rainfall: float
    average_monthly_rainfall: float
    variability_coefficient: float
    dry_months: int


@dataclass
class SeasonalPatterns:
    """Wet, dry and transition months (0..11) plus the seasonality index."""

    wet_season: list[int]
    dry_season: list[int]
    transition_periods: list[int]
    seasonality_index: float


@dataclass
class DroughtEvent:
    start: int
    end: int
    records: int
    deficit_ratio: float
    severity: str

    def to_dict(self) -> dict:
        d = asdict(self)
        d["start_date"] = to_iso(self.start)
        d["end_date"] = to_iso(self.end)
        return d


@dataclass
class HeavyRainEvent:
    timestamp: int
    amount: float
    intensity: float

    def to_dict(self) -> dict:
        d = asdict(self)
        d["date"] = to_iso(self.timestamp)
        return d


@dataclass
class ExtremeEvents:
    droughts: list[DroughtEvent] = field(default_factory=list)
    heavy_rain: list[HeavyRainEvent] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "droughts": [d.to_dict() for d in self.droughts],
            "heavy_rain": [e.to_dict() for e in self.heavy_rain],
        }


@dataclass
class YearOverYearChange:
    year: int
    change: float
    percent_change: Optional[float]


@dataclass
class CycleAnalysis:
    peaks: list[int]
    troughs: list[int]
    average_cycle_length: Optional[float]


@dataclass
class TrendAnalysis:
    """Long-term slope of yearly totals (mm/year) and derived changes."""

    long_term_trend: float
    year_over_year: list[YearOverYearChange]
    cycles: CycleAnalysis


@dataclass
class RechargeEvent:
    timestamp: int
    amount: float
    soil_moisture: float

    def to_dict(self) -> dict:
        d = asdict(self)
        d["date"] = to_iso(self.timestamp)
        return d


@dataclass
class RechargePatterns:
    threshold: float
    events: list[RechargeEvent]
    yearly: dict[int, float]
    efficiency: float

    def to_dict(self) -> dict:
        return {
            "threshold": self.threshold,
            "events": [e.to_dict() for e in self.events],
            "yearly": {str(year): total for year, total in self.yearly.items()},
            "efficiency": self.efficiency,
        }


@dataclass
class ReliabilityScores:
    """Reliability scores, each in [0, 1]."""

    overall: float
    seasonal: float
    trend: float
    recharge: float


@dataclass
class PrecipMetrics:
    """Aggregate precipitation analysis, built once per request."""

    annual: list[AnnualMetrics]
    monthly_averages: list[float]
    seasonal: SeasonalPatterns
    extremes: ExtremeEvents
    trends: TrendAnalysis
    recharge: RechargePatterns
    reliability: ReliabilityScores

    def to_dict(self) -> dict:
        return {
            "annual": [asdict(a) for a in self.annual],
            "monthly_averages": list(self.monthly_averages),
            "seasonal": asdict(self.seasonal),
            "extremes": self.extremes.to_dict(),
            "trends": asdict(self.trends),
            "recharge": self.recharge.to_dict(),
            "reliability": asdict(self.reliability),
        }
