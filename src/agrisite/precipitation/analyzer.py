"""Precipitation analysis: annual, seasonal, extreme-event, trend and recharge metrics.

Turns a multi-year hourly series of (rain, soil moisture) observations into a
:class:`PrecipMetrics` summary. The pure functions in this module operate on
lists of :class:`PrecipRecord`; :class:`PrecipitationAnalyzer` adds fetching
the series from the weather archive through the gateway.

Example:
    >>> metrics = calculate_precipitation_metrics(records)
    >>> metrics.seasonal.seasonality_index
    0.42
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import date, timedelta
from typing import Callable, Iterable, Optional

import numpy as np
import pandas as pd

from agrisite.exceptions import DataInsufficient, ValidationError
from agrisite.gateway import Endpoint, GatewayRequest, RemoteDataGateway, RequestContext
from agrisite.gateway.schemas import MAX_EPOCH_SECONDS, WeatherArchiveResponse
from agrisite.precipitation.models import (
    AnnualMetrics,
    CycleAnalysis,
    DroughtEvent,
    ExtremeEvents,
    HeavyRainEvent,
    PrecipMetrics,
    PrecipRecord,
    RechargeEvent,
    RechargePatterns,
    ReliabilityScores,
    SeasonalPatterns,
    TrendAnalysis,
    YearOverYearChange,
)
from agrisite.utils.stats import (
    clamp,
    coefficient_of_variation,
    least_squares_slope,
    mean,
    std,
)

logger = logging.getLogger(__name__)

MONTHS = 12
HISTORY_YEARS = 5
SOIL_MOISTURE_VARIABLE = "soil_moisture_100_to_255cm"

# Annual metrics
DRY_MONTH_MM = 30.0

# Extreme events
DROUGHT_RATIO = 0.3
DROUGHT_MIN_RECORDS = 30
HEAVY_RAIN_RATIO = 2.0
DROUGHT_SEVERITY = [(0.75, "Extreme"), (0.5, "Severe"), (0.25, "Moderate")]

# Recharge
RECHARGE_STD_FACTOR = 1.5
RECHARGE_MIN_SOIL_MOISTURE = 0.35
RECHARGE_MAX_SLOPE_DEG = 15.0
DEFAULT_FIELD_SLOPE_DEG = 5.0

Grouped = dict[int, dict[int, list[PrecipRecord]]]


def validate_records(records: Iterable[PrecipRecord]) -> list[PrecipRecord]:
    """Check timestamps are epoch seconds and return records sorted by time.

    Raises:
        ValidationError: If a timestamp is not an integer count of seconds
        DataInsufficient: If there are no records
    """
    checked = []
    for record in records:
        ts = record.timestamp
        if isinstance(ts, bool) or not isinstance(ts, (int, np.integer)):
            raise ValidationError(
                f"Timestamp must be integer epoch seconds, got {ts!r}",
                context="precipitation",
            )
        if ts < 0 or ts >= MAX_EPOCH_SECONDS:
            raise ValidationError(
                f"Timestamp {ts} is outside the epoch-seconds range "
                "(milliseconds are not accepted)",
                context="precipitation",
            )
        checked.append(record)

    if not checked:
        raise DataInsufficient("No precipitation records available", context="precipitation")

    return sorted(checked, key=lambda r: r.timestamp)


def group_precipitation_data(records: list[PrecipRecord]) -> Grouped:
    """Bucket records by year and month index (0..11), preserving order."""
    grouped: Grouped = {}
    for record in records:
        grouped.setdefault(record.year, {}).setdefault(record.month_index, []).append(record)
    return grouped


def flatten_grouped(grouped: Grouped) -> list[PrecipRecord]:
    """Inverse of :func:`group_precipitation_data` for timestamp-ordered input."""
    flat = []
    for year in sorted(grouped):
        for month in sorted(grouped[year]):
            flat.extend(grouped[year][month])
    return flat


def monthly_totals(grouped: Grouped) -> pd.DataFrame:
    """Year x month table of rainfall totals; months without data total 0."""
    rows = [
        {"year": year, "month": month, "rain": sum(r.rain_mm for r in month_records)}
        for year, months in grouped.items()
        for month, month_records in months.items()
    ]
    table = pd.DataFrame(rows).pivot_table(
        index="year", columns="month", values="rain", aggfunc="sum"
    )
    return table.reindex(columns=range(MONTHS)).fillna(0.0)


def calculate_annual_metrics(grouped: Grouped) -> list[AnnualMetrics]:
    """Per-year totals, monthly mean, variability and dry-month count."""
    metrics = []
    for year in sorted(grouped):
        month_totals = [
            sum(r.rain_mm for r in records) for records in grouped[year].values()
        ]
        total = sum(month_totals)
        metrics.append(
            AnnualMetrics(
                year=year,
                total_rainfall=total,
                average_monthly_rainfall=total / MONTHS,
                variability_coefficient=coefficient_of_variation(month_totals),
                dry_months=sum(1 for t in month_totals if t < DRY_MONTH_MM),
            )
        )
    return metrics


def _grow_season(
    averages: list[float],
    seed: int,
    accept: Callable[[float], bool],
    exclude: set[int],
) -> set[int]:
    """Extend ``seed`` over adjacent months (wrapping) while ``accept`` holds."""
    months = {seed}
    for step in (-1, 1):
        month = (seed + step) % MONTHS
        while month not in months and month not in exclude and accept(averages[month]):
            months.add(month)
            month = (month + step) % MONTHS
    return months


def identify_wet_season(averages: list[float]) -> list[int]:
    """Wettest month plus contiguous neighbours above half its average."""
    peak = int(np.argmax(averages))
    threshold = averages[peak] / 2
    return sorted(_grow_season(averages, peak, lambda v: v > threshold, exclude=set()))


def identify_dry_season(averages: list[float], wet_season: list[int]) -> list[int]:
    """Driest month plus contiguous neighbours below twice its average.

    Months already in the wet season are never dry. When the driest month is
    itself wet (a near-uniform year) the dry season is empty.
    """
    trough = int(np.argmin(averages))
    wet = set(wet_season)
    if trough in wet:
        return []
    threshold = averages[trough] * 2
    return sorted(_grow_season(averages, trough, lambda v: v < threshold, exclude=wet))


def calculate_seasonality_index(averages: list[float]) -> float:
    high, low = max(averages), min(averages)
    if high + low == 0:
        return 0.0
    return (high - low) / (high + low)


def analyze_seasonal_patterns(grouped: Grouped) -> tuple[list[float], SeasonalPatterns]:
    """Monthly averages across years and the wet/dry/transition partition.

    Returns:
        Tuple of (monthly_averages[12], SeasonalPatterns)
    """
    table = monthly_totals(grouped)
    averages = [float(v) for v in table.mean(axis=0)]

    wet = identify_wet_season(averages)
    dry = identify_dry_season(averages, wet)
    classified = set(wet) | set(dry)
    transition = [m for m in range(MONTHS) if m not in classified]

    return averages, SeasonalPatterns(
        wet_season=wet,
        dry_season=dry,
        transition_periods=transition,
        seasonality_index=calculate_seasonality_index(averages),
    )


def _drought_severity(deficit_ratio: float) -> str:
    for threshold, label in DROUGHT_SEVERITY:
        if deficit_ratio >= threshold:
            return label
    return "Mild" if deficit_ratio > 0 else "None"


def identify_extreme_events(
    records: list[PrecipRecord], monthly_averages: list[float]
) -> ExtremeEvents:
    """Find droughts (runs of dry records) and heavy-rain records.

    A record is dry when its rain is below 30% of its month's average. Every
    run of 30 consecutive dry records emits one drought and restarts the
    count. A record above twice its month's average is heavy rain.
    """
    events = ExtremeEvents()
    run: list[PrecipRecord] = []

    for record in records:
        average = monthly_averages[record.month_index]

        if record.rain_mm < average * DROUGHT_RATIO:
            run.append(record)
            if len(run) == DROUGHT_MIN_RECORDS:
                expected = mean([monthly_averages[r.month_index] for r in run])
                observed = mean([r.rain_mm for r in run])
                deficit = clamp(1 - observed / expected, 0.0, 1.0) if expected > 0 else 0.0
                events.droughts.append(
                    DroughtEvent(
                        start=run[0].timestamp,
                        end=run[-1].timestamp,
                        records=len(run),
                        deficit_ratio=deficit,
                        severity=_drought_severity(deficit),
                    )
                )
                run = []
        else:
            run = []

        if average > 0 and record.rain_mm > average * HEAVY_RAIN_RATIO:
            events.heavy_rain.append(
                HeavyRainEvent(
                    timestamp=record.timestamp,
                    amount=record.rain_mm,
                    intensity=record.rain_mm / average,
                )
            )

    return events


def analyze_precipitation_trends(grouped: Grouped) -> TrendAnalysis:
    """Least-squares trend of yearly totals, year-over-year changes and cycles."""
    years = sorted(grouped)
    totals = [sum(r.rain_mm for recs in grouped[y].values() for r in recs) for y in years]

    changes = []
    for i in range(1, len(years)):
        change = totals[i] - totals[i - 1]
        percent = change / totals[i - 1] * 100 if totals[i - 1] else None
        changes.append(YearOverYearChange(year=years[i], change=change, percent_change=percent))

    peaks, troughs = [], []
    for i in range(1, len(totals) - 1):
        if totals[i] > totals[i - 1] and totals[i] > totals[i + 1]:
            peaks.append(years[i])
        elif totals[i] < totals[i - 1] and totals[i] < totals[i + 1]:
            troughs.append(years[i])

    extrema = sorted(peaks + troughs)
    gaps = [b - a for a, b in zip(extrema, extrema[1:])]

    return TrendAnalysis(
        long_term_trend=least_squares_slope(years, totals),
        year_over_year=changes,
        cycles=CycleAnalysis(
            peaks=peaks,
            troughs=troughs,
            average_cycle_length=mean(gaps) if gaps else None,
        ),
    )


def analyze_recharge_patterns(
    records: list[PrecipRecord],
    monthly_averages: list[float],
    field_slope_deg: float = DEFAULT_FIELD_SLOPE_DEG,
) -> RechargePatterns:
    """Recharge events, yearly recharge totals and recharge efficiency."""
    threshold = mean(monthly_averages) + RECHARGE_STD_FACTOR * std(monthly_averages)
    slope_ok = field_slope_deg < RECHARGE_MAX_SLOPE_DEG

    events = []
    yearly: dict[int, float] = {}
    total_rain = 0.0
    for record in records:
        total_rain += record.rain_mm
        if (
            slope_ok
            and record.rain_mm > threshold
            and record.soil_moisture is not None
            and record.soil_moisture > RECHARGE_MIN_SOIL_MOISTURE
        ):
            events.append(
                RechargeEvent(
                    timestamp=record.timestamp,
                    amount=record.rain_mm,
                    soil_moisture=record.soil_moisture,
                )
            )
            yearly[record.year] = yearly.get(record.year, 0.0) + record.rain_mm

    recharged = sum(e.amount for e in events)
    return RechargePatterns(
        threshold=threshold,
        events=events,
        yearly=yearly,
        efficiency=recharged / total_rain if total_rain > 0 else 0.0,
    )


def calculate_reliability_scores(
    seasonal: SeasonalPatterns, trends: TrendAnalysis, recharge: RechargePatterns
) -> ReliabilityScores:
    seasonal_score = clamp(1 - seasonal.seasonality_index, 0.0, 1.0)
    trend_score = clamp(1 - abs(trends.long_term_trend), 0.0, 1.0)
    recharge_score = clamp(recharge.efficiency, 0.0, 1.0)
    return ReliabilityScores(
        overall=(seasonal_score + trend_score + recharge_score) / 3,
        seasonal=seasonal_score,
        trend=trend_score,
        recharge=recharge_score,
    )


def calculate_precipitation_metrics(
    records: Iterable[PrecipRecord],
    field_slope_deg: float = DEFAULT_FIELD_SLOPE_DEG,
) -> PrecipMetrics:
    """Compute the full metrics set for a precipitation series.

    Annual, seasonal and trend calculations are independent and run
    concurrently; extremes, recharge and reliability depend on them and run
    afterwards.

    Args:
        records: Hourly observations (any order; sorted internally)
        field_slope_deg: Terrain slope at the site, used by the recharge filter

    Returns:
        PrecipMetrics

    Raises:
        ValidationError: If timestamps are not epoch seconds
        DataInsufficient: If there are no records
    """
    ordered = validate_records(records)
    grouped = group_precipitation_data(ordered)

    with ThreadPoolExecutor(max_workers=3, thread_name_prefix="precip") as executor:
        annual_future = executor.submit(calculate_annual_metrics, grouped)
        seasonal_future = executor.submit(analyze_seasonal_patterns, grouped)
        trends_future = executor.submit(analyze_precipitation_trends, grouped)

        annual = annual_future.result()
        monthly_averages, seasonal = seasonal_future.result()
        trends = trends_future.result()

    extremes = identify_extreme_events(ordered, monthly_averages)
    recharge = analyze_recharge_patterns(ordered, monthly_averages, field_slope_deg)
    reliability = calculate_reliability_scores(seasonal, trends, recharge)

    return PrecipMetrics(
        annual=annual,
        monthly_averages=monthly_averages,
        seasonal=seasonal,
        extremes=extremes,
        trends=trends,
        recharge=recharge,
        reliability=reliability,
    )


def parse_weather_archive(payload: dict) -> list[PrecipRecord]:
    """Convert an Open-Meteo hourly payload into records, skipping missing rain."""
    hourly = payload["hourly"]
    records = []
    for ts, rain, soil in zip(hourly["time"], hourly["rain"], hourly[SOIL_MOISTURE_VARIABLE]):
        if rain is None:
            continue
        records.append(PrecipRecord(timestamp=int(ts), rain_mm=float(rain), soil_moisture=soil))
    return records


class PrecipitationAnalyzer:
    """Fetches the hourly precipitation history for a point and analyzes it.

    Args:
        gateway: Remote Data Gateway used for the weather-archive call
        field_slope_deg: Terrain slope used by the recharge filter
        history_years: Length of the history window
        today: Date provider (injectable for tests)
    """

    def __init__(
        self,
        gateway: RemoteDataGateway,
        field_slope_deg: float = DEFAULT_FIELD_SLOPE_DEG,
        history_years: int = HISTORY_YEARS,
        today: Callable[[], date] = date.today,
    ):
        self.gateway = gateway
        self.field_slope_deg = field_slope_deg
        self.history_years = history_years
        self._today = today

    def fetch_records(
        self,
        lat: float,
        lon: float,
        context: Optional[RequestContext] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> list[PrecipRecord]:
        end = end or self._today()
        start = start or end - timedelta(days=365 * self.history_years)
        payload = self.gateway.fetch(
            GatewayRequest(
                endpoint=Endpoint.WEATHER_ARCHIVE,
                url=self.gateway.settings.weather_url,
                params={
                    "latitude": lat,
                    "longitude": lon,
                    "start_date": start.isoformat(),
                    "end_date": end.isoformat(),
                    "hourly": f"rain,{SOIL_MOISTURE_VARIABLE}",
                    "timeformat": "unixtime",
                    "timezone": "GMT",
                },
                schema=WeatherArchiveResponse,
            ),
            context,
        )
        records = parse_weather_archive(payload)
        logger.info(f"Fetched {len(records)} precipitation records for ({lat:.4f}, {lon:.4f})")
        return records

    def analyze(
        self,
        lat: float,
        lon: float,
        context: Optional[RequestContext] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> PrecipMetrics:
        """Fetch and analyze the precipitation history around (lat, lon).

        The window defaults to the last ``history_years`` years.

        Raises:
            DataInsufficient: If the archive returns no records
            UpstreamError: If the archive cannot be reached
        """
        records = self.fetch_records(lat, lon, context, start=start, end=end)
        metrics = calculate_precipitation_metrics(records, self.field_slope_deg)
        logger.info(
            f"Precipitation reliability {metrics.reliability.overall:.2f} "
            f"(seasonality {metrics.seasonal.seasonality_index:.2f})"
        )
        return metrics
