"""Inflation Series Provider - historical (year, rate) series per country.

The durable source is the macro_data collection, one document per (country, year):
    {country, year, inflation_rate, interest_rate, m2_growth, source, created_at, updated_at}

Reads never raise. fetch_stored() returns a SeriesResult carrying either a usable
series or the reason it is unusable; get_series() is the single place that decides
whether to fall back to the static series in services/economic_data.py or hand the
error to the caller.
"""
import math
import re
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from pymongo.errors import PyMongoError

from models import InflationDataPoint, MacroDataRow, SeriesSource
from services.economic_data import (
    DEFAULT_COUNTRY,
    DEFAULT_PROJECTED_INFLATION,
    DEFAULT_SOURCE,
    HISTORICAL_INFLATION,
    HISTORICAL_M2_GROWTH,
    MAX_PROJECTION_YEARS_AHEAD,
)
from services.errors import DataGapError

logger = logging.getLogger(__name__)

MAX_COUNTRY_LENGTH = 10
PROJECTION_WINDOW_YEARS = 5
PROJECTION_SANITY_RANGE = (0.0, 20.0)


@dataclass
class SeriesResult:
    """Outcome of a series read: a usable series, or an error describing why not."""
    country: str
    series: List[InflationDataPoint] = field(default_factory=list)
    source: Optional[SeriesSource] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.series)


@dataclass
class MacroOverview:
    """Everything the macro data endpoint returns, resolved from one store read."""
    country: str
    rows: List[MacroDataRow]
    latest_year: Optional[int]
    projected_inflation: float
    sources: List[str]


def sanitize_country(country) -> str:
    """Alphanumerics and underscore only, upper-cased; anything unusable becomes the default."""
    if not country or not isinstance(country, str) or len(country) > MAX_COUNTRY_LENGTH:
        return DEFAULT_COUNTRY
    sanitized = re.sub(r"[^a-zA-Z0-9_]", "", country).upper()
    return sanitized or DEFAULT_COUNTRY


def validate_series(points: List[InflationDataPoint]) -> Optional[str]:
    """Return None for a strictly increasing, gap-free series with every rate above -100%,
    else a description of the defect."""
    for point in points:
        if point.rate <= -100:
            return f"rate {point.rate} for {point.year} is not above -100%"
    for previous, current in zip(points, points[1:]):
        if current.year == previous.year:
            return f"duplicate year {current.year}"
        if current.year < previous.year:
            return f"year {current.year} out of order"
        if current.year != previous.year + 1:
            return f"missing years {previous.year + 1}-{current.year - 1}"
    return None


def static_series(country: str) -> List[InflationDataPoint]:
    return [
        InflationDataPoint(year=year, rate=rate)
        for year, rate in HISTORICAL_INFLATION.get(country, [])
        if math.isfinite(rate)
    ]


def _static_rows(country: str) -> List[MacroDataRow]:
    m2 = HISTORICAL_M2_GROWTH.get(country, {})
    return [
        MacroDataRow(
            country=country,
            year=point.year,
            inflation_rate=point.rate,
            interest_rate=None,
            m2_growth=m2.get(point.year),
            source=DEFAULT_SOURCE,
        )
        for point in static_series(country)
    ]


def _stored_series(country: str, rows: List[MacroDataRow]) -> SeriesResult:
    points = [
        InflationDataPoint(year=row.year, rate=row.inflation_rate)
        for row in rows
        if math.isfinite(row.inflation_rate)
    ]
    if not points:
        return SeriesResult(country=country, error="no stored data")

    defect = validate_series(points)
    if defect:
        logger.warning(f"Stored inflation series for {country} rejected: {defect}")
        return SeriesResult(country=country, error=defect)

    return SeriesResult(country=country, series=points, source=SeriesSource.DATABASE)


def _latest_year(series: List[InflationDataPoint]) -> Optional[int]:
    return max((p.year for p in series), default=None)


def _unique_sources(rows: List[MacroDataRow]) -> List[str]:
    sources = []
    for row in rows:
        if row.source and row.source not in sources:
            sources.append(row.source)
    return sources


class InflationSeriesProvider:
    """Reads macro data from MongoDB with a static fallback."""

    def __init__(self, db, default_projected_inflation: float = DEFAULT_PROJECTED_INFLATION):
        self.db = db
        self.default_projected_inflation = default_projected_inflation

    # =========================================================================
    # Store access
    # =========================================================================

    async def _fetch_rows(self, country: str) -> List[MacroDataRow]:
        cursor = self.db.macro_data.find({"country": country}, {"_id": 0}).sort("year", 1)
        docs = await cursor.to_list(length=None)
        return [MacroDataRow(**doc) for doc in docs]

    async def _read(self, country: str) -> Tuple[List[MacroDataRow], SeriesResult]:
        """One store read: the raw rows and the stored series validated from them."""
        try:
            rows = await self._fetch_rows(country)
        except PyMongoError as e:
            logger.error(f"macro_data read failed for {country}: {e}")
            return [], SeriesResult(country=country, error=f"store unavailable: {e}")
        return rows, _stored_series(country, rows)

    async def fetch_stored(self, country: str) -> SeriesResult:
        """Read the stored series. Never raises; failures are reported in the result."""
        _, stored = await self._read(sanitize_country(country))
        return stored

    @staticmethod
    def _resolve(stored: SeriesResult) -> SeriesResult:
        if stored.ok:
            return stored

        fallback = static_series(stored.country)
        if fallback:
            logger.info(f"Using static inflation series for {stored.country} ({stored.error})")
            return SeriesResult(country=stored.country, series=fallback, source=SeriesSource.STATIC)

        return stored

    async def get_series(self, country: str = DEFAULT_COUNTRY) -> SeriesResult:
        """
        Resolve the series for a country.

        Decision:
        - stored series usable -> stored series
        - otherwise, static data exists for the country -> static series
        - otherwise -> the stored result's error, empty series
        """
        return self._resolve(await self.fetch_stored(country))

    async def require_series(self, country: str = DEFAULT_COUNTRY) -> SeriesResult:
        """Like get_series, but raises DataGapError when no usable series exists."""
        result = await self.get_series(country)
        if not result.series:
            raise DataGapError(result.country, result.error or "no data")
        return result

    async def get_macro_data(self, country: str = DEFAULT_COUNTRY) -> List[MacroDataRow]:
        """All macro rows for a country sorted by year, static rows when the store has none."""
        country = sanitize_country(country)
        rows, _ = await self._read(country)
        return rows or _static_rows(country)

    async def get_overview(self, country: str = DEFAULT_COUNTRY) -> MacroOverview:
        """Rows, resolved series and the values derived from them, from a single store read."""
        country = sanitize_country(country)
        rows, stored = await self._read(country)
        rows = rows or _static_rows(country)
        result = self._resolve(stored)
        return MacroOverview(
            country=country,
            rows=rows,
            latest_year=_latest_year(result.series),
            projected_inflation=self.projected_rate(result.series),
            sources=_unique_sources(rows),
        )

    # =========================================================================
    # Derived values
    # =========================================================================

    def projected_rate(self, series: List[InflationDataPoint]) -> float:
        """
        Historical average of the most recent years, used for illustrative projections.
        This is not a forecast. Falls back to the configured default when history is
        missing or the average is outside the sanity range.
        """
        recent = sorted(series, key=lambda p: p.year, reverse=True)[:PROJECTION_WINDOW_YEARS]
        rates = [p.rate for p in recent if math.isfinite(p.rate)]
        if len(rates) < PROJECTION_WINDOW_YEARS:
            return self.default_projected_inflation

        average = sum(rates) / len(rates)
        low, high = PROJECTION_SANITY_RANGE
        if not math.isfinite(average) or average < low or average > high:
            return self.default_projected_inflation
        return average

    async def get_projected_inflation_rate(self, country: str = DEFAULT_COUNTRY) -> float:
        result = await self.get_series(country)
        return self.projected_rate(result.series)

    async def get_latest_year(self, country: str = DEFAULT_COUNTRY) -> Optional[int]:
        result = await self.get_series(country)
        return _latest_year(result.series)

    async def get_rate_for_year(self, year: int, country: str = DEFAULT_COUNTRY) -> Optional[float]:
        current_year = datetime.now(timezone.utc).year
        if year < 1900 or year > current_year + MAX_PROJECTION_YEARS_AHEAD:
            return None
        result = await self.get_series(country)
        for point in result.series:
            if point.year == year:
                return point.rate
        return None

    async def get_data_sources(self, country: str = DEFAULT_COUNTRY) -> List[str]:
        return _unique_sources(await self.get_macro_data(country))

    # =========================================================================
    # Seeding
    # =========================================================================

    async def seed_static_series(self, country: str = DEFAULT_COUNTRY) -> int:
        """Insert static rows that are missing from macro_data. Existing rows are left untouched."""
        country = sanitize_country(country)
        now = datetime.now(timezone.utc)
        inserted = 0
        for row in _static_rows(country):
            result = await self.db.macro_data.update_one(
                {"country": row.country, "year": row.year},
                {"$setOnInsert": {**row.model_dump(), "created_at": now, "updated_at": now}},
                upsert=True,
            )
            if getattr(result, "upserted_id", None) is not None:
                inserted += 1
        if inserted:
            logger.info(f"Seeded {inserted} macro_data rows for {country}")
        return inserted
