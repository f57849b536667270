"""Purchasing Power Calculator - nominal vs real value of a lump sum over a historical series.

Order of operations (per year after the start year):
  1) nominal *= (1 + yield/100)            annual compounding only
  2) cumulative *= (1 + rate/100)          year's inflation from the series
  3) real = nominal / cumulative

The start year is emitted as-is (real == nominal). Values are rounded to whole
currency units when a point is emitted; running values are never rounded.

This model discounts with the year-by-year series. The retirement projector uses a
single constant rate instead (see services/retirement_projection.py); the two are
different tools and are kept separate on purpose.
"""
import math
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from models import HoldingType, InflationDataPoint, PersonalInflationImpact, PurchasingPowerPoint
from services.economic_data import HOLDING_TYPE_INTEREST_RATES, MAX_PROJECTION_YEARS_AHEAD


def round_currency(value: float) -> int:
    """Round half up to a whole currency unit."""
    return int(math.floor(value + 0.5))


def _is_whole_number(value) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and float(value).is_integer()


def project(
    amount: float,
    start_year: int,
    end_year: int,
    annual_yield_percent: float,
    series: Sequence[InflationDataPoint],
    current_year: Optional[int] = None,
) -> List[PurchasingPowerPoint]:
    """
    Year-by-year nominal/real projection of amount from start_year to end_year.

    Returns an empty list, never raises, when inputs are non-finite or out of range,
    when start_year has no entry in series, or when a rate is -100% or lower.
    """
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        return []
    if not math.isfinite(amount) or amount <= 0:
        return []
    if not _is_whole_number(start_year) or not _is_whole_number(end_year):
        return []
    if isinstance(annual_yield_percent, bool) or not isinstance(annual_yield_percent, (int, float)):
        return []
    if not math.isfinite(annual_yield_percent) or annual_yield_percent < 0:
        return []
    if not series:
        return []
    if any(point.rate <= -100 for point in series):
        return []

    start_year, end_year = int(start_year), int(end_year)
    current_year = current_year or datetime.now(timezone.utc).year

    if start_year < series[0].year or start_year > current_year:
        return []
    if end_year < start_year or end_year > current_year + MAX_PROJECTION_YEARS_AHEAD:
        return []

    start_index = next((i for i, point in enumerate(series) if point.year == start_year), None)
    if start_index is None:
        return []

    points = [
        PurchasingPowerPoint(
            year=start_year,
            nominal=round_currency(amount),
            real=round_currency(amount),
        )
    ]

    growth = 1 + annual_yield_percent / 100
    nominal = float(amount)
    cumulative_inflation = 1.0

    for point in series[start_index:]:
        if point.year > end_year:
            break
        if point.year == start_year:
            continue

        nominal *= growth
        cumulative_inflation *= 1 + point.rate / 100
        real = nominal / cumulative_inflation

        points.append(
            PurchasingPowerPoint(
                year=point.year,
                nominal=round_currency(nominal),
                real=round_currency(real),
            )
        )

    return points


def summarize(amount: float, points: List[PurchasingPowerPoint]) -> Optional[PersonalInflationImpact]:
    """Loss of purchasing power at the last point, relative to its nominal value."""
    if not points:
        return None

    final = points[-1]
    loss = final.nominal - final.real
    loss_percentage = (loss / final.nominal) * 100 if final.nominal else 0.0

    return PersonalInflationImpact(
        initial_amount=amount,
        final_nominal_value=final.nominal,
        final_real_value=final.real,
        purchasing_power_loss=loss,
        purchasing_power_loss_percentage=loss_percentage,
        data_points=points,
    )


def personal_inflation_impact(
    amount: float,
    start_year: int,
    end_year: int,
    holding_type: HoldingType,
    series: Sequence[InflationDataPoint],
    current_year: Optional[int] = None,
) -> Optional[PersonalInflationImpact]:
    """Projection using the yield of a holding type (cash, low-interest savings, no yield)."""
    annual_yield = HOLDING_TYPE_INTEREST_RATES[HoldingType(holding_type).value]
    points = project(amount, start_year, end_year, annual_yield, series, current_year=current_year)
    return summarize(amount, points)
