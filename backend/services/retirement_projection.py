"""Retirement Projector - the "do nothing" scenario.

Savings are kept as idle cash until retirement:
  - contributions accumulate once per year (monthly * 12), no interest
  - real value after k years = nominal / (1 + inflation/100) ** k

The discount here is one constant rate compounded per elapsed year. The purchasing
power calculator compounds the actual year-by-year series instead. This is a
deliberate simplification for a forward-looking projection where no series exists.
"""
from datetime import datetime, timezone
from typing import Optional

from models import RetirementProjection, RetirementProjectionPoint
from services.economic_data import RETIREMENT_AGE
from services.purchasing_power import round_currency


def project(
    current_age: int,
    current_savings: float,
    monthly_contribution: float,
    projected_annual_inflation_percent: float,
    retirement_age: int = RETIREMENT_AGE,
    current_year: Optional[int] = None,
) -> RetirementProjection:
    """
    Project savings to retirement_age with no investment.

    Inputs are expected to be validated at the boundary (DoNothingRequest).
    change_percent compares the final real value with the initial savings, so it
    measures purchasing-power gain or loss net of new contributions.
    """
    current_year = current_year or datetime.now(timezone.utc).year
    years_to_retirement = max(0, retirement_age - current_age)

    if years_to_retirement == 0:
        # Already at or past retirement age
        savings = round_currency(current_savings)
        return RetirementProjection(
            years_to_retirement=0,
            retirement_age=current_age,
            nominal_at_retirement=savings,
            real_at_retirement=savings,
            purchasing_power_change=0,
            change_percent=0.0,
            is_purchasing_power_declining=False,
            yearly_breakdown=[
                RetirementProjectionPoint(
                    year=current_year,
                    age=current_age,
                    nominal=savings,
                    real=savings,
                )
            ],
        )

    breakdown = [
        RetirementProjectionPoint(
            year=current_year,
            age=current_age,
            nominal=round_currency(current_savings),
            real=round_currency(current_savings),
        )
    ]

    discount = 1 + projected_annual_inflation_percent / 100
    nominal = float(current_savings)
    real = nominal

    for elapsed in range(1, years_to_retirement + 1):
        nominal += monthly_contribution * 12
        real = nominal / (discount ** elapsed)
        breakdown.append(
            RetirementProjectionPoint(
                year=current_year + elapsed,
                age=current_age + elapsed,
                nominal=round_currency(nominal),
                real=round_currency(real),
            )
        )

    final = breakdown[-1]
    change = final.real - current_savings
    change_percent = (change / current_savings) * 100 if current_savings > 0 else 0.0

    return RetirementProjection(
        years_to_retirement=years_to_retirement,
        retirement_age=current_age + years_to_retirement,
        nominal_at_retirement=final.nominal,
        real_at_retirement=final.real,
        purchasing_power_change=round_currency(change),
        change_percent=change_percent,
        is_purchasing_power_declining=change_percent < 0,
        yearly_breakdown=breakdown,
    )
