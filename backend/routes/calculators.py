"""Calculator Routes - purchasing power and "do nothing" retirement projection.

Endpoints (both require an active access grant, see middleware/access_gating.py):
- POST /api/calculators/purchasing-power
- POST /api/calculators/do-nothing
"""
from fastapi import APIRouter, Depends, Request
import logging

from middleware.access_gating import require_access
from models import AccessGrant, DoNothingRequest, PurchasingPowerRequest
from services import purchasing_power, retirement_projection
from services.economic_data import HOLDING_TYPE_INTEREST_RATES
from services.errors import DataGapError
from services.inflation_series import sanitize_country
from utils import messages

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/calculators", tags=["calculators"])


@router.post("/purchasing-power")
async def calculate_purchasing_power(
    request: Request,
    body: PurchasingPowerRequest,
    grant: AccessGrant = Depends(require_access),
):
    """
    Nominal vs real value of a lump sum over the historical inflation series.

    A range the series does not cover yields an empty data_points list and
    summary null, not an error.
    """
    country = sanitize_country(body.country)
    annual_yield = (
        HOLDING_TYPE_INTEREST_RATES[body.holding_type.value]
        if body.holding_type is not None
        else body.annual_yield_percent
    )

    try:
        result = await request.app.state.series_provider.require_series(country)
    except DataGapError as e:
        logger.warning(f"Purchasing power request without data: {e}")
        return {
            "success": True,
            "data": {
                "country": country,
                "source": None,
                "annual_yield_percent": annual_yield,
                "data_points": [],
                "summary": None,
                "message": messages.DATA_UNAVAILABLE,
            },
        }

    points = purchasing_power.project(
        body.amount,
        body.start_year,
        body.end_year,
        annual_yield,
        result.series,
    )
    summary = purchasing_power.summarize(body.amount, points)

    data = {
        "country": result.country,
        "source": result.source.value if result.source else None,
        "annual_yield_percent": annual_yield,
        "data_points": [point.model_dump() for point in points],
        "summary": summary.model_dump(exclude={"data_points"}) if summary else None,
    }
    if not points:
        data["message"] = messages.INVALID_YEAR_RANGE
    return {"success": True, "data": data}


@router.post("/do-nothing")
async def calculate_do_nothing(
    request: Request,
    body: DoNothingRequest,
    grant: AccessGrant = Depends(require_access),
):
    """Idle-cash savings projected to retirement at a constant inflation rate."""
    country = sanitize_country(body.country)
    if body.projected_inflation is not None:
        inflation = body.projected_inflation
    else:
        inflation = await request.app.state.series_provider.get_projected_inflation_rate(country)

    projection = retirement_projection.project(
        current_age=body.current_age,
        current_savings=body.current_savings,
        monthly_contribution=body.monthly_contribution,
        projected_annual_inflation_percent=inflation,
    )

    return {
        "success": True,
        "data": {
            "country": country,
            "projected_inflation": inflation,
            **projection.model_dump(),
        },
    }
