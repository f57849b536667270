"""Macro Data Routes - public historical series for charts.

GET /api/macro-data?country=HU
"""
from fastapi import APIRouter, Query, Request

from services.economic_data import DEFAULT_COUNTRY

router = APIRouter(prefix="/api/macro-data", tags=["macro-data"])


@router.get("")
async def get_macro_data(request: Request, country: str = Query(DEFAULT_COUNTRY)):
    """Historical rows, the projected rate used by the retirement calculator, and data sources."""
    overview = await request.app.state.series_provider.get_overview(country)

    return {
        "success": True,
        "data": {
            "country": overview.country,
            "historical": [row.model_dump() for row in overview.rows],
            "latest_year": overview.latest_year,
            "projected_inflation": overview.projected_inflation,
            "sources": overview.sources,
        },
    }
