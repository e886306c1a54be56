"""Revenue forecasting routes."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from config.settings import settings
from freight_insights.action.dependencies import (
    SIZE_CATEGORY_NAMES,
    CamelModel,
    FiltersBody,
    applied_filters,
    forecasting_filters,
    get_deals,
    get_now,
)
from freight_insights.deals.filters import ForecastingFilters
from freight_insights.deals.models import TRANSPORTATION_MODES, Deal
from freight_insights.discovery.revenue_forecaster import calculate_revenue_forecast

logger = logging.getLogger(__name__)

router = APIRouter(tags=["forecasting"])


class ForecastRequest(CamelModel):
    filters: FiltersBody = Field(default_factory=FiltersBody)
    months_to_forecast: int = Field(default=settings.default_months_to_forecast, ge=1)
    quota_target: Optional[float] = None


def _respond(
    deals: list[Deal],
    months: int,
    quota_target: Optional[float],
    filters: ForecastingFilters,
    now: datetime,
) -> dict:
    result = calculate_revenue_forecast(deals, months, quota_target, filters, now=now)
    return {
        "success": True,
        "data": result,
        "filters": {
            "applied": applied_filters(filters),
            "available": {
                "transportationModes": TRANSPORTATION_MODES,
                "dealSizeCategories": SIZE_CATEGORY_NAMES,
                "monthsToForecast": months,
                "quotaTarget": quota_target,
            },
        },
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/forecasting/revenue")
def get_revenue_forecast(
    transportation_mode: Optional[str] = Query(None, alias="transportationMode"),
    sales_rep: Optional[str] = Query(None, alias="salesRep"),
    deal_size_category: Optional[str] = Query(None, alias="dealSizeCategory"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    months_to_forecast: int = Query(
        settings.default_months_to_forecast, alias="monthsToForecast", ge=1
    ),
    quota_target: Optional[float] = Query(None, alias="quotaTarget"),
    deals: list[Deal] = Depends(get_deals),
    now: datetime = Depends(get_now),
) -> dict:
    """Monthly revenue forecast, filtered by query parameters."""
    body = FiltersBody(
        transportation_mode=transportation_mode,
        sales_rep=sales_rep,
        deal_size_category=deal_size_category,
        start_date=start_date,
        end_date=end_date,
    )
    return _respond(deals, months_to_forecast, quota_target, forecasting_filters(body), now)


@router.post("/forecasting/revenue")
def post_revenue_forecast(
    request: ForecastRequest,
    deals: list[Deal] = Depends(get_deals),
    now: datetime = Depends(get_now),
) -> dict:
    """Monthly revenue forecast with parameters from the JSON body."""
    return _respond(
        deals,
        request.months_to_forecast,
        request.quota_target,
        forecasting_filters(request.filters),
        now,
    )
