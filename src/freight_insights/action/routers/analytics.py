"""Historical win-rate analytics routes."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from freight_insights.action.dependencies import (
    SIZE_CATEGORY_NAMES,
    CamelModel,
    FiltersBody,
    applied_filters,
    get_deals,
    historical_filters,
)
from freight_insights.deals.filters import HistoricalAnalysisFilters
from freight_insights.deals.models import PIPELINE_STAGES, TRANSPORTATION_MODES, Deal
from freight_insights.discovery.historical_analytics import calculate_historical_analysis

logger = logging.getLogger(__name__)

router = APIRouter(tags=["analytics"])


class HistoricalRequest(CamelModel):
    filters: FiltersBody = Field(default_factory=FiltersBody)


def _respond(deals: list[Deal], filters: HistoricalAnalysisFilters) -> dict:
    analysis = calculate_historical_analysis(deals, filters)
    return {
        "success": True,
        "data": analysis,
        "filters": {
            "applied": applied_filters(filters),
            "available": {
                "transportationModes": TRANSPORTATION_MODES,
                "dealSizeCategories": SIZE_CATEGORY_NAMES,
                "stages": PIPELINE_STAGES,
            },
        },
    }


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/analytics/historical")
def get_historical_analysis(
    transportation_mode: Optional[str] = Query(None, alias="transportationMode"),
    sales_rep: Optional[str] = Query(None, alias="salesRep"),
    deal_size_category: Optional[str] = Query(None, alias="dealSizeCategory"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    stage: Optional[str] = Query(None),
    deals: list[Deal] = Depends(get_deals),
) -> dict:
    """Win-rate analysis of closed deals, filtered by query parameters."""
    body = FiltersBody(
        transportation_mode=transportation_mode,
        sales_rep=sales_rep,
        deal_size_category=deal_size_category,
        start_date=start_date,
        end_date=end_date,
        stage=stage,
    )
    return _respond(deals, historical_filters(body))


@router.post("/analytics/historical")
def post_historical_analysis(
    request: HistoricalRequest,
    deals: list[Deal] = Depends(get_deals),
) -> dict:
    """Win-rate analysis with filters from the JSON body."""
    return _respond(deals, historical_filters(request.filters))
