"""Deal trend and risk routes."""

import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from freight_insights.action.dependencies import (
    CamelModel,
    FiltersBody,
    get_deals,
    get_now,
    trend_filters,
)
from freight_insights.deals.models import Deal
from freight_insights.discovery.trend_detection import analyze_deal_trends

logger = logging.getLogger(__name__)

router = APIRouter(tags=["trends"])


class TrendRequest(CamelModel):
    filters: FiltersBody = Field(default_factory=FiltersBody)


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------


@router.get("/trends")
def get_deal_trends(
    transportation_mode: Optional[str] = Query(None, alias="transportationMode"),
    sales_rep: Optional[str] = Query(None, alias="salesRep"),
    deal_size_category: Optional[str] = Query(None, alias="dealSizeCategory"),
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    risk_level: Optional[str] = Query(None, alias="riskLevel"),
    priority: Optional[str] = Query(None),
    is_stalling: Optional[str] = Query(None, alias="isStalling"),
    deals: list[Deal] = Depends(get_deals),
    now: datetime = Depends(get_now),
) -> dict:
    """Risk-scored open deals; ``isStalling`` is true only for the literal "true"."""
    body = FiltersBody(
        transportation_mode=transportation_mode,
        sales_rep=sales_rep,
        deal_size_category=deal_size_category,
        start_date=start_date,
        end_date=end_date,
        risk_level=risk_level,
        priority=priority,
        is_stalling=None if is_stalling is None else is_stalling == "true",
    )
    result = analyze_deal_trends(deals, trend_filters(body), now=now)
    return {"success": True, "data": result}


@router.post("/trends")
def post_deal_trends(
    request: TrendRequest,
    deals: list[Deal] = Depends(get_deals),
    now: datetime = Depends(get_now),
) -> dict:
    """Risk-scored open deals with filters from the JSON body."""
    result = analyze_deal_trends(deals, trend_filters(request.filters), now=now)
    return {"success": True, "data": result}
