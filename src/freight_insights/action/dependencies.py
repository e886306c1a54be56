"""Shared dependencies for the API routers: deal source, clock and filter builders."""

import logging
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from config.settings import settings
from freight_insights.deals.filters import (
    ForecastingFilters,
    HistoricalAnalysisFilters,
    TrendFilters,
)
from freight_insights.deals.models import (
    DEAL_SIZE_CATEGORIES,
    Deal,
    get_deal_size_category,
    utc_now,
)
from freight_insights.ingestion.deal_loader import load_deals

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# FastAPI Dependencies
# ---------------------------------------------------------------------------


def get_deals() -> list[Deal]:
    """Load the full deal list from the configured export."""
    return load_deals(settings.deals_file)


def get_now() -> datetime:
    """Reference instant for every now-relative computation."""
    return utc_now()


# ---------------------------------------------------------------------------
# Request bodies (camelCase on the wire)
# ---------------------------------------------------------------------------


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class FiltersBody(CamelModel):
    transportation_mode: Optional[str] = None
    sales_rep: Optional[str] = None
    deal_size_category: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    stage: Optional[str] = None
    risk_level: Optional[str] = None
    priority: Optional[str] = None
    is_stalling: Optional[bool] = None


# ---------------------------------------------------------------------------
# Filter builders
# ---------------------------------------------------------------------------


def known_size_category(name: Optional[str]) -> Optional[str]:
    """Drop deal-size categories the analyses do not know."""
    if name and get_deal_size_category(name) is not None:
        return name
    if name:
        logger.debug("Ignoring unknown deal size category %r", name)
    return None


def historical_filters(body: FiltersBody) -> HistoricalAnalysisFilters:
    return HistoricalAnalysisFilters(
        transportation_mode=body.transportation_mode or None,
        sales_rep=body.sales_rep or None,
        deal_size_category=known_size_category(body.deal_size_category),
        start_date=body.start_date or None,
        end_date=body.end_date or None,
        stage=body.stage or None,
    )


def forecasting_filters(body: FiltersBody) -> ForecastingFilters:
    return ForecastingFilters(
        transportation_mode=body.transportation_mode or None,
        sales_rep=body.sales_rep or None,
        deal_size_category=known_size_category(body.deal_size_category),
        start_date=body.start_date or None,
        end_date=body.end_date or None,
    )


def trend_filters(body: FiltersBody) -> TrendFilters:
    return TrendFilters(
        transportation_mode=body.transportation_mode or None,
        sales_rep=body.sales_rep or None,
        deal_size_category=known_size_category(body.deal_size_category),
        start_date=body.start_date or None,
        end_date=body.end_date or None,
        risk_level=body.risk_level or None,
        priority=body.priority or None,
        is_stalling=body.is_stalling,
    )


def applied_filters(filters) -> dict:
    """camelCase view of the filters that actually constrain the result."""
    return {
        to_camel(name): value
        for name, value in vars(filters).items()
        if value is not None
    }


SIZE_CATEGORY_NAMES = [cat.category for cat in DEAL_SIZE_CATEGORIES]
