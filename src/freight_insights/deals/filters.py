"""Optional deal filters shared by the three analyses.

Every supplied field narrows the list (sequential AND).  ``None`` or an
empty string imposes no constraint.  The input list is never mutated.
"""

from __future__ import annotations

from dataclasses import dataclass

from freight_insights.deals.models import Deal, get_deal_size_category, parse_datetime


@dataclass
class DealFilters:
    """Filters common to every analysis."""
    transportation_mode: str | None = None
    sales_rep: str | None = None
    deal_size_category: str | None = None
    start_date: str | None = None
    end_date: str | None = None


@dataclass
class HistoricalAnalysisFilters(DealFilters):
    stage: str | None = None


@dataclass
class ForecastingFilters(DealFilters):
    pass


@dataclass
class TrendFilters(DealFilters):
    """Trend filters; the last three match derived per-deal fields."""
    risk_level: str | None = None
    priority: str | None = None
    is_stalling: bool | None = None


def filter_deals(deals: list[Deal], filters: DealFilters | None) -> list[Deal]:
    """Apply the common filters and return a new list."""
    filtered = list(deals)
    if filters is None:
        return filtered

    if filters.transportation_mode:
        filtered = [d for d in filtered if d.transportation_mode == filters.transportation_mode]

    if filters.sales_rep:
        filtered = [d for d in filtered if d.sales_rep == filters.sales_rep]

    if filters.deal_size_category:
        category = get_deal_size_category(filters.deal_size_category)
        if category is not None:
            filtered = [d for d in filtered if category.contains(d.value)]

    if filters.start_date:
        start = parse_datetime(filters.start_date)
        filtered = [d for d in filtered if d.expected_close_at >= start]

    if filters.end_date:
        end = parse_datetime(filters.end_date)
        filtered = [d for d in filtered if d.expected_close_at <= end]

    return filtered
