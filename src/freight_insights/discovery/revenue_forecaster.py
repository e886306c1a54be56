"""Monthly revenue forecasting from the open pipeline.

Each forecast month collects the deals expected to close in it, weights
their value by stage close probability, applies a fixed seasonality factor
and compares the result with the historical won-deal average for that
calendar month.  A rule set then turns the month series into narrative
risk factors and recommendations.

Pure functions: the reference instant is passed in via ``now``.
"""

from __future__ import annotations

import calendar
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime

from freight_insights.deals.filters import ForecastingFilters, filter_deals
from freight_insights.deals.models import Deal, Stage, parse_datetime, utc_now

logger = logging.getLogger(__name__)


# Monthly demand multipliers (1.0 = average month), keyed by month number.
SEASONALITY_FACTORS: dict[int, float] = {
    1: 0.9,    # January - slower
    2: 0.85,   # February - slower
    3: 1.1,    # March - Q1 push
    4: 1.0,
    5: 1.0,
    6: 1.2,    # June - Q2 push
    7: 0.9,    # July - summer slowdown
    8: 0.9,    # August - summer slowdown
    9: 1.1,    # September - Q3 push
    10: 1.0,
    11: 1.0,
    12: 1.3,   # December - year-end push
}

# Average deal value assumed when sizing a quota gap in deals.
_QUOTA_DEAL_SIZE = 50_000


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _round2(val: float) -> float:
    """Round half-up to 2 decimals."""
    return math.floor(val * 100 + 0.5) / 100


def _round_int(val: float) -> int:
    """Round half-up to an integer."""
    return math.floor(val + 0.5)


def _add_months(year: int, month: int, offset: int) -> tuple[int, int]:
    """Return (year, month) *offset* months after the given month."""
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def _split_month(month_key: str) -> tuple[int, int]:
    year, month = month_key.split("-")
    return int(year), int(month)


def _month_name(month_key: str, with_year: bool = False) -> str:
    year, month = _split_month(month_key)
    name = calendar.month_name[month]
    return f"{name} {year}" if with_year else name


def _seasonality(month_key: str) -> float:
    return SEASONALITY_FACTORS.get(_split_month(month_key)[1], 1.0)


def _name_list(names: list[str]) -> str:
    """First two names, with an ellipsis when more were cut."""
    return ", ".join(names[:2]) + ("..." if len(names) > 2 else "")


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class RevenueForecast:
    """Forecast for one calendar month."""
    month: str
    predicted_revenue: float
    confidence: float
    deal_count: int
    weighted_value: float
    historical_average: float
    trend: str  # increasing | decreasing | stable


@dataclass
class ForecastInsights:
    total_predicted_revenue: float
    average_monthly_revenue: float
    trend_analysis: str
    risk_factors: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    quota_gap: float | None = None
    quota_target: float | None = None


@dataclass
class RevenueForecastResult:
    forecast: list[RevenueForecast]
    insights: ForecastInsights


@dataclass
class HistoricalPatterns:
    """Baseline derived from closed deals, ignoring filters."""
    overall_average: float
    monthly_averages: dict[int, float]
    win_rate: float
    average_deal_size: float


# ---------------------------------------------------------------------------
# 1. calculate_revenue_forecast
# ---------------------------------------------------------------------------


def calculate_revenue_forecast(
    deals: list[Deal],
    months_to_forecast: int = 6,
    quota_target: float | None = None,
    filters: ForecastingFilters | None = None,
    *,
    now: datetime | None = None,
) -> RevenueForecastResult:
    """Project revenue for the next *months_to_forecast* months.

    The first forecast month is the calendar month of *now*.

    Args:
        deals: All known deals.  Filters narrow the pipeline being
            forecast; the historical baseline always uses every deal.
        months_to_forecast: Number of months to emit (at least 1).
        quota_target: Optional revenue target for the whole period.
        filters: Optional filters (date bounds apply to expected close).
        now: Reference instant, defaults to the current UTC time.

    Returns:
        RevenueForecastResult with exactly *months_to_forecast* entries.

    Raises:
        ValueError: if *months_to_forecast* is less than 1.
    """
    if months_to_forecast < 1:
        raise ValueError("months_to_forecast must be at least 1")

    now = parse_datetime(now) if now else utc_now()
    filtered = filter_deals(deals, filters)
    history = calculate_historical_patterns(deals)

    # Bucket the pipeline by close month once
    by_month: dict[tuple[int, int], list[Deal]] = defaultdict(list)
    for d in filtered:
        close = d.expected_close_at
        by_month[(close.year, close.month)].append(d)

    forecast: list[RevenueForecast] = []
    for i in range(months_to_forecast):
        year, month = _add_months(now.year, now.month, i)
        month_deals = by_month.get((year, month), [])

        weighted_value = sum(d.value * d.pipeline_stage.probability for d in month_deals)
        predicted = _round2(weighted_value * SEASONALITY_FACTORS[month])
        historical_average = _round2(
            history.monthly_averages.get(month) or history.overall_average
        )

        forecast.append(RevenueForecast(
            month=f"{year:04d}-{month:02d}",
            predicted_revenue=predicted,
            confidence=_round2(calculate_confidence(month_deals)),
            deal_count=len(month_deals),
            weighted_value=_round2(weighted_value),
            historical_average=historical_average,
            trend=determine_trend(predicted, historical_average),
        ))

    insights = generate_forecast_insights(forecast, quota_target, history)

    logger.info(
        "Revenue forecast: %d months from %d of %d deals, total %.2f",
        months_to_forecast, len(filtered), len(deals), insights.total_predicted_revenue,
    )

    return RevenueForecastResult(forecast=forecast, insights=insights)


# ---------------------------------------------------------------------------
# 2. Building blocks
# ---------------------------------------------------------------------------


def calculate_historical_patterns(deals: list[Deal]) -> HistoricalPatterns:
    """Won-deal averages (overall and per calendar month) and win rate."""
    closed = [d for d in deals if d.pipeline_stage.is_closed]
    won = [d for d in closed if d.pipeline_stage is Stage.CLOSED_WON]

    win_rate = len(won) / len(closed) if closed else 0.0
    overall_average = sum(d.value for d in won) / len(won) if won else 0.0

    monthly_values: dict[int, list[float]] = defaultdict(list)
    for d in won:
        monthly_values[d.expected_close_at.month].append(d.value)
    monthly_averages = {m: sum(v) / len(v) for m, v in monthly_values.items()}

    return HistoricalPatterns(
        overall_average=overall_average,
        monthly_averages=monthly_averages,
        win_rate=win_rate,
        average_deal_size=overall_average,
    )


def calculate_confidence(month_deals: list[Deal]) -> float:
    """Confidence from pipeline depth plus the share of late-stage deals."""
    if not month_deals:
        return 0.3

    confidence = min(len(month_deals) / 10, 0.8)
    late = sum(
        1 for d in month_deals
        if d.pipeline_stage in (Stage.NEGOTIATION, Stage.PROPOSAL)
    )
    confidence += late / len(month_deals) * 0.2
    return min(confidence, 0.95)


def determine_trend(predicted: float, historical: float) -> str:
    if predicted > historical * 1.1:
        return "increasing"
    if predicted < historical * 0.9:
        return "decreasing"
    return "stable"


# ---------------------------------------------------------------------------
# 3. generate_forecast_insights
# ---------------------------------------------------------------------------


def generate_forecast_insights(
    forecast: list[RevenueForecast],
    quota_target: float | None,
    history: HistoricalPatterns,
) -> ForecastInsights:
    """Turn the month series into narrative, risk factors and advice."""
    n = len(forecast)
    total = sum(m.predicted_revenue for m in forecast)
    average = total / n if n else 0.0

    trend_analysis = _trend_narrative(forecast)

    low_confidence = [m for m in forecast if m.confidence < 0.5]
    thin_months = [m for m in forecast if m.deal_count < 3]
    all_deals = sum(m.deal_count for m in forecast)
    early_stage = [
        m for m in forecast
        if m.predicted_revenue > 0 and m.weighted_value / m.predicted_revenue < 0.4
    ]
    early_heavy = len(early_stage) > n * 0.6
    seasonal_slow = [
        m for m in forecast
        if _seasonality(m.month) < 0.9 and m.predicted_revenue < average * 0.8
    ]
    seasonal_low = [m for m in forecast if _seasonality(m.month) < 0.9]
    peak = max(forecast, key=lambda m: m.predicted_revenue) if forecast else None
    concentrated = peak is not None and peak.predicted_revenue > total * 0.4
    decreasing = [m for m in forecast if m.trend == "decreasing"]
    increasing = [m for m in forecast if m.trend == "increasing"]

    gap_pct = None
    if quota_target and total < quota_target:
        gap_pct = _round_int((quota_target - total) / quota_target * 100)

    # -- Risk factors ------------------------------------------------------
    risk_factors: list[str] = []

    if len(low_confidence) == 1:
        only = low_confidence[0]
        risk_factors.append(
            f"{_month_name(only.month, with_year=True)} has low forecast confidence "
            f"({_round_int(only.confidence * 100)}%) - consider pipeline acceleration"
        )
    elif low_confidence:
        names = [_month_name(m.month, with_year=True) for m in low_confidence]
        risk_factors.append(
            f"{len(low_confidence)} months ({_name_list(names)}) have low confidence predictions"
        )

    if len(thin_months) == 1:
        only = thin_months[0]
        risk_factors.append(
            f"{_month_name(only.month)} has only {only.deal_count} deal(s) in pipeline"
            " - pipeline depth concern"
        )
    elif thin_months:
        names = [_month_name(m.month) for m in thin_months]
        risk_factors.append(
            f"{len(thin_months)} months ({_name_list(names)}) have thin pipeline coverage"
        )

    if all_deals > 0 and early_heavy:
        risk_factors.append("Pipeline heavily weighted toward early-stage deals - conversion risk")

    if seasonal_slow:
        names = [_month_name(m.month) for m in seasonal_slow]
        risk_factors.append(
            f"Seasonal slowdown expected in {_name_list(names)} - plan accordingly"
        )

    if concentrated:
        risk_factors.append(
            f"Revenue heavily concentrated in {_month_name(peak.month)} "
            f"({_round_int(peak.predicted_revenue / total * 100)}%) - diversification needed"
        )

    if len(decreasing) > n * 0.5:
        risk_factors.append(
            "Downward trend detected across majority of forecast period"
            " - pipeline health review required"
        )

    if gap_pct is not None:
        if gap_pct > 20:
            risk_factors.append(
                f"Significant quota gap ({gap_pct}% below target)"
                " - aggressive pipeline building needed"
            )
        elif gap_pct > 10:
            risk_factors.append(
                f"Moderate quota gap ({gap_pct}% below target) - focus on deal acceleration"
            )

    # -- Recommendations ---------------------------------------------------
    recommendations: list[str] = []

    if gap_pct is not None:
        deals_needed = math.ceil((quota_target - total) / _QUOTA_DEAL_SIZE)
        if gap_pct > 20:
            recommendations.append(
                f"🚨 CRITICAL: Need {deals_needed} additional deals to close quota gap "
                f"({gap_pct}% below target)"
            )
            recommendations.append(
                "🔴 Immediate actions: Accelerate all negotiation-stage deals,"
                " increase prospecting activity by 50%"
            )
        elif gap_pct > 10:
            recommendations.append(
                f"⚠️ MODERATE: Focus on closing {deals_needed} additional deals to meet quota "
                f"({gap_pct}% gap)"
            )
            recommendations.append("🟡 Priority: Move 3-5 qualified deals to proposal stage this week")
        else:
            recommendations.append(
                f"✅ ON TRACK: Close {deals_needed} additional deals to exceed quota by {abs(gap_pct)}%"
            )
    elif quota_target and total > quota_target:
        surplus_pct = _round_int((total - quota_target) / quota_target * 100)
        recommendations.append(
            f"🎯 EXCEEDING TARGET: Forecast shows {surplus_pct}% above quota - maintain momentum"
        )

    if low_confidence:
        names = [_month_name(m.month) for m in low_confidence]
        recommendations.append(
            f"📊 Pipeline Health: Increase activity in {_name_list(names)}"
            " - target 5+ deals per month"
        )

    if early_heavy:
        recommendations.append(
            "🎯 Stage Optimization: 60%+ of pipeline in early stages"
            " - focus on advancing deals to proposal/negotiation"
        )

    if seasonal_low:
        names = [_month_name(m.month) for m in seasonal_low]
        recommendations.append(
            f"📅 Seasonal Planning: Build extra pipeline for {_name_list(names)}"
            " (typically slower months)"
        )

    if concentrated:
        recommendations.append(
            f"⚖️ Revenue Balance: {_month_name(peak.month)} represents "
            f"{_round_int(peak.predicted_revenue / total * 100)}% of forecast"
            " - diversify across other months"
        )

    if len(decreasing) > n * 0.5:
        recommendations.append(
            "📉 Trend Alert: Downward trend detected - review sales process and conversion rates"
        )
    elif len(increasing) > n * 0.5:
        recommendations.append(
            "📈 Momentum: Strong upward trend - capitalize on current sales momentum"
        )

    if all_deals > 0:
        avg_deal_size = total / all_deals
        if avg_deal_size < 50_000:
            recommendations.append(
                "💰 Deal Size: Average deal size below $50k"
                " - focus on larger opportunities to improve efficiency"
            )
        elif avg_deal_size > 150_000:
            recommendations.append(
                "🎯 Large Deals: High-value pipeline"
                " - ensure proper resource allocation for complex sales"
            )

    months_with_deals = sum(1 for m in forecast if m.deal_count > 0)
    if months_with_deals < n * 0.7:
        recommendations.append(
            "⏱️ Pipeline Velocity: Spread deals more evenly across months"
            " for consistent revenue flow"
        )

    if history.win_rate < 0.3:
        recommendations.append(
            "🏆 Win Rate: Historical win rate below 30%"
            " - focus on deal qualification and proposal quality"
        )
    elif history.win_rate > 0.6:
        recommendations.append(
            "✅ Strong Performance: High win rate"
            " - consider increasing deal volume to maximize success"
        )

    if not recommendations:
        recommendations.append("✅ Pipeline Health: Maintain current sales momentum and pipeline health")
        recommendations.append(
            "📈 Growth Opportunity: Consider expanding into new markets or product lines"
        )

    return ForecastInsights(
        total_predicted_revenue=_round2(total),
        average_monthly_revenue=_round2(average),
        trend_analysis=trend_analysis,
        risk_factors=risk_factors,
        recommendations=recommendations,
        quota_gap=_round2(quota_target - _round2(total)) if quota_target else None,
        quota_target=quota_target,
    )


def _trend_narrative(forecast: list[RevenueForecast]) -> str:
    """Compare first-half and second-half average revenue."""
    split = math.ceil(len(forecast) / 2)
    first, second = forecast[:split], forecast[split:]
    if first and second:
        first_avg = sum(m.predicted_revenue for m in first) / len(first)
        second_avg = sum(m.predicted_revenue for m in second) / len(second)
        if second_avg > first_avg * 1.1:
            return "Revenue is trending upward, indicating strong pipeline momentum."
        if second_avg < first_avg * 0.9:
            return "Revenue is trending downward, suggesting pipeline challenges."
    return "Revenue is stable with consistent pipeline flow."
