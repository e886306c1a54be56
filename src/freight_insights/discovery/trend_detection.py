"""Deal trend detection and risk scoring for the open pipeline.

Every open deal gets a 0-100 risk score built from four capped
sub-scores (stage dwell time, time to close, deal size, stage conversion
probability), a risk level, a priority tier, and rule-generated risk
factors and recommendations.  Portfolio-level counts and advice are
derived from the scored list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from freight_insights.deals.filters import TrendFilters, filter_deals
from freight_insights.deals.models import (
    Deal,
    Priority,
    RiskLevel,
    Stage,
    parse_datetime,
    utc_now,
)

logger = logging.getLogger(__name__)

STALLING_DAYS = 21
HIGH_VALUE = 100_000

# (medium, high, critical) day counts in the current stage
STAGE_DWELL_THRESHOLDS: dict[Stage, tuple[int, int, int]] = {
    Stage.PROSPECT: (14, 30, 45),
    Stage.QUALIFIED: (21, 35, 50),
    Stage.PROPOSAL: (14, 25, 35),
    Stage.NEGOTIATION: (7, 14, 21),
}
STAGE_DWELL_MAX = 40

# (medium, high, critical) days until expected close; scored with <=
CLOSE_PROXIMITY_THRESHOLDS = (30, 60, 90)
CLOSE_PROXIMITY_MAX = 30

# (medium, high, critical) deal values; scored with >=
DEAL_SIZE_THRESHOLDS = (50_000, 100_000, 200_000)
DEAL_SIZE_MAX = 20

# (medium, high, critical) stage probabilities; scored with <=
STAGE_PROBABILITY_THRESHOLDS = (0.15, 0.05, 0.01)
STAGE_PROBABILITY_MAX = 10

_SECONDS_PER_DAY = 86_400


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class DealTrend:
    """Risk assessment for a single open deal."""
    deal_id: str
    company_name: str
    sales_rep: str
    transportation_mode: str
    current_stage: str
    value: float
    days_in_stage: int
    last_activity_date: str
    risk_score: float
    risk_level: RiskLevel
    risk_factors: list[str]
    recommendations: list[str]
    stage_probability: float
    expected_close_date: str
    days_until_close: int
    is_stalling: bool
    priority: Priority


@dataclass
class TrendInsights:
    """Portfolio summary of the scored deals."""
    total_deals: int
    stalling_deals: int
    high_risk_deals: int
    average_risk_score: int
    deals_by_risk_level: dict[str, int]
    deals_by_priority: dict[str, int]
    total_value_at_risk: float
    recommendations: list[str] = field(default_factory=list)


@dataclass
class DealTrendResult:
    trends: list[DealTrend]
    insights: TrendInsights


# ---------------------------------------------------------------------------
# 1. analyze_deal_trends
# ---------------------------------------------------------------------------


def analyze_deal_trends(
    deals: list[Deal],
    filters: TrendFilters | None = None,
    *,
    now: datetime | None = None,
) -> DealTrendResult:
    """Score every open deal and summarise the portfolio.

    Closed deals are always excluded.  The ``risk_level``, ``priority``
    and ``is_stalling`` filters match the computed values.

    Returns:
        DealTrendResult with trends sorted by priority, then risk score,
        both descending.
    """
    now = parse_datetime(now) if now else utc_now()
    open_deals = [d for d in deals if not d.pipeline_stage.is_closed]
    candidates = filter_deals(open_deals, filters)

    trends: list[DealTrend] = []
    for deal in candidates:
        trend = calculate_deal_trend(deal, now)
        if filters is not None:
            if filters.risk_level and trend.risk_level.value != filters.risk_level:
                continue
            if filters.priority and trend.priority.value != filters.priority:
                continue
            if filters.is_stalling is not None and trend.is_stalling != filters.is_stalling:
                continue
        trends.append(trend)

    trends.sort(key=lambda t: (t.priority.rank, t.risk_score), reverse=True)

    insights = generate_trend_insights(trends)
    logger.info(
        "Trend detection: %d of %d open deals scored, %d high risk",
        len(trends), len(open_deals), insights.high_risk_deals,
    )
    return DealTrendResult(trends=trends, insights=insights)


# ---------------------------------------------------------------------------
# 2. Per-deal scoring
# ---------------------------------------------------------------------------


def _whole_days(delta_seconds: float) -> int:
    return int(delta_seconds // _SECONDS_PER_DAY)


def calculate_deal_trend(deal: Deal, now: datetime) -> DealTrend:
    stage = deal.pipeline_stage
    days_in_stage = _whole_days((now - deal.updated_at).total_seconds())
    days_until_close = _whole_days((deal.expected_close_at - now).total_seconds())

    risk_score = calculate_risk_score(deal, days_in_stage, days_until_close)
    risk_level = get_risk_level(risk_score)

    return DealTrend(
        deal_id=deal.deal_id,
        company_name=deal.company_name,
        sales_rep=deal.sales_rep,
        transportation_mode=deal.transportation_mode,
        current_stage=deal.stage,
        value=deal.value,
        days_in_stage=days_in_stage,
        last_activity_date=deal.updated_date,
        risk_score=risk_score,
        risk_level=risk_level,
        risk_factors=generate_risk_factors(deal, days_in_stage, days_until_close),
        recommendations=generate_recommendations(deal, risk_level, days_in_stage, days_until_close),
        stage_probability=stage.probability,
        expected_close_date=deal.expected_close_date,
        days_until_close=days_until_close,
        is_stalling=days_in_stage >= STALLING_DAYS,
        priority=calculate_priority(deal, risk_score, days_in_stage, days_until_close),
    )


def _tiered(max_score: float, hits: tuple[bool, bool, bool]) -> float:
    """Score for (medium, high, critical) hits, critical checked first."""
    medium, high, critical = hits
    if critical:
        return max_score
    if high:
        return max_score * 0.75
    if medium:
        return max_score * 0.5
    return 0.0


def calculate_risk_score(deal: Deal, days_in_stage: int, days_until_close: int) -> float:
    """Sum of the four capped sub-scores, capped at 100."""
    stage = deal.pipeline_stage
    dwell = STAGE_DWELL_THRESHOLDS.get(stage, STAGE_DWELL_THRESHOLDS[Stage.QUALIFIED])
    probability = stage.probability

    score = _tiered(STAGE_DWELL_MAX, tuple(days_in_stage >= t for t in dwell))
    score += _tiered(
        CLOSE_PROXIMITY_MAX, tuple(days_until_close <= t for t in CLOSE_PROXIMITY_THRESHOLDS)
    )
    score += _tiered(DEAL_SIZE_MAX, tuple(deal.value >= t for t in DEAL_SIZE_THRESHOLDS))
    score += _tiered(
        STAGE_PROBABILITY_MAX, tuple(probability <= t for t in STAGE_PROBABILITY_THRESHOLDS)
    )
    return min(score, 100)


def get_risk_level(score: float) -> RiskLevel:
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def calculate_priority(
    deal: Deal, risk_score: float, days_in_stage: int, days_until_close: int
) -> Priority:
    if deal.value >= HIGH_VALUE and risk_score >= 70:
        return Priority.URGENT
    if days_until_close <= 7 and risk_score >= 50:
        return Priority.URGENT
    if days_in_stage >= STALLING_DAYS and deal.value >= 50_000:
        return Priority.HIGH
    if risk_score >= 70:
        return Priority.HIGH
    if risk_score >= 50 or days_in_stage >= STALLING_DAYS:
        return Priority.MEDIUM
    return Priority.LOW


def _format_value(value: float) -> str:
    if float(value).is_integer():
        return f"{int(value):,}"
    return f"{value:,.2f}".rstrip("0")


def generate_risk_factors(deal: Deal, days_in_stage: int, days_until_close: int) -> list[str]:
    factors: list[str] = []

    if days_in_stage >= STALLING_DAYS:
        factors.append(f"Stalled for {days_in_stage} days in {deal.stage} stage")

    if days_until_close <= 30:
        factors.append(f"Expected to close in {days_until_close} days")

    if deal.value >= HIGH_VALUE:
        factors.append(f"High-value deal (${_format_value(deal.value)})")

    probability = deal.pipeline_stage.probability
    if probability <= 0.15:
        factors.append(f"Low conversion probability ({round(probability * 100)}%)")

    return factors


def generate_recommendations(
    deal: Deal, risk_level: RiskLevel, days_in_stage: int, days_until_close: int
) -> list[str]:
    recommendations: list[str] = []

    if days_in_stage >= STALLING_DAYS:
        recommendations.append("🚨 IMMEDIATE: Schedule customer meeting to advance deal")
        recommendations.append("📞 Contact customer to understand blockers")

    if days_until_close <= 7:
        recommendations.append("⏰ URGENT: Finalize proposal and send to customer")
        recommendations.append("🤝 Schedule closing meeting with decision makers")

    if risk_level is RiskLevel.CRITICAL:
        recommendations.append("🔴 CRITICAL: Escalate to senior management")
        recommendations.append("💰 Consider discount or special terms to accelerate")

    if deal.value >= HIGH_VALUE:
        recommendations.append("💎 High-value deal - ensure executive involvement")

    if deal.pipeline_stage.probability <= 0.15:
        recommendations.append("🎯 Focus on qualification and discovery")

    if not recommendations:
        recommendations.append("✅ Deal appears healthy - maintain regular follow-up")

    return recommendations


# ---------------------------------------------------------------------------
# 3. Portfolio insights
# ---------------------------------------------------------------------------


def generate_trend_insights(trends: list[DealTrend]) -> TrendInsights:
    stalling = [t for t in trends if t.is_stalling]
    high_risk = [t for t in trends if t.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)]

    by_risk = {level.value: 0 for level in RiskLevel}
    by_priority = {p.value: 0 for p in Priority}
    for t in trends:
        by_risk[t.risk_level.value] += 1
        by_priority[t.priority.value] += 1

    average = sum(t.risk_score for t in trends) / len(trends) if trends else 0.0

    recommendations: list[str] = []
    if by_risk[RiskLevel.CRITICAL.value] > 0:
        recommendations.append(
            f"🚨 CRITICAL: {by_risk[RiskLevel.CRITICAL.value]} deals need immediate attention"
        )
    if by_priority[Priority.URGENT.value] > 0:
        recommendations.append(
            f"⚡ URGENT: Focus on {by_priority[Priority.URGENT.value]} high-priority deals first"
        )
    if stalling:
        recommendations.append(
            f"⏰ STALLING: {len(stalling)} deals have been inactive for {STALLING_DAYS}+ days"
        )
    high_value_at_risk = [
        t for t in trends if t.value >= HIGH_VALUE and t.risk_level is not RiskLevel.LOW
    ]
    if high_value_at_risk:
        recommendations.append(f"💰 HIGH VALUE: {len(high_value_at_risk)} high-value deals at risk")
    if not recommendations:
        recommendations.append("✅ Pipeline health appears good - maintain regular monitoring")

    return TrendInsights(
        total_deals=len(trends),
        stalling_deals=len(stalling),
        high_risk_deals=len(high_risk),
        average_risk_score=int(average + 0.5),
        deals_by_risk_level=by_risk,
        deals_by_priority=by_priority,
        total_value_at_risk=sum(t.value for t in high_risk),
        recommendations=recommendations,
    )
