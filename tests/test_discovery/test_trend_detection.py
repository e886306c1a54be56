"""Tests for deal trend detection and risk scoring."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from freight_insights.deals.filters import TrendFilters
from freight_insights.deals.models import Deal, Priority, RiskLevel
from freight_insights.discovery.trend_detection import (
    analyze_deal_trends,
    calculate_deal_trend,
    calculate_priority,
    generate_trend_insights,
    get_risk_level,
)

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def _iso(days_from_now: float) -> str:
    return (NOW + timedelta(days=days_from_now)).strftime("%Y-%m-%dT%H:%M:%SZ")


def _deal(
    deal_id: str,
    stage: str = "proposal",
    value: float = 20_000,
    days_since_update: float = 2,
    days_to_close: float = 120,
    mode: str = "ocean",
) -> Deal:
    return Deal(
        deal_id=deal_id,
        company_name=f"Shipper {deal_id}",
        transportation_mode=mode,
        stage=stage,
        value=value,
        expected_close_date=_iso(days_to_close),
        updated_date=_iso(-days_since_update),
        sales_rep="Ben",
    )


def _critical() -> Deal:
    return _deal("crit", stage="negotiation", value=250_000, days_since_update=30, days_to_close=5)


def _stalled() -> Deal:
    return _deal("stall", days_since_update=25)


def _healthy() -> Deal:
    return _deal("ok")


# ---------------------------------------------------------------------------
# Per-deal scoring
# ---------------------------------------------------------------------------


class TestCalculateDealTrend:
    def test_stalled_proposal(self):
        t = calculate_deal_trend(_stalled(), NOW)
        assert t.days_in_stage == 25
        assert t.is_stalling is True
        assert t.risk_score == 30
        assert t.risk_level is RiskLevel.LOW
        assert t.priority is Priority.MEDIUM
        assert t.risk_factors == ["Stalled for 25 days in proposal stage"]
        assert t.recommendations == [
            "🚨 IMMEDIATE: Schedule customer meeting to advance deal",
            "📞 Contact customer to understand blockers",
        ]

    def test_critical_negotiation(self):
        t = calculate_deal_trend(_critical(), NOW)
        assert t.days_in_stage == 30
        assert t.days_until_close == 5
        assert t.risk_score == 90
        assert t.risk_level is RiskLevel.CRITICAL
        assert t.priority is Priority.URGENT
        assert len(t.recommendations) == 7
        assert t.risk_factors == [
            "Stalled for 30 days in negotiation stage",
            "Expected to close in 5 days",
            "High-value deal ($250,000)",
        ]
        assert t.stage_probability == 0.6

    def test_healthy_deal(self):
        t = calculate_deal_trend(_healthy(), NOW)
        assert t.risk_score == 0
        assert t.risk_level is RiskLevel.LOW
        assert t.priority is Priority.LOW
        assert t.is_stalling is False
        assert t.risk_factors == []
        assert t.recommendations == ["✅ Deal appears healthy - maintain regular follow-up"]

    def test_prospect_probability_score(self):
        t = calculate_deal_trend(_deal("p", stage="prospect", value=5_000), NOW)
        assert t.risk_score == 7.5
        assert t.risk_factors == ["Low conversion probability (5%)"]
        assert t.recommendations == ["🎯 Focus on qualification and discovery"]

    def test_unknown_stage_uses_qualified_dwell(self):
        t = calculate_deal_trend(_deal("u", stage="on_hold", days_since_update=22), NOW)
        assert t.current_stage == "on_hold"
        assert t.stage_probability == 0.1
        assert t.risk_score == 25
        assert "Low conversion probability (10%)" in t.risk_factors
        assert "Stalled for 22 days in on_hold stage" in t.risk_factors

    def test_overdue_close_date(self):
        t = calculate_deal_trend(_deal("late", days_to_close=-3), NOW)
        assert t.days_until_close == -3
        assert "Expected to close in -3 days" in t.risk_factors
        assert t.risk_score == 30

    def test_partial_days_floor(self):
        t = calculate_deal_trend(_deal("f", days_since_update=20.9), NOW)
        assert t.days_in_stage == 20
        assert t.is_stalling is False

    def test_close_proximity_tiers(self):
        near = calculate_deal_trend(_deal("a", days_to_close=90), NOW)
        far = calculate_deal_trend(_deal("b", days_to_close=91), NOW)
        assert near.risk_score == 30
        assert far.risk_score == 0

    def test_size_tiers(self):
        scores = [
            calculate_deal_trend(_deal(str(v), value=v), NOW).risk_score
            for v in (49_999, 50_000, 100_000, 200_000)
        ]
        assert scores == [0, 10, 15, 20]

    def test_score_bounds(self):
        worst = _deal("w", stage="prospect", value=500_000, days_since_update=100, days_to_close=1)
        t = calculate_deal_trend(worst, NOW)
        assert 0 <= t.risk_score <= 100

    def test_naive_now_is_utc(self):
        deal = _deal("n", days_since_update=25)
        t = analyze_deal_trends([deal], now=datetime(2026, 10, 19, 12, 0)).trends[0]
        assert t.days_in_stage == 25
        assert t.is_stalling is True

    def test_offset_now_converted(self):
        now = datetime(2026, 10, 19, 14, 0, tzinfo=timezone(timedelta(hours=2)))
        t = analyze_deal_trends([_stalled()], now=now).trends[0]
        assert t.days_in_stage == 25

    def test_last_activity_is_updated_date(self):
        deal = _healthy()
        assert calculate_deal_trend(deal, NOW).last_activity_date == deal.updated_date


class TestRiskLevelAndPriority:
    def test_risk_level_bands(self):
        assert get_risk_level(80) is RiskLevel.CRITICAL
        assert get_risk_level(79.9) is RiskLevel.HIGH
        assert get_risk_level(60) is RiskLevel.HIGH
        assert get_risk_level(40) is RiskLevel.MEDIUM
        assert get_risk_level(39) is RiskLevel.LOW

    def test_priority_close_soon(self):
        deal = _deal("x", value=10_000)
        assert calculate_priority(deal, 50, 0, 7) is Priority.URGENT
        assert calculate_priority(deal, 50, 0, 8) is Priority.MEDIUM

    def test_priority_stalling_large(self):
        deal = _deal("x", value=50_000)
        assert calculate_priority(deal, 10, 21, 100) is Priority.HIGH

    def test_priority_high_score(self):
        assert calculate_priority(_deal("x", value=10_000), 70, 0, 100) is Priority.HIGH


# ---------------------------------------------------------------------------
# analyze_deal_trends
# ---------------------------------------------------------------------------


class TestAnalyzeDealTrends:
    def test_closed_deals_excluded(self):
        deals = [_healthy(), _deal("won", stage="closed_won"), _deal("lost", stage="closed_lost")]
        result = analyze_deal_trends(deals, now=NOW)
        assert [t.deal_id for t in result.trends] == ["ok"]

    def test_sorted_by_priority_then_score(self):
        deals = [_healthy(), _stalled(), _critical(), _deal("p", stage="prospect", value=5_000)]
        result = analyze_deal_trends(deals, now=NOW)
        assert [t.deal_id for t in result.trends] == ["crit", "stall", "p", "ok"]

    def test_filter_by_stalling(self):
        deals = [_healthy(), _stalled(), _critical()]
        result = analyze_deal_trends(deals, TrendFilters(is_stalling=True), now=NOW)
        assert {t.deal_id for t in result.trends} == {"stall", "crit"}

        result = analyze_deal_trends(deals, TrendFilters(is_stalling=False), now=NOW)
        assert [t.deal_id for t in result.trends] == ["ok"]

    def test_filter_by_risk_level_and_priority(self):
        deals = [_healthy(), _stalled(), _critical()]
        result = analyze_deal_trends(deals, TrendFilters(risk_level="critical"), now=NOW)
        assert [t.deal_id for t in result.trends] == ["crit"]

        result = analyze_deal_trends(deals, TrendFilters(priority="low"), now=NOW)
        assert [t.deal_id for t in result.trends] == ["ok"]

    def test_common_filters_apply(self):
        deals = [_deal("a", mode="rail"), _deal("b", mode="air")]
        result = analyze_deal_trends(deals, TrendFilters(transportation_mode="air"), now=NOW)
        assert [t.deal_id for t in result.trends] == ["b"]

    def test_insights(self):
        result = analyze_deal_trends([_healthy(), _stalled(), _critical()], now=NOW)
        ins = result.insights
        assert ins.total_deals == 3
        assert ins.stalling_deals == 2
        assert ins.high_risk_deals == 1
        assert ins.average_risk_score == 40
        assert ins.total_value_at_risk == 250_000
        assert ins.deals_by_risk_level == {"low": 2, "medium": 0, "high": 0, "critical": 1}
        assert ins.deals_by_priority == {"low": 1, "medium": 1, "high": 0, "urgent": 1}
        assert ins.recommendations == [
            "🚨 CRITICAL: 1 deals need immediate attention",
            "⚡ URGENT: Focus on 1 high-priority deals first",
            "⏰ STALLING: 2 deals have been inactive for 21+ days",
            "💰 HIGH VALUE: 1 high-value deals at risk",
        ]

    def test_counts_sum_to_total(self):
        result = analyze_deal_trends([_healthy(), _stalled(), _critical()], now=NOW)
        ins = result.insights
        assert sum(ins.deals_by_risk_level.values()) == ins.total_deals
        assert sum(ins.deals_by_priority.values()) == ins.total_deals

    def test_empty_portfolio(self):
        result = analyze_deal_trends([], now=NOW)
        assert result.trends == []
        ins = result.insights
        assert ins.total_deals == 0
        assert ins.average_risk_score == 0
        assert ins.total_value_at_risk == 0
        assert ins.deals_by_risk_level == {"low": 0, "medium": 0, "high": 0, "critical": 0}
        assert ins.deals_by_priority == {"low": 0, "medium": 0, "high": 0, "urgent": 0}
        assert ins.recommendations == [
            "✅ Pipeline health appears good - maintain regular monitoring"
        ]

    def test_generate_trend_insights_rounds_average(self):
        trends = [calculate_deal_trend(d, NOW) for d in (_healthy(), _deal("p", stage="prospect"))]
        # (0 + 7.5) / 2 = 3.75
        assert generate_trend_insights(trends).average_risk_score == 4
