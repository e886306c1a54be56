"""Historical win-rate analytics over closed deals.

Pure functions: closed deals are grouped overall and by transportation mode,
sales rep, deal-size bucket and close month, and a handful of qualitative
insights are derived from the groups.  No DB, async, or clock dependencies.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field

from freight_insights.deals.filters import HistoricalAnalysisFilters, filter_deals
from freight_insights.deals.models import DEAL_SIZE_CATEGORIES, Deal, Stage

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _round2(val: float) -> float:
    """Round half-up to 2 decimals."""
    return math.floor(val * 100 + 0.5) / 100


def _fmt_rate(rate: float) -> str:
    """Render a percentage without a trailing ``.0``."""
    return f"{rate:g}"


def _month_key(deal: Deal) -> str:
    return deal.expected_close_at.strftime("%Y-%m")


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass
class WinRateAnalysis:
    """Win/loss statistics for one group of closed deals."""
    total_deals: int = 0
    won_deals: int = 0
    lost_deals: int = 0
    win_rate: float = 0.0
    total_value: float = 0.0
    won_value: float = 0.0
    lost_value: float = 0.0
    average_deal_size: float = 0.0
    average_won_deal_size: float = 0.0
    average_lost_deal_size: float = 0.0


@dataclass
class HistoricalAnalysisResult:
    overall: WinRateAnalysis
    by_transportation_mode: dict[str, WinRateAnalysis] = field(default_factory=dict)
    by_sales_rep: dict[str, WinRateAnalysis] = field(default_factory=dict)
    by_deal_size: dict[str, WinRateAnalysis] = field(default_factory=dict)
    by_time_period: dict[str, WinRateAnalysis] = field(default_factory=dict)
    insights: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# 1. calculate_historical_analysis
# ---------------------------------------------------------------------------


def calculate_historical_analysis(
    deals: list[Deal],
    filters: HistoricalAnalysisFilters | None = None,
) -> HistoricalAnalysisResult:
    """Compute win-rate statistics for closed deals.

    Args:
        deals: Candidate deals; open deals are ignored after filtering.
        filters: Optional filters, including an exact ``stage`` match.

    Returns:
        HistoricalAnalysisResult.  Always well-formed, even for no deals.
    """
    filtered = filter_deals(deals, filters)
    if filters is not None and filters.stage:
        filtered = [d for d in filtered if d.stage == filters.stage]

    closed = [d for d in filtered if d.pipeline_stage.is_closed]

    overall = calculate_win_rate_analysis(closed)
    by_mode = _win_rate_by(closed, lambda d: d.transportation_mode)
    by_rep = _win_rate_by(closed, lambda d: d.sales_rep)
    by_size = {
        cat.category: calculate_win_rate_analysis([d for d in closed if cat.contains(d.value)])
        for cat in DEAL_SIZE_CATEGORIES
    }
    by_month = _win_rate_by(closed, _month_key)

    insights = generate_insights(overall, by_mode, by_rep, by_size)

    logger.info(
        "Historical analysis: %d closed of %d deals (%.2f%% win rate)",
        len(closed), len(deals), overall.win_rate,
    )

    return HistoricalAnalysisResult(
        overall=overall,
        by_transportation_mode=by_mode,
        by_sales_rep=by_rep,
        by_deal_size=by_size,
        by_time_period=by_month,
        insights=insights,
    )


# ---------------------------------------------------------------------------
# 2. calculate_win_rate_analysis
# ---------------------------------------------------------------------------


def calculate_win_rate_analysis(deals: list[Deal]) -> WinRateAnalysis:
    """Aggregate one group of closed deals; zero-valued when empty."""
    won = [d for d in deals if d.pipeline_stage is Stage.CLOSED_WON]
    lost = [d for d in deals if d.pipeline_stage is Stage.CLOSED_LOST]

    total = len(deals)
    total_value = sum(d.value for d in deals)
    won_value = sum(d.value for d in won)
    lost_value = sum(d.value for d in lost)

    return WinRateAnalysis(
        total_deals=total,
        won_deals=len(won),
        lost_deals=len(lost),
        win_rate=_round2(len(won) / total * 100) if total > 0 else 0.0,
        total_value=_round2(total_value),
        won_value=_round2(won_value),
        lost_value=_round2(lost_value),
        average_deal_size=_round2(total_value / total) if total > 0 else 0.0,
        average_won_deal_size=_round2(won_value / len(won)) if won else 0.0,
        average_lost_deal_size=_round2(lost_value / len(lost)) if lost else 0.0,
    )


def _win_rate_by(deals: list[Deal], key) -> dict[str, WinRateAnalysis]:
    """Group deals by *key* (first-seen order) and analyse each group."""
    groups: dict[str, list[Deal]] = defaultdict(list)
    for d in deals:
        groups[key(d)].append(d)
    return {name: calculate_win_rate_analysis(group) for name, group in groups.items()}


# ---------------------------------------------------------------------------
# 3. generate_insights
# ---------------------------------------------------------------------------


def generate_insights(
    overall: WinRateAnalysis,
    by_transportation_mode: dict[str, WinRateAnalysis],
    by_sales_rep: dict[str, WinRateAnalysis],
    by_deal_size: dict[str, WinRateAnalysis],
) -> list[str]:
    """Independent insight rules; every rule that matches contributes."""
    insights: list[str] = []

    if overall.win_rate < 50:
        insights.append(
            "Overall win rate is below 50%, indicating need for sales process improvement"
        )
    if overall.win_rate > 70:
        insights.append("Strong overall win rate above 70% - excellent sales performance")

    small = by_deal_size.get("Small")
    enterprise = by_deal_size.get("Enterprise")
    if small and enterprise and small.total_deals > 0 and enterprise.total_deals > 0:
        if small.win_rate > enterprise.win_rate + 20:
            insights.append(
                "Team excels at small deals but struggles with enterprise deals"
                " - consider enterprise sales training"
            )
        elif enterprise.win_rate > small.win_rate + 20:
            insights.append(
                "Team performs well on enterprise deals but may need help with"
                " smaller, high-volume deals"
            )

    if len(by_transportation_mode) > 1:
        modes = list(by_transportation_mode.items())
        best_mode, best = max(modes, key=lambda kv: kv[1].win_rate)
        worst_mode, worst = min(modes, key=lambda kv: kv[1].win_rate)
        if best.win_rate - worst.win_rate > 30:
            insights.append(
                f"Significant performance gap: {best_mode} ({_fmt_rate(best.win_rate)}%) "
                f"vs {worst_mode} ({_fmt_rate(worst.win_rate)}%) - consider cross-training"
            )

    if len(by_sales_rep) > 1:
        reps = list(by_sales_rep.items())
        needs_help = [r for r, a in reps if a.win_rate < 40 and a.total_deals >= 5]
        if needs_help:
            insights.append(
                f"{len(needs_help)} sales rep(s) with win rates below 40% may need"
                " additional coaching"
            )
        top_rep, top = max(reps, key=lambda kv: kv[1].win_rate)
        if top.win_rate > 70:
            insights.append(
                f"{top_rep} is a top performer ({_fmt_rate(top.win_rate)}% win rate)"
                " - consider having them mentor others"
            )

    return insights
