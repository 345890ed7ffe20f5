"""Billing reports derived by replaying the usage event log.

Reports never read the cached aggregate. Totals are produced with the same
``apply_event`` fold the stores use, so a report over the full log matches the
project's aggregate exactly.
"""

from __future__ import annotations

import csv
import io
import re
from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import Field

from ..core.logging_config import get_logger
from ..repos.interfaces import UsageStore
from ..schemas.base import BaseSchema, utc_now
from ..schemas.usage import ProjectUsageAggregate, UsageBucket, UsageEvent
from .aggregate import rebuild_aggregate
from .pricing import money

logger = get_logger(__name__)

TARGET_MARGIN_PERCENT = 80.0
LOW_MARGIN_WARNING_PERCENT = 70.0
TREND_THRESHOLD_PERCENT = 5.0
CSV_HEADERS = ["Date", "Agent", "Provider", "Calls", "Provider_Cost", "Customer_Price", "Margin"]


class ReportBucket(BaseSchema):
    calls: int = 0
    failed_calls: int = 0
    cost: float = 0.0
    price: float = 0.0
    margin: float = 0.0


class ReportPeriod(BaseSchema):
    start: Optional[str] = None
    end: Optional[str] = None
    days: int = 0


class ReportSummary(BaseSchema):
    total_calls: int = 0
    failed_calls: int = 0
    attempted_calls: int = 0
    total_provider_cost: float = 0.0
    total_customer_price: float = 0.0
    total_margin: float = 0.0
    average_margin_percent: float = 0.0


class BillingReport(BaseSchema):
    project_id: str
    generated_at: datetime = Field(default_factory=utc_now)
    period: ReportPeriod
    summary: ReportSummary
    by_agent: Dict[str, ReportBucket] = Field(default_factory=dict)
    by_provider: Dict[str, ReportBucket] = Field(default_factory=dict)
    daily: Dict[str, ReportBucket] = Field(default_factory=dict)

    def to_aggregate(self) -> ProjectUsageAggregate:
        """Project the report back onto the aggregate shape it was built from."""
        return ProjectUsageAggregate(
            total_calls=self.summary.total_calls,
            total_cost=self.summary.total_provider_cost,
            total_price=self.summary.total_customer_price,
            failed_calls=self.summary.failed_calls,
            calls_by_agent={
                k: UsageBucket(calls=v.calls, cost=v.cost, price=v.price) for k, v in self.by_agent.items() if v.calls
            },
            calls_by_provider={
                k: UsageBucket(calls=v.calls, cost=v.cost, price=v.price)
                for k, v in self.by_provider.items()
                if v.calls
            },
        )


def _bucket(success: Optional[UsageBucket], failed: int) -> ReportBucket:
    success = success or UsageBucket()
    return ReportBucket(
        calls=success.calls,
        failed_calls=failed,
        cost=success.cost,
        price=success.price,
        margin=money(success.price - success.cost),
    )


def _failures_by(events: Iterable[UsageEvent], key) -> Dict[str, int]:
    counts: Dict[str, int] = defaultdict(int)
    for event in events:
        if not event.success:
            counts[key(event)] += 1
    return counts


def _margin_percent(margin: float, price: float) -> float:
    if price <= 0:
        return 0.0
    return round(margin / price * 100, 2)


def build_billing_report(
    project_id: str,
    events: List[UsageEvent],
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> BillingReport:
    """Build a report from an already-loaded, time-ordered list of events."""
    aggregate = rebuild_aggregate(events)
    days = sorted({event.day for event in events})

    failed_by_agent = _failures_by(events, lambda e: e.agent_name)
    failed_by_provider = _failures_by(events, lambda e: e.provider or "unknown")

    by_agent = {
        name: _bucket(aggregate.calls_by_agent.get(name), failed_by_agent.get(name, 0))
        for name in sorted(set(aggregate.calls_by_agent) | set(failed_by_agent))
    }
    by_provider = {
        name: _bucket(aggregate.calls_by_provider.get(name), failed_by_provider.get(name, 0))
        for name in sorted(set(aggregate.calls_by_provider) | set(failed_by_provider))
    }

    daily: Dict[str, ReportBucket] = {}
    for day in days:
        day_events = [event for event in events if event.day == day]
        day_aggregate = rebuild_aggregate(day_events)
        daily[day] = ReportBucket(
            calls=day_aggregate.total_calls,
            failed_calls=day_aggregate.failed_calls,
            cost=day_aggregate.total_cost,
            price=day_aggregate.total_price,
            margin=money(day_aggregate.total_price - day_aggregate.total_cost),
        )

    total_margin = money(aggregate.total_price - aggregate.total_cost)
    summary = ReportSummary(
        total_calls=aggregate.total_calls,
        failed_calls=aggregate.failed_calls,
        attempted_calls=len(events),
        total_provider_cost=aggregate.total_cost,
        total_customer_price=aggregate.total_price,
        total_margin=total_margin,
        average_margin_percent=_margin_percent(total_margin, aggregate.total_price),
    )
    period = ReportPeriod(
        start=start.isoformat() if start else (days[0] if days else None),
        end=end.isoformat() if end else (days[-1] if days else None),
        days=len(days),
    )
    return BillingReport(
        project_id=project_id,
        period=period,
        summary=summary,
        by_agent=by_agent,
        by_provider=by_provider,
        daily=daily,
    )


async def generate_billing_report(
    store: UsageStore,
    project_id: str,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> BillingReport:
    """
    Replay the project's usage log for ``[start, end]`` (inclusive days) into a report.

    Args:
        store: Usage store holding the event log.
        project_id: Project to report on.
        start: First UTC day to include; open-ended when omitted.
        end: Last UTC day to include; open-ended when omitted.
    """
    events = await store.list_events(project_id, start, end)
    logger.debug(f"Building billing report for {project_id} from {len(events)} events")
    return build_billing_report(project_id, events, start, end)


_TIMEFRAME = re.compile(r"^\s*(\d+)\s*d?\s*$", re.IGNORECASE)


def parse_timeframe(timeframe: str, today: Optional[date] = None) -> Tuple[date, date, int]:
    """
    Turn ``"7d"`` (or ``"7"``) into ``(start, end, days)`` ending today (UTC).

    Raises:
        ValueError: If the timeframe is not a positive number of days.
    """
    match = _TIMEFRAME.match(timeframe or "")
    if not match or int(match.group(1)) <= 0:
        raise ValueError(f"Invalid timeframe {timeframe!r}; expected a number of days such as '7d'")
    days = int(match.group(1))
    end = today or utc_now().date()
    return end - timedelta(days=days), end, days


class UsageTrend(BaseSchema):
    direction: Literal["increasing", "decreasing", "stable", "insufficient_data"]
    change_percent: Optional[float] = None
    first_period: Optional[float] = None
    second_period: Optional[float] = None


class Insight(BaseSchema):
    type: Literal["info", "warning"]
    category: str
    message: str
    recommendation: str


class UsageAnalytics(BaseSchema):
    project_id: str
    timeframe_days: int
    period: ReportPeriod
    daily_average: Dict[str, float]
    efficiency: Dict[str, float]
    trend: UsageTrend
    insights: List[Insight] = Field(default_factory=list)


def calculate_trend(daily: Dict[str, ReportBucket]) -> UsageTrend:
    days = sorted(daily)
    if len(days) < 2:
        return UsageTrend(direction="insufficient_data")
    half = len(days) // 2
    first = sum(daily[d].calls for d in days[:half]) / half
    second = sum(daily[d].calls for d in days[half:]) / (len(days) - half)
    if first == 0:
        change = 100.0 if second > 0 else 0.0
    else:
        change = (second - first) / first * 100
    if change > TREND_THRESHOLD_PERCENT:
        direction = "increasing"
    elif change < -TREND_THRESHOLD_PERCENT:
        direction = "decreasing"
    else:
        direction = "stable"
    return UsageTrend(
        direction=direction,
        change_percent=round(change, 1),
        first_period=round(first, 1),
        second_period=round(second, 1),
    )


def generate_insights(report: BillingReport) -> List[Insight]:
    insights: List[Insight] = []
    margin = report.summary.average_margin_percent
    if report.summary.total_customer_price > 0 and margin < LOW_MARGIN_WARNING_PERCENT:
        insights.append(
            Insight(
                type="warning",
                category="margin",
                message=f"Margin of {margin}% is below {TARGET_MARGIN_PERCENT:.0f}% target",
                recommendation="Consider adjusting pricing or optimizing provider usage",
            )
        )

    top = sorted(
        ((name, bucket) for name, bucket in report.by_agent.items() if bucket.calls),
        key=lambda item: item[1].price,
        reverse=True,
    )[:3]
    if top:
        listing = ", ".join(f"{name} (${bucket.price:.2f})" for name, bucket in top)
        insights.append(
            Insight(
                type="info",
                category="usage",
                message=f"Top agents by cost: {listing}",
                recommendation="Monitor high-cost agents for optimization opportunities",
            )
        )

    if len([name for name, bucket in report.by_provider.items() if bucket.calls]) == 1:
        insights.append(
            Insight(
                type="info",
                category="providers",
                message="Using single provider - consider diversification for cost optimization",
                recommendation="Evaluate other providers for specific agent types",
            )
        )
    return insights


def generate_usage_analytics(report: BillingReport, days: int) -> UsageAnalytics:
    summary = report.summary
    calls = summary.total_calls
    return UsageAnalytics(
        project_id=report.project_id,
        timeframe_days=days,
        period=report.period,
        daily_average={
            "calls": round(calls / days, 1),
            "cost": round(summary.total_provider_cost / days, 4),
            "price": round(summary.total_customer_price / days, 4),
            "margin": round(summary.total_margin / days, 4),
        },
        efficiency={
            "margin_percent": summary.average_margin_percent,
            "cost_per_call": round(summary.total_provider_cost / calls, 4) if calls else 0.0,
            "price_per_call": round(summary.total_customer_price / calls, 4) if calls else 0.0,
        },
        trend=calculate_trend(report.daily),
        insights=generate_insights(report),
    )


def billing_report_to_csv(report: BillingReport) -> str:
    """Daily rows first (agent/provider ``ALL``), then one row per agent over the whole period."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(CSV_HEADERS)
    for day, bucket in report.daily.items():
        writer.writerow([day, "ALL", "ALL", bucket.calls, f"{bucket.cost:.4f}", f"{bucket.price:.4f}", f"{bucket.margin:.4f}"])
    span = f"{report.period.start}_to_{report.period.end}"
    for agent, bucket in report.by_agent.items():
        writer.writerow([span, agent, "ALL", bucket.calls, f"{bucket.cost:.4f}", f"{bucket.price:.4f}", f"{bucket.margin:.4f}"])
    return buffer.getvalue()


def export_billing_report(report: BillingReport, format: str = "json") -> str:
    """
    Render a report as ``json`` or ``csv`` text.

    Raises:
        ValueError: For any other format.
    """
    fmt = format.lower()
    if fmt == "json":
        return report.model_dump_json(indent=2)
    if fmt == "csv":
        return billing_report_to_csv(report)
    raise ValueError(f"Unsupported export format {format!r}; expected 'json' or 'csv'")
