import csv
import io
import json
from datetime import date, datetime, timezone

import pytest

from agentworks.metering.aggregate import rebuild_aggregate
from agentworks.metering.reports import (
    build_billing_report,
    calculate_trend,
    export_billing_report,
    generate_usage_analytics,
    parse_timeframe,
)
from agentworks.schemas.usage import CostBreakdown, TokenUsage, UsageEvent


def _event(day: int, agent: str = "architect", provider: str = "openai", *, price: float = 0.25, cost: float = 0.025, success: bool = True) -> UsageEvent:
    return UsageEvent(
        timestamp=datetime(2026, 3, day, 12, 0, tzinfo=timezone.utc),
        project_id="demo",
        agent_name=agent,
        provider=provider,
        model="gpt-4o",
        usage=TokenUsage.of(1000, 500) if success else TokenUsage(),
        cost=CostBreakdown(provider_cost=cost, customer_price=price, margin=price - cost) if success else CostBreakdown(),
        success=success,
        error=None if success else "timed out",
        error_code=None if success else "TIMEOUT",
    )


@pytest.fixture
def events():
    return [
        _event(1),
        _event(1, agent="qa", provider="anthropic", price=0.5, cost=0.06),
        _event(2, agent="qa", success=False),
        _event(3),
    ]


class TestBuildBillingReport:
    def test_summary_matches_replayed_aggregate(self, events):
        report = build_billing_report("demo", events)
        aggregate = rebuild_aggregate(events)

        assert report.summary.total_calls == aggregate.total_calls == 3
        assert report.summary.failed_calls == 1
        assert report.summary.attempted_calls == 4
        assert report.summary.total_customer_price == aggregate.total_price
        assert report.to_aggregate().same_totals(aggregate.model_copy(update={"total_duration_ms": 0}))

    def test_breakdowns(self, events):
        report = build_billing_report("demo", events)

        assert set(report.by_agent) == {"architect", "qa"}
        assert report.by_agent["qa"].calls == 1
        assert report.by_agent["qa"].failed_calls == 1
        assert report.by_provider["openai"].calls == 2
        assert list(report.daily) == ["2026-03-01", "2026-03-02", "2026-03-03"]
        assert report.daily["2026-03-02"].calls == 0
        assert report.daily["2026-03-02"].failed_calls == 1

    def test_margin_percent(self, events):
        report = build_billing_report("demo", events)
        summary = report.summary
        expected = round(summary.total_margin / summary.total_customer_price * 100, 2)
        assert summary.average_margin_percent == expected

    def test_period_defaults_to_event_days(self, events):
        report = build_billing_report("demo", events)
        assert report.period.start == "2026-03-01"
        assert report.period.end == "2026-03-03"
        assert report.period.days == 3

    def test_empty_report(self):
        report = build_billing_report("demo", [], date(2026, 3, 1), date(2026, 3, 7))
        assert report.summary.total_calls == 0
        assert report.summary.average_margin_percent == 0.0
        assert report.period.start == "2026-03-01"
        assert report.daily == {}


class TestTimeframe:
    def test_days_suffix(self):
        start, end, days = parse_timeframe("7d", today=date(2026, 3, 10))
        assert (start, end, days) == (date(2026, 3, 3), date(2026, 3, 10), 7)

    def test_bare_number(self):
        assert parse_timeframe("30", today=date(2026, 3, 31))[2] == 30

    @pytest.mark.parametrize("value", ["", "0d", "-3d", "week", "7w"])
    def test_invalid(self, value: str):
        with pytest.raises(ValueError):
            parse_timeframe(value)


class TestAnalytics:
    def test_daily_average_and_efficiency(self, events):
        report = build_billing_report("demo", events)
        analytics = generate_usage_analytics(report, 3)

        assert analytics.timeframe_days == 3
        assert analytics.daily_average["calls"] == 1.0
        assert analytics.efficiency["price_per_call"] == round(1.0 / 3, 4)

    def test_trend_needs_two_days(self):
        assert calculate_trend({}).direction == "insufficient_data"

    def test_increasing_trend(self):
        report = build_billing_report("demo", [_event(1), _event(2), _event(2), _event(2)])
        assert calculate_trend(report.daily).direction == "increasing"

    def test_single_provider_insight(self):
        report = build_billing_report("demo", [_event(1), _event(2)])
        categories = {insight.category for insight in generate_usage_analytics(report, 2).insights}
        assert "providers" in categories
        assert "usage" in categories

    def test_low_margin_warning(self):
        report = build_billing_report("demo", [_event(1, price=0.25, cost=0.2)])
        insights = generate_usage_analytics(report, 1).insights
        assert any(insight.type == "warning" and insight.category == "margin" for insight in insights)


class TestExport:
    def test_json(self, events):
        report = build_billing_report("demo", events)
        data = json.loads(export_billing_report(report, "json"))
        assert data["project_id"] == "demo"
        assert data["summary"]["total_calls"] == 3

    def test_csv_rows(self, events):
        report = build_billing_report("demo", events)
        rows = list(csv.reader(io.StringIO(export_billing_report(report, "CSV"))))
        # header + 3 days + 2 agents
        assert len(rows) == 6
        assert rows[1][1:3] == ["ALL", "ALL"]
        assert rows[-1][1] == "qa"

    def test_unknown_format(self, events):
        with pytest.raises(ValueError):
            export_billing_report(build_billing_report("demo", events), "xml")
