"""Tests for order reports and period comparisons."""

from datetime import datetime, timezone

import pytest

from storefront.schemas.values import DateRange
from storefront.services.orders.statistics import (
    calculate_product_sales,
    calculate_sales_summary,
    calculate_status_distribution,
    calculate_time_series,
    compare_order_performance,
    date_range_for_period,
    format_sales_summary,
    generate_order_report,
    preceding_range,
)

REFERENCE = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def orders(order_factory):
    return [
        order_factory(id="o1", status="paid", total_cents=3000, shipping_cents=500, tax_cents=200,
                      created_at="2026-03-14T10:00:00+00:00", product_id="p1"),
        order_factory(id="o2", status="paid", total_cents=1000, shipping_cents=0, tax_cents=80,
                      created_at="2026-03-15T08:00:00+00:00", product_id="p2"),
        order_factory(id="o3", status="cancelled", total_cents=2000, shipping_cents=0, tax_cents=0,
                      created_at="2026-02-01T08:00:00+00:00", product_id="p1"),
    ]


class TestDateRanges:
    def test_daily_is_the_reference_day(self):
        date_range = date_range_for_period("daily", REFERENCE)
        assert date_range.start == _utc(2026, 3, 15)
        assert date_range.end == _utc(2026, 3, 15, 23, 59, 59, 999999)

    def test_weekly_is_seven_days_including_today(self):
        assert date_range_for_period("weekly", REFERENCE).start == _utc(2026, 3, 9)

    def test_monthly_and_yearly(self):
        assert date_range_for_period("monthly", REFERENCE).start == _utc(2026, 2, 15)
        assert date_range_for_period("yearly", REFERENCE).start == _utc(2025, 3, 15)

    def test_unknown_period(self):
        with pytest.raises(ValueError):
            date_range_for_period("fortnightly", REFERENCE)

    def test_preceding_range_has_same_length(self):
        current = DateRange(start=_utc(2026, 3, 8), end=_utc(2026, 3, 15))
        previous = preceding_range(current)

        assert previous.end < current.start
        assert previous.end - previous.start == current.end - current.start


class TestSummaries:
    def test_sales_summary(self, orders):
        summary = calculate_sales_summary(orders)

        assert summary.total_orders == 3
        assert summary.total_revenue_cents == 6000
        assert summary.average_order_value_cents == 2000
        assert summary.total_items_sold == 6
        assert summary.total_shipping_cents == 500
        assert summary.total_tax_cents == 280

    def test_empty_summary(self):
        assert calculate_sales_summary([]).total_orders == 0

    def test_status_distribution_most_common_first(self, orders):
        distribution = calculate_status_distribution(orders)

        assert [(s.status, s.count) for s in distribution] == [("paid", 2), ("cancelled", 1)]
        assert round(distribution[0].percentage, 2) == 66.67

    def test_product_sales_highest_revenue_first(self, orders):
        sales = calculate_product_sales(orders)

        assert [p.product_id for p in sales] == ["p1", "p2"]
        assert sales[0].quantity_sold == 4
        assert sales[0].order_count == 2
        assert sales[0].average_unit_price_cents == 1000


class TestTimeSeries:
    def test_fills_empty_days(self, orders):
        date_range = DateRange(start=_utc(2026, 3, 13), end=_utc(2026, 3, 15, 23, 59))
        series = calculate_time_series(orders, date_range, "day")

        assert [p.label for p in series] == ["2026-03-13", "2026-03-14", "2026-03-15"]
        assert [p.order_count for p in series] == [0, 1, 1]

    def test_weekly_buckets_reach_the_last_partial_week(self, orders):
        # Wednesday to Tuesday: neither end falls on a Sunday
        date_range = DateRange(start=_utc(2026, 2, 18), end=_utc(2026, 3, 17, 23, 59))
        series = calculate_time_series(orders, date_range, "week")

        assert [p.label for p in series] == [
            "2026-02-15", "2026-02-22", "2026-03-01", "2026-03-08", "2026-03-15",
        ]
        assert [p.order_count for p in series] == [0, 0, 0, 1, 1]

    def test_monthly_buckets_reach_the_last_month(self, orders):
        date_range = DateRange(start=_utc(2026, 1, 20), end=_utc(2026, 3, 15, 23, 59))
        series = calculate_time_series(orders, date_range, "month")

        assert [p.label for p in series] == ["2026-01", "2026-02", "2026-03"]
        assert [p.order_count for p in series] == [0, 1, 2]
        assert series[-1].revenue_cents == 4000

    def test_no_orders_no_series(self):
        date_range = DateRange(start=_utc(2026, 3, 13), end=_utc(2026, 3, 15))
        assert calculate_time_series([], date_range) == []


class TestReport:
    def test_report_only_counts_orders_in_range(self, orders):
        date_range = date_range_for_period("weekly", REFERENCE)
        report = generate_order_report(orders, "weekly", date_range, top_products=1)

        assert report.interval == "day"
        assert report.summary.total_orders == 2
        assert len(report.top_products) == 1
        assert len(report.time_series) == 7

    def test_monthly_series_counts_every_order_in_the_summary(self, order_factory):
        reference = _utc(2026, 2, 3, 12, 0)
        todays = order_factory(created_at="2026-02-03T09:00:00+00:00")
        report = generate_order_report([todays], "monthly", date_range_for_period("monthly", reference))

        assert report.interval == "week"
        assert report.time_series[-1].label == "2026-02-01"
        assert report.time_series[-1].order_count == 1
        assert sum(p.order_count for p in report.time_series) == report.summary.total_orders

    def test_comparison(self, orders):
        current = DateRange(start=_utc(2026, 3, 1), end=_utc(2026, 3, 31))
        previous = DateRange(start=_utc(2026, 2, 1), end=_utc(2026, 2, 28))

        comparison = compare_order_performance(orders, current, previous)

        assert comparison.current.total_orders == 2
        assert comparison.previous.total_orders == 1
        assert comparison.changes["revenue_change_cents"] == 2000
        assert comparison.changes["revenue_change_percent"] == 100.0

    def test_comparison_with_empty_previous_period(self, orders):
        current = DateRange(start=_utc(2026, 3, 1), end=_utc(2026, 3, 31))
        previous = DateRange(start=_utc(2025, 3, 1), end=_utc(2025, 3, 31))

        assert compare_order_performance(orders, current, previous).changes["orders_change_percent"] == 0.0


def test_format_sales_summary(orders):
    text = format_sales_summary(calculate_sales_summary(orders))
    assert "Total Revenue: $60.00" in text
    assert "Average Order Value: $20.00" in text
