from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from dateutil.relativedelta import relativedelta

from storefront.schemas.values import (
    REPORT_PERIODS,
    DateRange,
    OrderReport,
    PerformanceComparison,
    ProductSales,
    SalesSummary,
    StatusCount,
    TimeSeriesPoint,
)
from storefront.utils.date_utils import DateUtils
from storefront.utils.formatting import FormattingUtils


def date_range_for_period(period: str, reference: Optional[datetime] = None) -> DateRange:
    """
    Report window ending at the end of the reference day.

    weekly is the last 7 days including today; monthly, quarterly and yearly
    reach back 1, 3 and 12 months. custom covers only the reference day and
    is normally replaced by an explicit range.
    """
    if period not in REPORT_PERIODS:
        raise ValueError(f"Unknown report period: {period}")

    end = DateUtils.get_end_of_day(DateUtils.to_utc(reference or DateUtils.now_utc()))
    start = DateUtils.get_start_of_day(end)

    if period == "weekly":
        start -= timedelta(days=6)
    elif period == "monthly":
        start -= relativedelta(months=1)
    elif period == "quarterly":
        start -= relativedelta(months=3)
    elif period == "yearly":
        start -= relativedelta(years=1)

    return DateRange(start=start, end=end)


def _created_at(order: Dict[str, Any]) -> datetime:
    return DateUtils.parse(order["created_at"])


def filter_orders_by_date_range(orders: List[Dict[str, Any]], date_range: DateRange) -> List[Dict[str, Any]]:
    start = DateUtils.to_utc(date_range.start)
    end = DateUtils.to_utc(date_range.end)
    return [o for o in orders if start <= _created_at(o) <= end]


def calculate_sales_summary(orders: List[Dict[str, Any]]) -> SalesSummary:
    if not orders:
        return SalesSummary()

    total_revenue = sum(o["total_cents"] for o in orders)
    return SalesSummary(
        total_orders=len(orders),
        total_revenue_cents=total_revenue,
        average_order_value_cents=round(total_revenue / len(orders)),
        total_items_sold=sum(item["quantity"] for o in orders for item in o.get("items") or []),
        total_shipping_cents=sum(o.get("shipping_cents") or 0 for o in orders),
        total_tax_cents=sum(o.get("tax_cents") or 0 for o in orders),
    )


def calculate_status_distribution(orders: List[Dict[str, Any]], key: str = "status") -> List[StatusCount]:
    """Count and share per status, most common first."""
    if not orders:
        return []
    counts: Dict[str, int] = {}
    for order in orders:
        counts[order[key]] = counts.get(order[key], 0) + 1
    return sorted(
        (
            StatusCount(status=status, count=count, percentage=count / len(orders) * 100)
            for status, count in counts.items()
        ),
        key=lambda s: (-s.count, s.status),
    )


def calculate_product_sales(orders: List[Dict[str, Any]]) -> List[ProductSales]:
    """Per-product quantity and revenue, highest revenue first."""
    products: Dict[str, ProductSales] = {}
    seen_orders: Dict[str, set] = {}

    for order in orders:
        for item in order.get("items") or []:
            pid = item["product_id"]
            entry = products.get(pid)
            if entry is None:
                entry = products[pid] = ProductSales(
                    product_id=pid,
                    name=item.get("name") or "",
                    sku=item.get("sku") or "SKU-UNKNOWN",
                )
                seen_orders[pid] = set()
            entry.quantity_sold += item["quantity"]
            entry.revenue_cents += item.get("total_price_cents") or 0
            seen_orders[pid].add(order["id"])

    for pid, entry in products.items():
        entry.order_count = len(seen_orders[pid])
        if entry.quantity_sold:
            entry.average_unit_price_cents = round(entry.revenue_cents / entry.quantity_sold)

    return sorted(products.values(), key=lambda p: p.revenue_cents, reverse=True)


def _bucket_start(moment: datetime, interval: str) -> datetime:
    day = DateUtils.get_start_of_day(moment)
    if interval == "week":
        # Weeks start on Sunday
        return day - timedelta(days=(day.weekday() + 1) % 7)
    if interval == "month":
        return day.replace(day=1)
    return day


def _bucket_label(start: datetime, interval: str) -> str:
    return start.strftime("%Y-%m") if interval == "month" else start.strftime("%Y-%m-%d")


def calculate_time_series(
    orders: List[Dict[str, Any]],
    date_range: DateRange,
    interval: str = "day",
) -> List[TimeSeriesPoint]:
    """
    Orders and revenue per day/week/month across the whole range, with empty
    buckets filled with zeros. No orders means no series.
    """
    if not orders:
        return []

    buckets: Dict[datetime, TimeSeriesPoint] = {}
    cursor = _bucket_start(DateUtils.to_utc(date_range.start), interval)
    last = _bucket_start(DateUtils.to_utc(date_range.end), interval)
    step = {"day": relativedelta(days=1), "week": relativedelta(weeks=1), "month": relativedelta(months=1)}[interval]
    while cursor <= last:
        buckets[cursor] = TimeSeriesPoint(period_start=cursor, label=_bucket_label(cursor, interval))
        cursor += step

    for order in orders:
        start = _bucket_start(_created_at(order), interval)
        point = buckets.get(start)
        if point is None:
            continue
        point.order_count += 1
        point.revenue_cents += order["total_cents"]
        point.items_sold += sum(item["quantity"] for item in order.get("items") or [])

    return [buckets[key] for key in sorted(buckets)]


def interval_for_period(period: str, date_range: DateRange) -> str:
    if period in ("daily", "weekly"):
        return "day"
    if period in ("monthly", "quarterly"):
        return "week"
    if period == "yearly":
        return "month"
    days = (date_range.end - date_range.start).total_seconds() / 86400
    if days <= 31:
        return "day"
    if days <= 120:
        return "week"
    return "month"


def generate_order_report(
    orders: List[Dict[str, Any]],
    period: str = "monthly",
    custom_range: Optional[DateRange] = None,
    top_products: int = 10,
) -> OrderReport:
    date_range = custom_range or date_range_for_period(period)
    in_range = filter_orders_by_date_range(orders, date_range)
    interval = interval_for_period(period, date_range)

    return OrderReport(
        period=period,
        date_range=date_range,
        interval=interval,
        summary=calculate_sales_summary(in_range),
        status_distribution=calculate_status_distribution(in_range),
        payment_status_distribution=calculate_status_distribution(in_range, key="payment_status"),
        top_products=calculate_product_sales(in_range)[:top_products],
        time_series=calculate_time_series(in_range, date_range, interval),
    )


def _change(current: float, previous: float) -> float:
    return (current - previous) / previous * 100 if previous else 0.0


def compare_order_performance(
    orders: List[Dict[str, Any]],
    current_range: DateRange,
    previous_range: DateRange,
) -> PerformanceComparison:
    current = calculate_sales_summary(filter_orders_by_date_range(orders, current_range))
    previous = calculate_sales_summary(filter_orders_by_date_range(orders, previous_range))

    return PerformanceComparison(
        current=current,
        previous=previous,
        changes={
            "orders_change": current.total_orders - previous.total_orders,
            "orders_change_percent": _change(current.total_orders, previous.total_orders),
            "revenue_change_cents": current.total_revenue_cents - previous.total_revenue_cents,
            "revenue_change_percent": _change(current.total_revenue_cents, previous.total_revenue_cents),
            "aov_change_cents": current.average_order_value_cents - previous.average_order_value_cents,
            "aov_change_percent": _change(
                current.average_order_value_cents, previous.average_order_value_cents
            ),
        },
    )


def preceding_range(date_range: DateRange) -> DateRange:
    """The window of equal length immediately before `date_range`."""
    length = date_range.end - date_range.start
    end = date_range.start - timedelta(microseconds=1)
    return DateRange(start=end - length, end=end)


def format_sales_summary(summary: SalesSummary, currency: str = "USD") -> str:
    def money(cents: int) -> str:
        return FormattingUtils.format_money(cents, currency)

    return (
        "Sales Summary:\n"
        "--------------\n"
        f"Total Orders: {summary.total_orders}\n"
        f"Total Revenue: {money(summary.total_revenue_cents)}\n"
        f"Average Order Value: {money(summary.average_order_value_cents)}\n"
        f"Total Items Sold: {summary.total_items_sold}\n"
        f"Total Shipping: {money(summary.total_shipping_cents)}\n"
        f"Total Tax: {money(summary.total_tax_cents)}\n"
    )
