from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from storefront.utils.date_utils import DateUtils
from storefront.utils.formatting import FormattingUtils


@dataclass
class OrderSearchOptions:
    query: Optional[str] = None
    order_ids: List[str] = field(default_factory=list)
    order_numbers: List[str] = field(default_factory=list)
    customer_ids: List[str] = field(default_factory=list)
    emails: List[str] = field(default_factory=list)
    statuses: List[str] = field(default_factory=list)
    payment_statuses: List[str] = field(default_factory=list)
    min_date: Optional[datetime] = None
    max_date: Optional[datetime] = None
    min_amount_cents: Optional[int] = None
    max_amount_cents: Optional[int] = None
    product_ids: List[str] = field(default_factory=list)
    shipping_countries: List[str] = field(default_factory=list)
    exact_match: bool = False
    include_notes: bool = False
    limit: Optional[int] = None
    offset: int = 0
    sort_by: Optional[str] = None  # date, total, status
    sort_direction: str = "asc"


@dataclass
class OrderSearchResult:
    orders: List[Dict[str, Any]]
    total: int
    limit: int
    offset: int


def _created_at(order: Dict[str, Any]) -> datetime:
    return DateUtils.parse(order["created_at"])


def _full_name(address: Optional[Dict[str, Any]]) -> str:
    if not address:
        return ""
    return FormattingUtils.format_name(address.get("first_name"), address.get("last_name"))


def _matches_text(order: Dict[str, Any], options: OrderSearchOptions) -> bool:
    """
    Substring match over order number, email, shipping/billing names, item
    names and SKUs (and notes when asked). Case-insensitive unless exact_match.
    """
    def norm(value: Optional[str]) -> str:
        value = value or ""
        return value if options.exact_match else value.lower()

    query = norm(options.query)
    haystacks = [
        order.get("order_number"),
        order.get("email"),
        _full_name(order.get("shipping_address")),
        _full_name(order.get("billing_address")),
    ]
    for item in order.get("items") or []:
        haystacks.append(item.get("name"))
        haystacks.append(item.get("sku"))
    if options.include_notes:
        haystacks.append(order.get("notes"))

    return any(query in norm(h) for h in haystacks if h)


def search_orders(orders: List[Dict[str, Any]], options: Optional[OrderSearchOptions] = None) -> OrderSearchResult:
    """
    Filter, sort and page a list of order dicts in memory.

    Without sort_by the newest orders come first.
    """
    options = options or OrderSearchOptions()
    results = list(orders)

    if options.order_ids:
        results = [o for o in results if o["id"] in options.order_ids]
    if options.order_numbers:
        results = [o for o in results if o["order_number"] in options.order_numbers]
    if options.customer_ids:
        results = [o for o in results if o.get("user_id") and o["user_id"] in options.customer_ids]
    if options.emails:
        emails = {e.lower() for e in options.emails}
        results = [o for o in results if (o.get("email") or "").lower() in emails]
    if options.statuses:
        results = [o for o in results if o["status"] in options.statuses]
    if options.payment_statuses:
        results = [o for o in results if o["payment_status"] in options.payment_statuses]
    if options.min_date:
        min_date = DateUtils.to_utc(options.min_date)
        results = [o for o in results if _created_at(o) >= min_date]
    if options.max_date:
        max_date = DateUtils.to_utc(options.max_date)
        results = [o for o in results if _created_at(o) <= max_date]
    if options.min_amount_cents is not None:
        results = [o for o in results if o["total_cents"] >= options.min_amount_cents]
    if options.max_amount_cents is not None:
        results = [o for o in results if o["total_cents"] <= options.max_amount_cents]
    if options.product_ids:
        results = [
            o for o in results
            if any(item["product_id"] in options.product_ids for item in o.get("items") or [])
        ]
    if options.shipping_countries:
        results = [
            o for o in results
            if (o.get("shipping_address") or {}).get("country") in options.shipping_countries
        ]
    if options.query:
        results = [o for o in results if _matches_text(o, options)]

    if options.sort_by:
        key = {
            "date": _created_at,
            "total": lambda o: o["total_cents"],
            "status": lambda o: o["status"],
        }[options.sort_by]
        results.sort(key=key, reverse=options.sort_direction == "desc")
    else:
        results.sort(key=_created_at, reverse=True)

    total = len(results)
    limit = options.limit or total
    offset = options.offset or 0
    return OrderSearchResult(
        orders=results[offset:offset + limit],
        total=total,
        limit=limit,
        offset=offset,
    )


def quick_search_orders(orders: List[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
    """Case-insensitive search box match; an empty query matches nothing."""
    if not query or not query.strip():
        return []
    options = OrderSearchOptions(query=query.strip())
    return [o for o in orders if _matches_text(o, options)]
