import logging

from flask import Blueprint, Response, request

from storefront.core.auth import require_admin, require_staff, resolve_current_user
from storefront.core.exceptions import ForbiddenError
from storefront.db import get_session
from storefront.routes.utils import json_body, load_or_400, paginated, parse_uuid_or_404, success_response
from storefront.schemas.requests import (
    AnalyticsQuerySchema,
    CategorySchema,
    HeroBannerSchema,
    OrderExportQuerySchema,
    OrderListQuerySchema,
    OrderStatusUpdateSchema,
    PaymentStatusUpdateSchema,
    ProductListQuerySchema,
    ProductSchema,
    ReorderSchema,
    VariantSchema,
)
from storefront.schemas.values import DateRange
from storefront.services.catalog import (
    CategoryService,
    ProductService,
    category_to_dict,
    product_to_dict,
    variant_to_dict,
)
from storefront.services.hero_banners import HeroBannerService, banner_to_dict
from storefront.services.orders import OrderService, order_to_dict
from storefront.services.orders.exporter import ExportOptions, export_filename, export_orders
from storefront.services.orders.permissions import can_perform_order_action, get_accessible_order_actions
from storefront.services.orders.statistics import (
    compare_order_performance,
    date_range_for_period,
    generate_order_report,
    preceding_range,
)
from storefront.utils.date_utils import DateUtils

logger = logging.getLogger(__name__)

admin_bp = Blueprint("admin", __name__)

_product_list_schema = ProductListQuerySchema()
_product_schema = ProductSchema()
_variant_schema = VariantSchema()
_category_schema = CategorySchema()
_banner_schema = HeroBannerSchema()
_reorder_schema = ReorderSchema()
_order_list_schema = OrderListQuerySchema()
_order_export_schema = OrderExportQuerySchema()
_status_schema = OrderStatusUpdateSchema()
_payment_status_schema = PaymentStatusUpdateSchema()
_analytics_schema = AnalyticsQuerySchema()


def _require_order_action(action: str, order_dict=None):
    user = resolve_current_user()
    if not can_perform_order_action(user, action, order_dict):
        raise ForbiddenError(f"You are not allowed to {action} this order")
    return user


# ---------------------------------------------------------------------- #
# Products                                                                 #
# ---------------------------------------------------------------------- #

@admin_bp.route("/products", methods=["GET"])
@require_staff
def list_products():
    """Every product, including inactive ones unless filtered out."""
    filters = load_or_400(_product_list_schema, request.args)
    if "include_inactive" not in request.args:
        filters["include_inactive"] = True
    with get_session() as session:
        products, total = ProductService(session).list_products(filters)
        items = [product_to_dict(p) for p in products]
    return success_response(paginated(items, total, filters["page"], filters["page_size"]))


@admin_bp.route("/products", methods=["POST"])
@require_admin
def create_product():
    data = load_or_400(_product_schema, json_body())
    with get_session() as session:
        product = ProductService(session).create_product(data)
        return success_response(product_to_dict(product), "Product created.", 201)


@admin_bp.route("/products/<product_id>", methods=["GET"])
@require_staff
def get_product(product_id: str):
    pid = parse_uuid_or_404(product_id, "Product")
    with get_session() as session:
        product = ProductService(session).get_product(pid, include_inactive=True)
        return success_response(product_to_dict(product))


@admin_bp.route("/products/<product_id>", methods=["PATCH"])
@require_admin
def update_product(product_id: str):
    pid = parse_uuid_or_404(product_id, "Product")
    data = load_or_400(_product_schema, json_body(), partial=True)
    with get_session() as session:
        product = ProductService(session).update_product(pid, data)
        return success_response(product_to_dict(product), "Product updated.")


@admin_bp.route("/products/<product_id>", methods=["DELETE"])
@require_admin
def delete_product(product_id: str):
    pid = parse_uuid_or_404(product_id, "Product")
    with get_session() as session:
        ProductService(session).delete_product(pid)
    return success_response(None, "Product deleted.")


@admin_bp.route("/products/<product_id>/variants", methods=["POST"])
@require_admin
def create_variant(product_id: str):
    pid = parse_uuid_or_404(product_id, "Product")
    data = load_or_400(_variant_schema, json_body())
    with get_session() as session:
        variant = ProductService(session).create_variant(pid, data)
        return success_response(variant_to_dict(variant), "Variant created.", 201)


@admin_bp.route("/variants/<variant_id>", methods=["PATCH"])
@require_admin
def update_variant(variant_id: str):
    vid = parse_uuid_or_404(variant_id, "Product variant")
    data = load_or_400(_variant_schema, json_body(), partial=True)
    with get_session() as session:
        variant = ProductService(session).update_variant(vid, data)
        return success_response(variant_to_dict(variant), "Variant updated.")


@admin_bp.route("/variants/<variant_id>", methods=["DELETE"])
@require_admin
def delete_variant(variant_id: str):
    vid = parse_uuid_or_404(variant_id, "Product variant")
    with get_session() as session:
        ProductService(session).delete_variant(vid)
    return success_response(None, "Variant deleted.")


# ---------------------------------------------------------------------- #
# Categories                                                               #
# ---------------------------------------------------------------------- #

@admin_bp.route("/categories", methods=["GET"])
@require_staff
def list_categories():
    with get_session() as session:
        return success_response(CategoryService(session).get_tree(visible_only=False))


@admin_bp.route("/categories", methods=["POST"])
@require_admin
def create_category():
    data = load_or_400(_category_schema, json_body())
    with get_session() as session:
        category = CategoryService(session).create_category(data)
        return success_response(category_to_dict(category), "Category created.", 201)


@admin_bp.route("/categories/<category_id>", methods=["PATCH"])
@require_admin
def update_category(category_id: str):
    cid = parse_uuid_or_404(category_id, "Category")
    data = load_or_400(_category_schema, json_body(), partial=True)
    with get_session() as session:
        category = CategoryService(session).update_category(cid, data)
        return success_response(category_to_dict(category), "Category updated.")


@admin_bp.route("/categories/<category_id>", methods=["DELETE"])
@require_admin
def delete_category(category_id: str):
    cid = parse_uuid_or_404(category_id, "Category")
    with get_session() as session:
        CategoryService(session).delete_category(cid)
    return success_response(None, "Category deleted.")


@admin_bp.route("/categories/reorder", methods=["POST"])
@require_admin
def reorder_categories():
    data = load_or_400(_reorder_schema, json_body())
    with get_session() as session:
        service = CategoryService(session)
        service.reorder(data["ids"])
        return success_response(service.get_tree(visible_only=False), "Categories reordered.")


# ---------------------------------------------------------------------- #
# Hero banners                                                             #
# ---------------------------------------------------------------------- #

@admin_bp.route("/hero-banners", methods=["GET"])
@require_staff
def list_banners():
    with get_session() as session:
        banners = HeroBannerService(session).list_banners(active_only=False)
        return success_response([banner_to_dict(b) for b in banners])


@admin_bp.route("/hero-banners", methods=["POST"])
@require_admin
def create_banner():
    data = load_or_400(_banner_schema, json_body())
    user = resolve_current_user()
    with get_session() as session:
        banner = HeroBannerService(session).create_banner(data, created_by=user.id)
        return success_response(banner_to_dict(banner), "Hero banner created.", 201)


@admin_bp.route("/hero-banners/<banner_id>", methods=["GET"])
@require_staff
def get_banner(banner_id: str):
    bid = parse_uuid_or_404(banner_id, "Hero banner")
    with get_session() as session:
        return success_response(banner_to_dict(HeroBannerService(session).get_banner(bid)))


@admin_bp.route("/hero-banners/<banner_id>", methods=["PATCH"])
@require_admin
def update_banner(banner_id: str):
    bid = parse_uuid_or_404(banner_id, "Hero banner")
    data = load_or_400(_banner_schema, json_body(), partial=True)
    with get_session() as session:
        banner = HeroBannerService(session).update_banner(bid, data)
        return success_response(banner_to_dict(banner), "Hero banner updated.")


@admin_bp.route("/hero-banners/<banner_id>", methods=["DELETE"])
@require_admin
def delete_banner(banner_id: str):
    bid = parse_uuid_or_404(banner_id, "Hero banner")
    with get_session() as session:
        HeroBannerService(session).delete_banner(bid)
    return success_response(None, "Hero banner deleted.")


@admin_bp.route("/hero-banners/reorder", methods=["POST"])
@require_admin
def reorder_banners():
    data = load_or_400(_reorder_schema, json_body())
    with get_session() as session:
        banners = HeroBannerService(session).reorder(data["ids"])
        return success_response([banner_to_dict(b) for b in banners], "Hero banners reordered.")


# ---------------------------------------------------------------------- #
# Orders                                                                   #
# ---------------------------------------------------------------------- #

@admin_bp.route("/orders", methods=["GET"])
@require_staff
def list_orders():
    filters = load_or_400(_order_list_schema, request.args)
    with get_session() as session:
        orders, total = OrderService(session).list_orders(filters)
        items = [order_to_dict(o, include_history=False) for o in orders]
    return success_response(paginated(items, total, filters["page"], filters["page_size"]))


@admin_bp.route("/orders/export", methods=["GET"])
@require_staff
def export_order_list():
    """Download the filtered orders as CSV or JSON."""
    _require_order_action("export")
    query = load_or_400(_order_export_schema, request.args)
    options = ExportOptions.from_query(query)

    with get_session() as session:
        orders, _ = OrderService(session).list_orders(query)
        content = export_orders([order_to_dict(o) for o in orders], options)

    mimetype = "text/csv" if options.format == "csv" else "application/json"
    logger.info(f"exported {len(orders)} order(s) as {options.format}")
    return Response(
        content,
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{export_filename(options)}"'},
    )


@admin_bp.route("/orders/analytics", methods=["GET"])
@require_staff
def order_analytics():
    """Sales report for a period, optionally compared with the period before it."""
    query = load_or_400(_analytics_schema, request.args)
    if query["period"] == "custom":
        date_range = DateRange(
            start=DateUtils.get_start_of_day(query["start"]),
            end=DateUtils.get_end_of_day(query["end"]),
        )
    else:
        date_range = date_range_for_period(query["period"])
    previous = preceding_range(date_range)

    with get_session() as session:
        service = OrderService(session)
        start = previous.start if query["compare"] else date_range.start
        orders = [order_to_dict(o, include_history=False)
                  for o in service.get_orders_between(start, date_range.end)]

    report = generate_order_report(orders, query["period"], date_range, query["top_products"])
    data = {"report": report.model_dump(mode="json")}
    if query["compare"]:
        data["comparison"] = compare_order_performance(orders, date_range, previous).model_dump(mode="json")
    return success_response(data)


@admin_bp.route("/orders/<order_id>", methods=["GET"])
@require_staff
def get_order(order_id: str):
    oid = parse_uuid_or_404(order_id, "Order")
    user = resolve_current_user()
    with get_session() as session:
        data = order_to_dict(OrderService(session).get_order(oid))
    data["available_actions"] = get_accessible_order_actions(user, data)
    return success_response(data)


@admin_bp.route("/orders/<order_id>/status", methods=["PATCH"])
@require_staff
def update_order_status(order_id: str):
    oid = parse_uuid_or_404(order_id, "Order")
    data = load_or_400(_status_schema, json_body())
    with get_session() as session:
        service = OrderService(session)
        user = _require_order_action("updateStatus", order_to_dict(service.get_order(oid), include_history=False))
        order = service.update_order_status(oid, data["status"], data.get("notes"), updated_by=user.id)
        return success_response(order_to_dict(order), "Order status updated.")


@admin_bp.route("/orders/<order_id>/payment-status", methods=["PATCH"])
@require_staff
def update_payment_status(order_id: str):
    oid = parse_uuid_or_404(order_id, "Order")
    data = load_or_400(_payment_status_schema, json_body())
    with get_session() as session:
        service = OrderService(session)
        user = _require_order_action(
            "updatePayment", order_to_dict(service.get_order(oid), include_history=False)
        )
        order = service.update_payment_status(oid, data["payment_status"], data.get("notes"), updated_by=user.id)
        return success_response(order_to_dict(order), "Payment status updated.")
