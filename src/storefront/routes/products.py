import logging

from flask import Blueprint, request

from storefront.core.exceptions import ValidationError
from storefront.db import get_session
from storefront.routes.utils import load_or_400, paginated, parse_uuid_or_404, success_response
from storefront.schemas.requests import ProductListQuerySchema
from storefront.services.catalog import ProductService, product_to_dict

logger = logging.getLogger(__name__)

products_bp = Blueprint("products", __name__)

_list_schema = ProductListQuerySchema()


@products_bp.route("", methods=["GET"])
def list_products():
    """List active products with filtering, search, sorting and pagination."""
    filters = load_or_400(_list_schema, request.args)
    # The storefront listing never exposes inactive products
    filters["include_inactive"] = False

    if (
        filters["min_price_cents"] is not None
        and filters["max_price_cents"] is not None
        and filters["min_price_cents"] > filters["max_price_cents"]
    ):
        raise ValidationError("min_price_cents cannot be greater than max_price_cents.")

    with get_session() as session:
        products, total = ProductService(session).list_products(filters)
        items = [product_to_dict(p, include_variants=False) for p in products]

    return success_response(paginated(items, total, filters["page"], filters["page_size"]))


@products_bp.route("/featured", methods=["GET"])
def featured_products():
    limit = min(request.args.get("limit", 8, type=int), 50)
    with get_session() as session:
        products = ProductService(session).get_featured(limit)
        return success_response([product_to_dict(p, include_variants=False) for p in products])


@products_bp.route("/new-arrivals", methods=["GET"])
def new_arrivals():
    limit = min(request.args.get("limit", 8, type=int), 50)
    with get_session() as session:
        products = ProductService(session).get_new_arrivals(limit)
        return success_response([product_to_dict(p, include_variants=False) for p in products])


@products_bp.route("/slug/<slug>", methods=["GET"])
def get_product_by_slug(slug: str):
    """Product detail page data: the product, its variants and related products."""
    with get_session() as session:
        service = ProductService(session)
        product = service.get_product_by_slug(slug)
        data = product_to_dict(product)
        data["related"] = [product_to_dict(p, include_variants=False) for p in service.get_related(product)]
        return success_response(data)


@products_bp.route("/<product_id>", methods=["GET"])
def get_product(product_id: str):
    pid = parse_uuid_or_404(product_id, "Product")
    with get_session() as session:
        service = ProductService(session)
        product = service.get_product(pid)
        data = product_to_dict(product)
        data["related"] = [product_to_dict(p, include_variants=False) for p in service.get_related(product)]
        return success_response(data)
