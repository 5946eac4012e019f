from flask import Blueprint, request

from storefront.db import get_session
from storefront.routes.utils import parse_bool, success_response
from storefront.services.catalog import CategoryService, ProductService, category_to_dict, product_to_dict

categories_bp = Blueprint("categories", __name__)


@categories_bp.route("", methods=["GET"])
def list_categories():
    """Visible category tree, or the highlighted categories with ?highlighted=true."""
    with get_session() as session:
        service = CategoryService(session)
        if parse_bool(request.args.get("highlighted")):
            limit = min(request.args.get("limit", 6, type=int), 50)
            return success_response([category_to_dict(c) for c in service.get_highlighted(limit)])
        return success_response(service.get_tree(visible_only=True))


@categories_bp.route("/<slug>", methods=["GET"])
def get_category(slug: str):
    """A category with its breadcrumb path and first page of products."""
    with get_session() as session:
        service = CategoryService(session)
        category = service.get_by_slug(slug)
        products, total = ProductService(session).list_products({"category": slug, "page": 1, "page_size": 20})
        data = category_to_dict(category)
        data["path"] = service.get_path(slug)
        data["products"] = [product_to_dict(p, include_variants=False) for p in products]
        data["product_count"] = total
        return success_response(data)
