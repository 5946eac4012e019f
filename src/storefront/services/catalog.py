import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from storefront.core.exceptions import ConflictError, NotFoundError, ValidationError
from storefront.models import Category, Product, ProductVariant
from storefront.utils.date_utils import DateUtils
from storefront.utils.formatting import FormattingUtils

logger = logging.getLogger(__name__)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def variant_to_dict(variant: ProductVariant) -> Dict[str, Any]:
    return {
        "id": str(variant.id),
        "product_id": str(variant.product_id),
        "sku": variant.sku,
        "name": variant.name,
        "options": variant.options or {},
        "retail_price_cents": variant.effective_price_cents,
        "stock": variant.stock,
        "in_stock": variant.stock > 0,
        "is_active": variant.is_active,
    }


def product_to_dict(product: Product, include_variants: bool = True) -> Dict[str, Any]:
    data = {
        "id": str(product.id),
        "name": product.name,
        "slug": product.slug,
        "sku": product.sku,
        "description": product.description,
        "retail_price_cents": product.retail_price_cents,
        "retail_price": FormattingUtils.format_money(product.retail_price_cents),
        "business_price_cents": product.business_price_cents,
        "stock": product.stock,
        "in_stock": product.stock > 0,
        "is_active": product.is_active,
        "is_featured": product.is_featured,
        "image_url": product.image_url,
        "categories": [
            {"id": str(c.id), "name": c.name, "slug": c.slug} for c in product.categories
        ],
        "created_at": DateUtils.to_iso_string(product.created_at),
    }
    if include_variants:
        data["variants"] = [variant_to_dict(v) for v in product.variants if v.is_active]
    return data


def category_to_dict(category: Category) -> Dict[str, Any]:
    return {
        "id": str(category.id),
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "parent_id": str(category.parent_id) if category.parent_id else None,
        "sort_order": category.sort_order,
        "is_visible": category.is_visible,
        "is_highlighted": category.is_highlighted,
        "highlight_priority": category.highlight_priority,
    }


class CategoryService:
    """
    Category tree queries and admin maintenance.

    The tree is small enough to load whole; descendant and path lookups walk
    it in memory instead of issuing recursive SQL.
    """

    def __init__(self, session: Session):
        self.session = session

    def _all(self, visible_only: bool = False) -> List[Category]:
        stmt = select(Category).order_by(Category.sort_order, Category.name)
        if visible_only:
            stmt = stmt.where(Category.is_visible.is_(True))
        return list(self.session.scalars(stmt))

    def get_category(self, category_id: uuid.UUID) -> Category:
        category = self.session.get(Category, category_id)
        if category is None:
            raise NotFoundError("Category", str(category_id))
        return category

    def get_by_slug(self, slug: str) -> Category:
        category = self.session.scalars(select(Category).where(Category.slug == slug)).first()
        if category is None:
            raise NotFoundError("Category", slug)
        return category

    def get_tree(self, visible_only: bool = True) -> List[Dict[str, Any]]:
        """Nested category dicts, roots first, children under `children`."""
        categories = self._all(visible_only)
        nodes = {c.id: {**category_to_dict(c), "children": []} for c in categories}
        roots = []
        for c in categories:
            parent = nodes.get(c.parent_id) if c.parent_id else None
            if parent is not None:
                parent["children"].append(nodes[c.id])
            else:
                # Orphans of a hidden parent surface as roots
                roots.append(nodes[c.id])
        return roots

    def get_path(self, slug: str) -> List[Dict[str, Any]]:
        """Breadcrumb trail from the root down to `slug`."""
        by_id = {c.id: c for c in self._all()}
        current = self.get_by_slug(slug)
        path = []
        seen: Set[uuid.UUID] = set()
        while current is not None and current.id not in seen:
            seen.add(current.id)
            path.append({"id": str(current.id), "name": current.name, "slug": current.slug})
            current = by_id.get(current.parent_id) if current.parent_id else None
        return list(reversed(path))

    def get_descendant_ids(self, category_id: uuid.UUID) -> Set[uuid.UUID]:
        """The category itself plus every category below it."""
        children: Dict[uuid.UUID, List[uuid.UUID]] = {}
        for c in self._all():
            if c.parent_id:
                children.setdefault(c.parent_id, []).append(c.id)

        result = {category_id}
        stack = [category_id]
        while stack:
            for child_id in children.get(stack.pop(), []):
                if child_id not in result:
                    result.add(child_id)
                    stack.append(child_id)
        return result

    def get_highlighted(self, limit: int = 6) -> List[Category]:
        return list(self.session.scalars(
            select(Category)
            .where(Category.is_highlighted.is_(True), Category.is_visible.is_(True))
            .order_by(Category.highlight_priority.desc(), Category.name)
            .limit(limit)
        ))

    def _unique_slug(self, base: str, exclude_id: Optional[uuid.UUID] = None) -> str:
        slug = FormattingUtils.slugify(base)
        candidate, n = slug, 2
        while True:
            stmt = select(Category.id).where(Category.slug == candidate)
            if exclude_id is not None:
                stmt = stmt.where(Category.id != exclude_id)
            if self.session.scalars(stmt).first() is None:
                return candidate
            candidate = f"{slug}-{n}"
            n += 1

    def create_category(self, data: Dict[str, Any]) -> Category:
        if data.get("parent_id"):
            self.get_category(data["parent_id"])
        category = Category(**{k: v for k, v in data.items() if k != "slug"})
        category.slug = self._unique_slug(data.get("slug") or data["name"])
        self.session.add(category)
        self.session.flush()
        logger.info(f"created category {category.slug}")
        return category

    def update_category(self, category_id: uuid.UUID, data: Dict[str, Any]) -> Category:
        """Apply a partial update. Re-parenting under itself or a descendant is rejected."""
        category = self.get_category(category_id)

        if "parent_id" in data and data["parent_id"] is not None:
            if data["parent_id"] in self.get_descendant_ids(category.id):
                raise ValidationError(
                    "A category cannot be moved under itself or one of its descendants",
                    {"parent_id": ["Would create a cycle"]},
                )
            self.get_category(data["parent_id"])

        for key, value in data.items():
            if key == "slug":
                if value:
                    category.slug = self._unique_slug(value, exclude_id=category.id)
                continue
            setattr(category, key, value)

        self.session.flush()
        return category

    def delete_category(self, category_id: uuid.UUID) -> None:
        """Delete a category; its children move up to its parent."""
        category = self.get_category(category_id)
        for child in self.session.scalars(select(Category).where(Category.parent_id == category.id)):
            child.parent_id = category.parent_id
        self.session.delete(category)
        self.session.flush()
        logger.info(f"deleted category {category.slug}")

    def reorder(self, ids: Iterable[uuid.UUID]) -> None:
        for position, category_id in enumerate(ids):
            self.get_category(category_id).sort_order = position
        self.session.flush()


class ProductService:
    """
    Product catalog queries and admin maintenance.

    Business Rules:
    - Storefront queries only ever return active products
    - SKUs and slugs are unique; slugs are generated from the name when absent
    - Prices and stock are never negative
    """

    def __init__(self, session: Session):
        self.session = session
        self.categories = CategoryService(session)

    def _base_query(self, include_inactive: bool = False):
        stmt = select(Product).options(
            selectinload(Product.categories), selectinload(Product.variants)
        )
        if not include_inactive:
            stmt = stmt.where(Product.is_active.is_(True))
        return stmt

    def list_products(self, filters: Dict[str, Any]) -> Tuple[List[Product], int]:
        """
        Filtered, sorted page of products plus the total match count.

        filters: category (slug, includes descendants), q, min_price_cents,
        max_price_cents, in_stock, featured, include_inactive, sort, page,
        page_size.
        """
        stmt = self._base_query(filters.get("include_inactive", False))

        if filters.get("category"):
            category = self.categories.get_by_slug(filters["category"])
            ids = self.categories.get_descendant_ids(category.id)
            stmt = stmt.where(Product.categories.any(Category.id.in_(ids)))

        if filters.get("q"):
            pattern = f"%{_escape_like(filters['q'].strip())}%"
            stmt = stmt.where(or_(
                Product.name.ilike(pattern, escape="\\"),
                Product.sku.ilike(pattern, escape="\\"),
                Product.description.ilike(pattern, escape="\\"),
            ))

        if filters.get("min_price_cents") is not None:
            stmt = stmt.where(Product.retail_price_cents >= filters["min_price_cents"])
        if filters.get("max_price_cents") is not None:
            stmt = stmt.where(Product.retail_price_cents <= filters["max_price_cents"])
        if filters.get("in_stock"):
            stmt = stmt.where(Product.stock > 0)
        if filters.get("featured"):
            stmt = stmt.where(Product.is_featured.is_(True))

        total = self.session.scalar(select(func.count()).select_from(stmt.subquery()))

        sort = filters.get("sort", "newest")
        order_by = {
            "newest": (Product.created_at.desc(), Product.name),
            "price_asc": (Product.retail_price_cents.asc(), Product.name),
            "price_desc": (Product.retail_price_cents.desc(), Product.name),
            "name": (Product.name.asc(),),
        }[sort]

        page = filters.get("page", 1)
        page_size = filters.get("page_size", 20)
        products = list(self.session.scalars(
            stmt.order_by(*order_by).offset((page - 1) * page_size).limit(page_size)
        ))
        return products, total or 0

    def get_product(self, product_id: uuid.UUID, include_inactive: bool = False) -> Product:
        product = self.session.get(Product, product_id)
        if product is None or (not include_inactive and not product.is_active):
            raise NotFoundError("Product", str(product_id))
        return product

    def get_product_by_slug(self, slug: str) -> Product:
        product = self.session.scalars(self._base_query().where(Product.slug == slug)).first()
        if product is None:
            raise NotFoundError("Product", slug)
        return product

    def get_featured(self, limit: int = 8) -> List[Product]:
        return list(self.session.scalars(
            self._base_query().where(Product.is_featured.is_(True))
            .order_by(Product.created_at.desc()).limit(limit)
        ))

    def get_new_arrivals(self, limit: int = 8) -> List[Product]:
        return list(self.session.scalars(
            self._base_query().order_by(Product.created_at.desc()).limit(limit)
        ))

    def get_related(self, product: Product, limit: int = 4) -> List[Product]:
        """Active products sharing at least one category with `product`."""
        category_ids = [c.id for c in product.categories]
        if not category_ids:
            return []
        return list(self.session.scalars(
            self._base_query()
            .where(Product.id != product.id, Product.categories.any(Category.id.in_(category_ids)))
            .order_by(Product.is_featured.desc(), Product.created_at.desc())
            .limit(limit)
        ))

    def _unique_slug(self, base: str, exclude_id: Optional[uuid.UUID] = None) -> str:
        slug = FormattingUtils.slugify(base)
        candidate, n = slug, 2
        while True:
            stmt = select(Product.id).where(Product.slug == candidate)
            if exclude_id is not None:
                stmt = stmt.where(Product.id != exclude_id)
            if self.session.scalars(stmt).first() is None:
                return candidate
            candidate = f"{slug}-{n}"
            n += 1

    def _ensure_unique_sku(self, model, sku: str, exclude_id: Optional[uuid.UUID] = None) -> None:
        stmt = select(model.id).where(model.sku == sku)
        if exclude_id is not None:
            stmt = stmt.where(model.id != exclude_id)
        if self.session.scalars(stmt).first() is not None:
            raise ConflictError(f"SKU {sku} already exists", conflict_field="sku")

    @staticmethod
    def validate_product_data(data: Dict[str, Any], partial: bool = False) -> None:
        """Field rules shared by create and update."""
        errors: Dict[str, List[str]] = {}
        for field in ("name", "sku"):
            if field in data or not partial:
                if not (data.get(field) or "").strip():
                    errors[field] = [f"{field.capitalize()} is required"]
        for field in ("retail_price_cents", "business_price_cents", "stock"):
            value = data.get(field)
            if value is not None and value < 0:
                errors[field] = [f"{field} must be greater than or equal to 0"]
        if errors:
            raise ValidationError("Invalid product data", errors)

    def set_categories(self, product: Product, category_ids: Iterable[uuid.UUID]) -> None:
        product.categories = [self.categories.get_category(cid) for cid in category_ids]

    def create_product(self, data: Dict[str, Any]) -> Product:
        self.validate_product_data(data)
        sku = data["sku"].strip()
        self._ensure_unique_sku(Product, sku)

        fields = {k: v for k, v in data.items() if k not in ("slug", "category_ids", "sku")}
        product = Product(**fields, sku=sku, slug=self._unique_slug(data.get("slug") or data["name"]))
        if data.get("category_ids"):
            self.set_categories(product, data["category_ids"])
        self.session.add(product)
        self.session.flush()
        logger.info(f"created product {product.sku}")
        return product

    def update_product(self, product_id: uuid.UUID, data: Dict[str, Any]) -> Product:
        product = self.get_product(product_id, include_inactive=True)
        self.validate_product_data(data, partial=True)

        if "sku" in data and data["sku"] != product.sku:
            self._ensure_unique_sku(Product, data["sku"], exclude_id=product.id)

        for key, value in data.items():
            if key == "category_ids":
                if value is not None:
                    self.set_categories(product, value)
            elif key == "slug":
                if value:
                    product.slug = self._unique_slug(value, exclude_id=product.id)
            else:
                setattr(product, key, value)

        self.session.flush()
        logger.info(f"updated product {product.sku}")
        return product

    def delete_product(self, product_id: uuid.UUID) -> None:
        product = self.get_product(product_id, include_inactive=True)
        self.session.delete(product)
        self.session.flush()
        logger.info(f"deleted product {product.sku}")

    def get_variant(self, variant_id: uuid.UUID) -> ProductVariant:
        variant = self.session.get(ProductVariant, variant_id)
        if variant is None:
            raise NotFoundError("Product variant", str(variant_id))
        return variant

    def create_variant(self, product_id: uuid.UUID, data: Dict[str, Any]) -> ProductVariant:
        product = self.get_product(product_id, include_inactive=True)
        self._ensure_unique_sku(ProductVariant, data["sku"])
        variant = ProductVariant(product_id=product.id, **data)
        product.variants.append(variant)
        self.session.flush()
        return variant

    def update_variant(self, variant_id: uuid.UUID, data: Dict[str, Any]) -> ProductVariant:
        variant = self.get_variant(variant_id)
        if "sku" in data and data["sku"] != variant.sku:
            self._ensure_unique_sku(ProductVariant, data["sku"], exclude_id=variant.id)
        for key, value in data.items():
            setattr(variant, key, value)
        self.session.flush()
        return variant

    def delete_variant(self, variant_id: uuid.UUID) -> None:
        self.session.delete(self.get_variant(variant_id))
        self.session.flush()
