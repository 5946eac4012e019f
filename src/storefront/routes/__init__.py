from storefront.routes.admin import admin_bp
from storefront.routes.cart import cart_bp
from storefront.routes.categories import categories_bp
from storefront.routes.checkout import checkout_bp
from storefront.routes.hero_banners import hero_banners_bp
from storefront.routes.orders import orders_bp
from storefront.routes.payments import payments_bp
from storefront.routes.products import products_bp

__all__ = [
    "products_bp",
    "categories_bp",
    "hero_banners_bp",
    "cart_bp",
    "checkout_bp",
    "orders_bp",
    "payments_bp",
    "admin_bp",
]
