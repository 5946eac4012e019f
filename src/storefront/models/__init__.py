from storefront.models.profile import Profile
from storefront.models.product import Category, Product, ProductVariant, category_products
from storefront.models.cart import Cart, CartItem
from storefront.models.checkout import CheckoutSession
from storefront.models.order import Order, OrderItem, OrderStatusHistory
from storefront.models.hero_banner import HeroBanner

__all__ = [
    "Profile",
    "Category",
    "Product",
    "ProductVariant",
    "category_products",
    "Cart",
    "CartItem",
    "CheckoutSession",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "HeroBanner",
]
