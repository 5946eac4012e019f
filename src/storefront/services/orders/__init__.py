from storefront.services.orders.serialization import order_to_dict
from storefront.services.orders.service import OrderService

__all__ = ["OrderService", "order_to_dict"]
