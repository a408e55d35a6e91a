"""Order Desk: WooCommerce order lifecycle and courier booking."""

from .clients import OrderGateway
from .controller import OrderLifecycleController
from .couriers import CourierGateway
from .credential_store import InMemoryCredentialStore, JsonFileCredentialStore
from .models import ApiVariant, BookingResult, Courier, CustomerHistory, Order, OrderItem, OrderStatus

__all__ = [
    "OrderGateway",
    "CourierGateway",
    "OrderLifecycleController",
    "InMemoryCredentialStore",
    "JsonFileCredentialStore",
    "ApiVariant",
    "BookingResult",
    "Courier",
    "CustomerHistory",
    "Order",
    "OrderItem",
    "OrderStatus",
]
