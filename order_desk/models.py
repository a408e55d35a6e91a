"""
models.py — Data Models for Order Desk

This module defines the data structures shared by the gateways, the lifecycle
controller and the HTTP API. It uses Pydantic models for type safety and
validation of the records received from the remote store and courier APIs.

Field names are snake_case in Python and camelCase on the wire
(``customerName``, ``trackingId``...), which is also the record shape returned
by the Order Manager connector plugin. Money stays ``Decimal`` in Python and
is written as a JSON number (``"total": 115.98``), as the plugin does.

Models:
    - OrderStatus / Courier: Closed enumerations.
    - OrderItem: A single line item of an order.
    - Order: One purchase transaction as fetched from the remote store.
    - CustomerHistory: Aggregated delivery statistics for one customer.
    - BookingResult: Outcome of a courier booking attempt.
    - ConnectionCredentials / CourierCredentials: Auth material.
"""

from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator
from pydantic.alias_generators import to_camel


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class Courier(str, Enum):
    STEADFAST = "Steadfast"
    PATHAO = "Pathao"


class ApiVariant(str, Enum):
    """
    Deployment variant of the remote store API.

    PLUGIN: custom ``order-manager/v1`` endpoint with a bearer API key.
    WOOCOMMERCE: standard ``wc/v3`` REST API with basic auth (application password).
    """
    PLUGIN = "plugin"
    WOOCOMMERCE = "woocommerce"


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _to_decimal(value):
    # float -> str first, so 115.98 stays Decimal("115.98")
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, float):
        return Decimal(str(value))
    return value


class OrderItem(CamelModel):
    """
    Represents a single line item in an order. Immutable once fetched.

    Attributes:
        id (str): Product identifier in the remote store.
        name (str): Product name.
        quantity (int): Ordered quantity. Must be greater than zero.
        price (Decimal): Unit price.
        image_url (Optional[str]): Thumbnail reference, if the store sends one.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    quantity: int = Field(..., gt=0)
    price: Decimal
    image_url: Optional[str] = None

    @field_validator("price", mode="before")
    @classmethod
    def coerce_price(cls, value):
        return _to_decimal(value)

    @field_serializer("price", when_used="json")
    def serialize_price(self, value: Decimal) -> float:
        return float(value)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value)


class Order(CamelModel):
    """
    Represents one purchase transaction.

    The remote store is the source of truth; an ``Order`` instance is a cached
    copy. Status and courier fields are only changed through the lifecycle
    controller, which replaces instances via ``model_copy`` instead of
    mutating them.

    Attributes:
        id (str): Stable identifier assigned by the remote store.
        customer_name (str): Billing name.
        customer_email (str): Billing e-mail address.
        customer_phone (str): Billing phone number.
        order_date (str): ISO-8601 creation timestamp.
        status (OrderStatus): Local status.
        items (List[OrderItem]): Ordered line items.
        total (Decimal): Order total.
        shipping_address (str): Free-text shipping address.
        courier (Optional[Courier]): Assigned courier after a successful booking.
        tracking_id (Optional[str]): Courier tracking identifier after booking.
    """
    id: str
    customer_name: str = ""
    customer_email: str = ""
    customer_phone: str = ""
    order_date: str = ""
    status: OrderStatus
    items: List[OrderItem] = Field(default_factory=list)
    total: Decimal
    shipping_address: str = ""
    courier: Optional[Courier] = None
    tracking_id: Optional[str] = None

    @field_validator("total", mode="before")
    @classmethod
    def coerce_total(cls, value):
        return _to_decimal(value)

    @field_serializer("total", when_used="json")
    def serialize_total(self, value: Decimal) -> float:
        return float(value)

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value):
        return str(value)

    @property
    def is_booked(self) -> bool:
        return self.courier is not None


class CustomerHistory(CamelModel):
    """
    Aggregate delivery statistics for one customer. Derived, never persisted.
    """
    total_parcels: int = 0
    delivered: int = 0
    returned: int = 0
    pending: int = 0

    @classmethod
    def combine(cls, *histories: Optional["CustomerHistory"]) -> "CustomerHistory":
        """Sum the given histories field by field, ignoring missing ones."""
        present = [h for h in histories if h is not None]
        return cls(
            total_parcels=sum(h.total_parcels for h in present),
            delivered=sum(h.delivered for h in present),
            returned=sum(h.returned for h in present),
            pending=sum(h.pending for h in present),
        )


class BookingResult(CamelModel):
    success: bool
    tracking_id: str = ""
    message: str = ""


class ConnectionCredentials(BaseModel):
    """
    Site URL plus the ready-made Authorization header value.

    Attributes:
        site_url (str): Normalized store URL without trailing slash.
        auth_header (str): e.g. ``Bearer <key>`` or ``Basic <base64>``.
        variant (ApiVariant): Which REST API the store exposes.
    """
    site_url: str
    auth_header: str
    variant: ApiVariant = ApiVariant.PLUGIN


class CourierCredentials(BaseModel):
    """
    Key material for one courier.

    Steadfast uses ``api_key`` + ``secret_key``; Pathao uses ``api_key``
    (access token) + ``store_id``.
    """
    api_key: Optional[str] = None
    secret_key: Optional[str] = None
    store_id: Optional[str] = None
