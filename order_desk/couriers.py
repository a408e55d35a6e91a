"""
couriers.py — Courier Gateway (Steadfast, Pathao)

This module books parcels with the two supported courier services and looks up
a customer's delivery history with them.

Both couriers implement one ``CourierBackend`` interface; each supplies its
own credential shape, endpoints, auth headers and response parsing. The
``CourierGateway`` dispatches to them through a single lookup by ``Courier``.

Booking never raises across the gateway boundary: missing keys, remote
rejections, non-JSON answers and transport failures all come back as a
``BookingResult`` with ``success=False`` and a message for the operator.
History lookups raise the typed errors from ``errors.py`` instead.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx
from pydantic import BaseModel, Field

from .config import HTTP_CONNECT_TIMEOUT, HTTP_READ_TIMEOUT, PATHAO_BASE_URL, STEADFAST_BASE_URL
from .errors import (
    AuthenticationError,
    ConfigurationError,
    MalformedResponseError,
    OrderDeskError,
    RemoteBusinessError,
    TransportError,
)
from .models import BookingResult, Courier, CourierCredentials, CustomerHistory, Order

log = logging.getLogger(__name__)

BOOKING = "booking"
HISTORY = "history"


class CourierRequest(BaseModel):
    method: str
    url: str
    headers: Dict[str, str]
    json_body: Optional[Dict[str, Any]] = None


class HistoryReport(BaseModel):
    """
    Result of looking up one customer with every configured courier.

    Each courier writes its own slot; one courier failing does not affect the
    other. ``combined`` sums the successful lookups and is None if none
    succeeded.
    """
    histories: Dict[Courier, CustomerHistory] = Field(default_factory=dict)
    errors: Dict[Courier, str] = Field(default_factory=dict)
    unconfigured: List[Courier] = Field(default_factory=list)
    combined: Optional[CustomerHistory] = None


def _count(value) -> int:
    try:
        return max(int(value or 0), 0)
    except (TypeError, ValueError):
        return 0


class CourierBackend(ABC):
    """
    One courier service.

    Subclasses declare which ``CourierCredentials`` fields each purpose needs
    (field name -> label shown to the operator) and how to talk to the API.
    """
    courier: Courier
    tracking_prefix: str
    required_fields: Dict[str, Dict[str, str]]

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip("/")

    def missing_fields(self, credentials: Optional[CourierCredentials], purpose: str = BOOKING) -> List[str]:
        credentials = credentials or CourierCredentials()
        return [
            label for field, label in self.required_fields[purpose].items()
            if not (getattr(credentials, field) or "").strip()
        ]

    def fallback_tracking_id(self, order: Order) -> str:
        return f"{self.tracking_prefix}-{order.id}"

    @abstractmethod
    def booking_request(self, order: Order, credentials: CourierCredentials) -> CourierRequest:
        ...

    @abstractmethod
    def history_request(self, phone: str, credentials: CourierCredentials) -> CourierRequest:
        ...

    @abstractmethod
    def tracking_id(self, body: Mapping[str, Any]) -> Optional[str]:
        """Tracking id from a successful booking answer, if the courier sent one."""

    @abstractmethod
    def parse_history(self, body: Mapping[str, Any]) -> CustomerHistory:
        ...

    def business_error(self, body: Any, status: int) -> Optional[str]:
        """Failure message carried by an answer, or None if the answer is a success."""
        if 200 <= status < 300:
            return None
        message = body.get("message") if isinstance(body, dict) else None
        return message or f"{self.courier.value} API returned status {status}"


class SteadfastBackend(CourierBackend):
    courier = Courier.STEADFAST
    tracking_prefix = "STDFST"
    required_fields = {
        BOOKING: {"api_key": "API Key", "secret_key": "Secret Key"},
        HISTORY: {"api_key": "API Key", "secret_key": "Secret Key"},
    }

    def _headers(self, credentials: CourierCredentials) -> Dict[str, str]:
        return {
            "Api-Key": credentials.api_key.strip(),
            "Secret-Key": credentials.secret_key.strip(),
            "Accept": "application/json",
        }

    def booking_request(self, order: Order, credentials: CourierCredentials) -> CourierRequest:
        payload = {
            "invoice": order.id,
            "recipient_name": order.customer_name,
            # Steadfast rejects multi-line addresses
            "recipient_address": order.shipping_address.replace("\n", ", "),
            "recipient_phone": order.customer_phone,
            "cod_amount": float(order.total),
            "note": f"Order from E-commerce Manager App. Total items: {len(order.items)}",
        }
        return CourierRequest(
            method="POST",
            url=f"{self.base_url}/api/v1/create_order",
            headers=self._headers(credentials),
            json_body=payload,
        )

    def history_request(self, phone: str, credentials: CourierCredentials) -> CourierRequest:
        return CourierRequest(
            method="GET",
            url=f"{self.base_url}/api/v1/courier_score/{phone}",
            headers=self._headers(credentials),
        )

    def tracking_id(self, body: Mapping[str, Any]) -> Optional[str]:
        consignment = body.get("consignment") or {}
        tracking = consignment.get("tracking_code") if isinstance(consignment, dict) else None
        return str(tracking) if tracking else None

    def business_error(self, body: Any, status: int) -> Optional[str]:
        # Steadfast can answer 200 with an error status inside the body
        if isinstance(body, dict) and body.get("status") not in (None, 200):
            return body.get("message") or f"Steadfast API returned status {body.get('status')}"
        return super().business_error(body, status)

    def parse_history(self, body: Mapping[str, Any]) -> CustomerHistory:
        if "total_parcel" not in body:
            raise MalformedResponseError("Unexpected customer history format from Steadfast.")
        total = _count(body.get("total_parcel"))
        delivered = _count(body.get("success_parcel"))
        returned = _count(body.get("cancelled_parcel"))
        return CustomerHistory(
            total_parcels=total,
            delivered=delivered,
            returned=returned,
            pending=max(total - delivered - returned, 0),
        )


class PathaoBackend(CourierBackend):
    courier = Courier.PATHAO
    tracking_prefix = "PTHO"
    required_fields = {
        BOOKING: {"api_key": "Access Token", "store_id": "Store ID"},
        HISTORY: {"api_key": "Access Token"},
    }

    def _headers(self, credentials: CourierCredentials) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {credentials.api_key.strip()}",
            "Accept": "application/json",
        }

    def booking_request(self, order: Order, credentials: CourierCredentials) -> CourierRequest:
        payload = {
            "store_id": credentials.store_id.strip(),
            "merchant_order_id": order.id,
            "recipient_name": order.customer_name,
            "recipient_phone": order.customer_phone,
            "recipient_address": order.shipping_address.replace("\n", ", "),
            "amount_to_collect": str(order.total),
            "item_quantity": len(order.items),
            "item_weight": 0.5,
            "item_description": "Order items",
        }
        return CourierRequest(
            method="POST",
            url=f"{self.base_url}/aladdin/api/v1/orders",
            headers=self._headers(credentials),
            json_body=payload,
        )

    def history_request(self, phone: str, credentials: CourierCredentials) -> CourierRequest:
        return CourierRequest(
            method="POST",
            url=f"{self.base_url}/aladdin/api/v1/user/success",
            headers=self._headers(credentials),
            json_body={"phone": phone},
        )

    def tracking_id(self, body: Mapping[str, Any]) -> Optional[str]:
        data = body.get("data") or {}
        consignment = data.get("consignment_id") if isinstance(data, dict) else None
        return str(consignment) if consignment else None

    def business_error(self, body: Any, status: int) -> Optional[str]:
        failed = not (200 <= status < 300) or (isinstance(body, dict) and body.get("type") == "error")
        if not failed:
            return None
        if isinstance(body, dict):
            errors = body.get("errors")
            if isinstance(errors, dict) and errors:
                parts = []
                for field, problems in errors.items():
                    text = "; ".join(problems) if isinstance(problems, list) else str(problems)
                    parts.append(f"{field}: {text}")
                return " | ".join(parts)
            if body.get("message"):
                return body["message"]
        return f"Pathao API returned status {status}"

    def parse_history(self, body: Mapping[str, Any]) -> CustomerHistory:
        data = body.get("data")
        customer = data.get("customer") if isinstance(data, dict) else None
        if not isinstance(customer, dict):
            raise MalformedResponseError("Unexpected customer history format from Pathao.")
        total = _count(customer.get("total_delivery"))
        delivered = _count(customer.get("successful_delivery"))
        returned = _count(customer.get("returned_delivery"))
        return CustomerHistory(
            total_parcels=total,
            delivered=delivered,
            returned=returned,
            pending=max(total - delivered - returned, 0),
        )


def default_backends() -> Dict[Courier, CourierBackend]:
    return {
        Courier.STEADFAST: SteadfastBackend(STEADFAST_BASE_URL),
        Courier.PATHAO: PathaoBackend(PATHAO_BASE_URL),
    }


class CourierGateway:
    """
    Client for the courier services.
    Handles parcel booking and customer delivery-history lookups.

    Args:
        client (Optional[httpx.AsyncClient]): HTTP client to use. A client with
            the configured timeouts is created when omitted.
        backends (Optional[Dict[Courier, CourierBackend]]): Courier lookup table.
    """

    def __init__(
            self,
            client: Optional[httpx.AsyncClient] = None,
            backends: Optional[Dict[Courier, CourierBackend]] = None,
    ):
        timeout_config = httpx.Timeout(HTTP_CONNECT_TIMEOUT, read=HTTP_READ_TIMEOUT)
        self.client = client or httpx.AsyncClient(timeout=timeout_config)
        self.backends = backends if backends is not None else default_backends()

    async def close(self):
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def backend(self, courier) -> CourierBackend:
        try:
            return self.backends[Courier(courier)]
        except (KeyError, ValueError):
            raise ConfigurationError(f'Courier "{courier}" is not configured.') from None

    def missing_credentials(self, courier, credentials: Optional[CourierCredentials], purpose: str = BOOKING) -> List[str]:
        """Labels of the credential fields the courier still needs for ``purpose``."""
        return self.backend(courier).missing_fields(credentials, purpose)

    def missing_credentials_message(self, courier, missing: List[str]) -> str:
        return f"Please add the {' and '.join(missing)} for {Courier(courier).value} in the Settings."

    async def fetch_customer_history(
            self,
            phone: str,
            courier,
            credentials: Optional[CourierCredentials],
    ) -> CustomerHistory:
        """
        Looks up a customer's delivery history with one courier.

        Args:
            phone (str): Customer phone number.
            courier (Courier): Courier to ask.
            credentials (CourierCredentials): Key material for that courier.

        Returns:
            CustomerHistory: Parcel counts reported by the courier.

        Raises:
            ConfigurationError: If required keys are missing (no request is made).
            AuthenticationError, RemoteBusinessError, MalformedResponseError,
            TransportError: On remote failures.
        """
        backend = self.backend(courier)
        missing = backend.missing_fields(credentials, HISTORY)
        if missing:
            raise ConfigurationError(f"{backend.courier.value} {' and '.join(missing)} required.")
        if not phone:
            raise ConfigurationError("The order has no customer phone number.")

        body = await self._send(backend, backend.history_request(phone, credentials))
        return backend.parse_history(body)

    async def fetch_all_histories(
            self,
            phone: str,
            credentials_by_courier: Mapping[Courier, Optional[CourierCredentials]],
    ) -> HistoryReport:
        """
        Asks every configured courier concurrently.

        Couriers whose history keys are missing are listed as unconfigured and
        not contacted.
        """
        report = HistoryReport()
        pending: List[Tuple[Courier, Any]] = []
        for courier, backend in self.backends.items():
            credentials = credentials_by_courier.get(courier)
            if backend.missing_fields(credentials, HISTORY):
                report.unconfigured.append(courier)
                continue
            pending.append((courier, self.fetch_customer_history(phone, courier, credentials)))

        results = await asyncio.gather(*(coro for _, coro in pending), return_exceptions=True)
        for (courier, _), result in zip(pending, results):
            if isinstance(result, OrderDeskError):
                log.warning(f"{courier.value} history lookup for {phone} failed: {result.message}")
                report.errors[courier] = result.message
            elif isinstance(result, BaseException):
                raise result
            else:
                report.histories[courier] = result

        if report.histories:
            report.combined = CustomerHistory.combine(*report.histories.values())
        return report

    async def book_order(self, order: Order, courier, credentials: Optional[CourierCredentials]) -> BookingResult:
        """
        Books a parcel for the order with the given courier.

        Never raises; every failure comes back as ``success=False``.

        Args:
            order (Order): Order to ship.
            courier (Courier): Courier to book with.
            credentials (CourierCredentials): Key material for that courier.

        Returns:
            BookingResult: ``success``, ``tracking_id`` and a message for the operator.
        """
        log_prefix = f"[Order: {order.id}]"
        try:
            backend = self.backend(courier)
        except ConfigurationError:
            return BookingResult(success=False, message="Service not configured.")

        missing = backend.missing_fields(credentials, BOOKING)
        if missing:
            log.warning(f"{log_prefix} {backend.courier.value} booking blocked, missing: {', '.join(missing)}.")
            return BookingResult(success=False, message=self.missing_credentials_message(courier, missing))

        log.info(f"{log_prefix} Booking with {backend.courier.value}...")
        try:
            body = await self._send(backend, backend.booking_request(order, credentials))
        except OrderDeskError as e:
            log.error(f"{log_prefix} {backend.courier.value} booking failed: {e.message}")
            return BookingResult(success=False, message=e.message)

        tracking_id = backend.tracking_id(body)
        if not tracking_id:
            tracking_id = backend.fallback_tracking_id(order)
            log.warning(f"{log_prefix} {backend.courier.value} sent no tracking id, using {tracking_id}.")

        log.info(f"{log_prefix} Booked with {backend.courier.value}. (Tracking: {tracking_id})")
        return BookingResult(
            success=True,
            tracking_id=tracking_id,
            message=f"Successfully booked with {backend.courier.value}. Tracking: {tracking_id}",
        )

    async def _send(self, backend: CourierBackend, request: CourierRequest) -> Dict[str, Any]:
        name = backend.courier.value
        try:
            response = await self.client.request(
                request.method, request.url, headers=request.headers, json=request.json_body
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"{name} did not respond in time. Please try again.") from e
        except httpx.RequestError as e:
            raise TransportError(f"Failed to connect to {name}: {e}") from e

        status = response.status_code
        if "application/json" not in response.headers.get("content-type", "").lower():
            log.error(f"{name} non-JSON response ({status}): {response.text[:200]!r}")
            raise MalformedResponseError(
                f"Received an invalid response from {name} (status: {status}). "
                "Please check API keys and service status."
            )

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"Failed to parse response from {name}. The API may be down.") from e

        if status in (401, 403):
            message = body.get("message") if isinstance(body, dict) else None
            raise AuthenticationError(f"{name} rejected the credentials ({status}). {message or 'Check the keys in the Settings.'}")

        failure = backend.business_error(body, status)
        if failure:
            raise RemoteBusinessError(failure, remote_status=status)

        if not isinstance(body, dict):
            raise MalformedResponseError(f"Unexpected response format from {name}.")
        return body
