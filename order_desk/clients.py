"""
clients.py — Order Gateway for the Remote Store (WooCommerce REST)

This module provides the communication client for the remote store that owns
all order data. It translates between the local ``Order`` model and the
store's REST representation and turns every transport failure into one of the
distinct, user-facing error categories from ``errors.py``.

Two deployment variants are supported:
    - PLUGIN: the Order Manager connector plugin (``/wp-json/order-manager/v1``),
      bearer API key, records already in the dashboard's shape.
    - WOOCOMMERCE: the standard WooCommerce REST API (``/wp-json/wc/v3``),
      basic auth with an application password, native WooCommerce records.

Request pipeline (per call):
    1. Mixed-content check (HTTPS application -> HTTP store) before any request.
    2. Request ``<site>/wp-json<route>``.
    3. On 404 or a non-JSON answer, retry once via ``<site>/?rest_route=<route>``,
       which works on sites without pretty permalinks.
    4. Classify: 401/403, 404, non-JSON, other non-2xx, invalid JSON.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Tuple
from urllib.parse import urlsplit

import httpx
from pydantic import ValidationError

from .config import APP_ORIGIN_SCHEME, HTTP_CONNECT_TIMEOUT, HTTP_READ_TIMEOUT, WOOCOMMERCE_PAGE_SIZE
from .errors import (
    AuthenticationError,
    ConfigurationError,
    MalformedResponseError,
    NotFoundError,
    RemoteBusinessError,
    TransportError,
)
from .models import ApiVariant, ConnectionCredentials, CustomerHistory, Order, OrderItem, OrderStatus
from .status_mapping import (
    DELIVERED_REMOTE_STATUSES,
    RETURNED_REMOTE_STATUSES,
    WOOCOMMERCE_STATUSES,
    StatusMapping,
)

log = logging.getLogger(__name__)


def _is_json(response: httpx.Response) -> bool:
    return "application/json" in response.headers.get("content-type", "").lower()


def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:512].lower()
    return head.startswith("<!doctype html") or "<html" in head


# --- Store API variants ---

class StoreApi(ABC):
    """
    Variant-specific routes, verbs and record parsing of a remote store API.
    """
    variant: ApiVariant
    namespace: str
    update_method: str
    auth_hint: str

    def __init__(self, mapping: StatusMapping):
        self.mapping = mapping

    @property
    def orders_route(self) -> str:
        return f"{self.namespace}/orders"

    def order_route(self, order_id: str) -> str:
        return f"{self.namespace}/orders/{order_id}"

    def list_params(self) -> Dict[str, Any]:
        return {}

    @abstractmethod
    def parse_order(self, payload: Mapping[str, Any]) -> Order:
        """Convert a raw record into an :class:`Order`."""

    @abstractmethod
    def history_request(self, identifier: str) -> Tuple[str, Dict[str, Any]]:
        """Return route and query parameters of the customer-history lookup."""

    @abstractmethod
    def parse_history(self, data: Any) -> CustomerHistory:
        """Convert the customer-history answer into a :class:`CustomerHistory`."""


class PluginStoreApi(StoreApi):
    """Order Manager connector plugin; keyed by customer e-mail for history."""

    variant = ApiVariant.PLUGIN
    namespace = "/order-manager/v1"
    update_method = "POST"
    auth_hint = "Please check the API key shown in the Order Manager plugin settings."

    def parse_order(self, payload: Mapping[str, Any]) -> Order:
        record = dict(payload)
        status = record.get("status")
        try:
            record["status"] = OrderStatus(status)
        except ValueError:
            # The plugin passes unknown WooCommerce statuses through capitalised
            record["status"] = self.mapping.to_local(status)

        items = []
        for item in record.get("items") or []:
            item = dict(item)
            # wp_get_attachment_image_url() yields false when there is no image
            if not item.get("imageUrl"):
                item["imageUrl"] = None
            items.append(item)
        record["items"] = items
        return Order.model_validate(record)

    def history_request(self, identifier: str) -> Tuple[str, Dict[str, Any]]:
        return f"{self.namespace}/customer-history", {"email": identifier}

    def parse_history(self, data: Any) -> CustomerHistory:
        if not isinstance(data, dict):
            raise MalformedResponseError("Customer history response has an unexpected format.")
        delivered = int(data.get("delivered") or 0)
        returned = int(data.get("returned") or 0)
        pending = int(data.get("pending") or 0)
        return CustomerHistory(
            total_parcels=delivered + returned + pending,
            delivered=delivered,
            returned=returned,
            pending=pending,
        )


class WooCommerceStoreApi(StoreApi):
    """Standard WooCommerce v3 REST API; history is aggregated from an order search."""

    variant = ApiVariant.WOOCOMMERCE
    namespace = "/wc/v3"
    update_method = "PUT"
    auth_hint = "Please check your Username and Application Password."

    def list_params(self) -> Dict[str, Any]:
        return {"per_page": WOOCOMMERCE_PAGE_SIZE}

    def parse_order(self, payload: Mapping[str, Any]) -> Order:
        billing = payload.get("billing") or {}
        shipping = payload.get("shipping") or {}

        items = []
        for line in payload.get("line_items") or []:
            quantity = int(line.get("quantity") or 0)
            if quantity <= 0:
                log.warning(f"[Order: {payload.get('id')}] Skipping line item {line.get('id')} with quantity {quantity}.")
                continue
            image = line.get("image") or {}
            items.append(OrderItem(
                id=str(line.get("id")),
                name=str(line.get("name") or ""),
                quantity=quantity,
                price=line.get("price") or line.get("subtotal"),
                image_url=image.get("src") or None,
            ))

        customer_name = f"{billing.get('first_name') or ''} {billing.get('last_name') or ''}".strip()

        return Order(
            id=str(payload["id"]),
            customer_name=customer_name or "Guest",
            customer_email=billing.get("email") or payload.get("billing_email") or "",
            customer_phone=billing.get("phone") or payload.get("billing_phone") or "",
            order_date=payload.get("date_created") or "",
            status=self.mapping.to_local(payload.get("status")),
            items=items,
            total=payload.get("total"),
            shipping_address=self._format_address(shipping, billing),
        )

    @staticmethod
    def _format_address(shipping: Mapping[str, Any], billing: Mapping[str, Any]) -> str:
        first = shipping.get("first_name") or billing.get("first_name") or ""
        last = shipping.get("last_name") or billing.get("last_name") or ""

        city_line = ""
        if shipping.get("city") or shipping.get("state") or shipping.get("postcode"):
            city_line = f"{shipping.get('city') or ''}, {shipping.get('state') or ''} {shipping.get('postcode') or ''}"

        parts = [
            f"{first} {last}",
            shipping.get("company"),
            shipping.get("address_1"),
            shipping.get("address_2"),
            city_line,
            shipping.get("country"),
        ]
        lines = [str(part).strip() for part in parts if part and str(part).strip()]
        return "\n".join(lines) or "No address provided"

    def history_request(self, identifier: str) -> Tuple[str, Dict[str, Any]]:
        return self.orders_route, {"search": identifier, "status": "any", "per_page": 100}

    def parse_history(self, data: Any) -> CustomerHistory:
        if not isinstance(data, list):
            raise MalformedResponseError("Customer history response has an unexpected format.")
        delivered = returned = pending = 0
        for record in data:
            status = str((record or {}).get("status") or "").lower()
            if status in DELIVERED_REMOTE_STATUSES:
                delivered += 1
            elif status in RETURNED_REMOTE_STATUSES:
                returned += 1
            else:
                pending += 1
        return CustomerHistory(
            total_parcels=len(data),
            delivered=delivered,
            returned=returned,
            pending=pending,
        )


# --- Order Gateway ---

class OrderGateway:
    """
    Client for the remote store.
    Handles order listing, status updates and customer-history lookups.

    Args:
        client (Optional[httpx.AsyncClient]): HTTP client to use. A client with
            the configured timeouts is created when omitted.
        mapping (StatusMapping): Status vocabulary table.
        app_scheme (str): Scheme of the application origin, used for the
            mixed-content check.
    """

    def __init__(
            self,
            client: Optional[httpx.AsyncClient] = None,
            mapping: StatusMapping = WOOCOMMERCE_STATUSES,
            app_scheme: str = APP_ORIGIN_SCHEME,
    ):
        timeout_config = httpx.Timeout(HTTP_CONNECT_TIMEOUT, read=HTTP_READ_TIMEOUT)
        self.client = client or httpx.AsyncClient(timeout=timeout_config)
        self.mapping = mapping
        self.app_scheme = (app_scheme or "").lower()
        self._apis: Dict[ApiVariant, StoreApi] = {
            ApiVariant.PLUGIN: PluginStoreApi(mapping),
            ApiVariant.WOOCOMMERCE: WooCommerceStoreApi(mapping),
        }

    async def close(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    # --- Operations ---

    async def fetch_orders(self, credentials: ConnectionCredentials) -> List[Order]:
        """
        Fetches the current order list from the remote store.

        Args:
            credentials (ConnectionCredentials): Site URL, auth header and variant.

        Returns:
            List[Order]: Normalized orders with local statuses.

        Raises:
            ConfigurationError: If credentials are missing.
            AuthenticationError, NotFoundError, TransportError,
            MalformedResponseError, RemoteBusinessError: See module docstring.
        """
        api = self._api(credentials)
        data = await self._request_json(credentials, api, "GET", api.orders_route, params=api.list_params())

        if not isinstance(data, list):
            raise MalformedResponseError(
                "Unexpected response from the store: expected a list of orders. "
                "Make sure the Site URL points at your WordPress site."
            )

        orders = [self._parse(api, record) for record in data]
        log.info(f"Fetched {len(orders)} orders from {credentials.site_url} ({api.variant.value}).")
        return orders

    async def update_order_status(self, order_id: str, new_status, credentials: ConnectionCredentials) -> Order:
        """
        Sends a status change for one order.

        The local status is translated before any request is made, so an
        unmapped status never reaches the network.

        Args:
            order_id (str): Remote order id.
            new_status (OrderStatus | str): Target local status.
            credentials (ConnectionCredentials): Connection credentials.

        Returns:
            Order: The updated order as reported by the store.

        Raises:
            UnmappedStatusError: If the status has no remote counterpart.
            AuthenticationError, NotFoundError, TransportError,
            MalformedResponseError, RemoteBusinessError: On remote failures.
        """
        remote_status = self.mapping.to_remote(new_status)
        api = self._api(credentials)

        log.info(f"[Order: {order_id}] Sending status '{remote_status}' to {credentials.site_url}.")
        data = await self._request_json(
            credentials, api, api.update_method, api.order_route(order_id), json={"status": remote_status}
        )

        if not isinstance(data, dict):
            raise MalformedResponseError("Unexpected response from the store after the status update.")
        return self._parse(api, data)

    async def fetch_customer_history(self, identifier: str, credentials: ConnectionCredentials) -> CustomerHistory:
        """
        Aggregates the store's own order history for one customer.

        Args:
            identifier (str): Customer e-mail (plugin variant) or e-mail/phone
                (WooCommerce variant).
            credentials (ConnectionCredentials): Connection credentials.

        Returns:
            CustomerHistory: Delivered / returned / pending counts.
        """
        if not identifier:
            raise ConfigurationError("A customer e-mail or phone number is required to look up the history.")
        api = self._api(credentials)
        route, params = api.history_request(identifier)
        data = await self._request_json(credentials, api, "GET", route, params=params)
        return api.parse_history(data)

    # --- Internals ---

    def _api(self, credentials: Optional[ConnectionCredentials]) -> StoreApi:
        if credentials is None or not credentials.site_url or not credentials.auth_header:
            raise ConfigurationError("Connect your store first: Site URL and credentials are required.")
        return self._apis[credentials.variant]

    @staticmethod
    def _parse(api: StoreApi, record: Any) -> Order:
        if not isinstance(record, Mapping):
            raise MalformedResponseError("Unexpected order record in the store response.")
        try:
            return api.parse_order(record)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            log.error(f"[Order: {record.get('id')}] Could not parse order record: {e}")
            raise MalformedResponseError(
                f"Order {record.get('id', '?')} in the store response has an unexpected format."
            ) from e

    def _check_mixed_content(self, site_url: str):
        if self.app_scheme == "https" and urlsplit(site_url).scheme.lower() == "http":
            raise TransportError(
                "Security Error: Mixed Content.\n\n"
                "This app is running on HTTPS (Secure), but your site is HTTP (Insecure). "
                "Browsers block this connection for your safety.\n\n"
                "Solution: You must enable SSL (HTTPS) on your WordPress site to use it with this app."
            )

    async def _send(self, method: str, url: str, headers: Dict[str, str], params=None, json=None) -> httpx.Response:
        try:
            return await self.client.request(method, url, headers=headers, params=params, json=json)
        except httpx.TimeoutException as e:
            log.error(f"Timeout calling {url}: {e!r}")
            raise TransportError(f"The store at {urlsplit(url).netloc} did not respond in time. Please try again.") from e
        except httpx.RequestError as e:
            log.error(f"Connection to {url} failed: {e!r}")
            raise TransportError(
                "Connection Blocked.\n\n"
                f"Could not reach {urlsplit(url).netloc}. The site may be offline, or it is blocking "
                "cross-origin requests (CORS).\n\n"
                "Solution: Check the Site URL, or install the connector plugin / a \"WP CORS\" plugin "
                "on your WordPress site to allow connections from this app."
            ) from e

    async def _request_json(
            self,
            credentials: ConnectionCredentials,
            api: StoreApi,
            method: str,
            route: str,
            params: Optional[Dict[str, Any]] = None,
            json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        base_url = credentials.site_url.rstrip("/")
        self._check_mixed_content(base_url)

        headers = {"Authorization": credentials.auth_header, "Accept": "application/json"}
        response = await self._send(method, f"{base_url}/wp-json{route}", headers, params=params, json=json)

        if response.status_code == 404 or not _is_json(response):
            log.info(f"{method} {route} answered {response.status_code} without JSON, retrying via rest_route.")
            fallback_params = {"rest_route": route, **(params or {})}
            try:
                fallback = await self._send(method, f"{base_url}/", headers, params=fallback_params, json=json)
            except TransportError:
                fallback = None
            if fallback is not None and _is_json(fallback):
                response = fallback

        return self._classify(response, api)

    @staticmethod
    def _classify(response: httpx.Response, api: StoreApi) -> Any:
        status = response.status_code

        if status in (401, 403):
            raise AuthenticationError(f"Authorization failed ({status}). {api.auth_hint}")

        if status == 404:
            body = None
            if _is_json(response):
                try:
                    body = response.json()
                except ValueError:
                    body = None
            code = body.get("code") if isinstance(body, dict) else None
            if code and code != "rest_no_route" and body.get("message"):
                raise NotFoundError(f"Not found (404): {body['message']}")
            raise NotFoundError(
                "API Endpoint Not Found (404). Make sure WooCommerce (or the connector plugin) is "
                "installed and Permalinks are set to 'Post name'."
            )

        if not _is_json(response):
            if _looks_like_html(response.text):
                raise MalformedResponseError(
                    f"Connection Error: The site returned HTML instead of JSON data (Status: {status}).\n"
                    "Check if your Permalink settings are saved, or if a security plugin is blocking the API."
                )
            raise MalformedResponseError(f"Invalid response received from server (Status: {status}).")

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"The server response could not be read as JSON (Status: {status}).") from e

        if not response.is_success:
            message = data.get("message") if isinstance(data, dict) else None
            raise RemoteBusinessError(message or f"Server returned status: {status}", remote_status=status)

        return data
