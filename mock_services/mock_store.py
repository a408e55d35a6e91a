"""
mock_store.py — Mock Implementation of the Remote Store (WordPress + WooCommerce)

This module provides a simulated WordPress site for developing and testing the
Order Gateway. It serves both REST APIs the dashboard can connect to:

    • Standard WooCommerce REST API  — /wp-json/wc/v3/...           (Basic auth)
    • Order Manager connector plugin — /wp-json/order-manager/v1/... (Bearer key)

Every route is also reachable as ``/?rest_route=<route>``, just like WordPress.

Simulation Scenarios (flags on ``MockStore``):
    • permalinks_enabled=False — /wp-json/* answers an HTML 404 page
    • html_login=True          — every request answers an HTML login page (200)
    • fail_updates=True        — status updates answer 500 with an error message
    • broken_json=True         — list calls answer invalid JSON with a JSON content type

Port:
    Default: 8010 (HTTP)
"""

import base64
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

log = logging.getLogger(__name__)

API_KEY = "omc_test_key"
USERNAME = "shop_admin"
APP_PASSWORD = "abcd efgh ijkl mnop"

WC_STATUSES = ["pending", "processing", "on-hold", "completed", "cancelled", "refunded", "failed"]

LOGIN_PAGE = "<!DOCTYPE html><html><head><title>Log In</title></head><body><form id=\"loginform\"></form></body></html>"
NOT_FOUND_PAGE = "<!DOCTYPE html><html><head><title>Page not found</title></head><body>404</body></html>"

PLUGIN_STATUS_MAP = {
    "pending": "Pending",
    "processing": "Processing",
    "on-hold": "Pending",
    "completed": "Delivered",
    "cancelled": "Cancelled",
    "refunded": "Cancelled",
    "failed": "Cancelled",
}


def _wc_order(order_id, status, total, first, last, email, phone, items, city="Dhaka"):
    return {
        "id": order_id,
        "status": status,
        "date_created": "2024-05-10T14:30:00",
        "total": total,
        "billing": {"first_name": first, "last_name": last, "email": email, "phone": phone},
        "shipping": {
            "first_name": first,
            "last_name": last,
            "company": "",
            "address_1": "House 12, Road 5",
            "address_2": "",
            "city": city,
            "state": "BD-13",
            "postcode": "1207",
            "country": "BD",
        },
        "line_items": items,
    }


def sample_orders() -> List[Dict[str, Any]]:
    return [
        _wc_order("ORD-1", "processing", "115.98", "Ada", "Lovelace", "ada@example.com", "01711000001", [
            {"id": 11, "name": "Wireless Mouse", "quantity": 2, "price": 25.99, "subtotal": "51.98",
             "image": {"src": "https://shop.test/mouse.jpg"}},
            {"id": 12, "name": "Keyboard", "quantity": 1, "price": 64.0, "subtotal": "64.00"},
        ]),
        _wc_order(1002, "on-hold", "40.00", "Grace", "Hopper", "grace@example.com", "01711000002", [
            {"id": 21, "name": "Sticker Pack", "quantity": 4, "price": 10.0, "subtotal": "40.00"},
        ]),
        _wc_order(1003, "completed", "12.50", "Ada", "Lovelace", "ada@example.com", "01711000001", [
            {"id": 31, "name": "Mug", "quantity": 1, "price": 12.5, "subtotal": "12.50"},
        ]),
        _wc_order(1004, "refunded", "30.00", "Alan", "Turing", "alan@example.com", "01711000003", [
            {"id": 41, "name": "Notebook", "quantity": 3, "price": 10.0, "subtotal": "30.00"},
        ]),
        _wc_order(1005, "failed", "8.00", "Alan", "Turing", "alan@example.com", "01711000003", [
            {"id": 51, "name": "Pen", "quantity": 1, "price": 8.0, "subtotal": "8.00"},
        ]),
        _wc_order(1006, "cancelled", "99.00", "Ada", "Lovelace", "ada@example.com", "01711000001", [
            {"id": 61, "name": "Desk Lamp", "quantity": 1, "price": 99.0, "subtotal": "99.00"},
        ]),
        _wc_order(1007, "pending", "55.00", "Katherine", "Johnson", "katherine@example.com", "01711000004", [
            {"id": 71, "name": "Backpack", "quantity": 1, "price": 55.0, "subtotal": "55.00"},
        ]),
    ]


class MockStore:
    """In-memory WordPress site state plus the scenario flags."""

    def __init__(self, orders: Optional[List[Dict[str, Any]]] = None):
        self.orders: List[Dict[str, Any]] = copy.deepcopy(orders if orders is not None else sample_orders())
        self.permalinks_enabled = True
        self.html_login = False
        self.fail_updates = False
        self.broken_json = False
        self.requests: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []

    def find(self, order_id: str) -> Optional[Dict[str, Any]]:
        for order in self.orders:
            if str(order["id"]) == str(order_id):
                return order
        return None

    def set_status(self, order_id: str, status: str):
        self.find(order_id)["status"] = status

    def update_requests(self) -> List[Tuple[str, str, Optional[Dict[str, Any]]]]:
        return [r for r in self.requests if r[0] in ("PUT", "POST")]


def plugin_format(order: Dict[str, Any]) -> Dict[str, Any]:
    """Shape of one record as the connector plugin's omc_format_order_data() returns it."""
    billing = order["billing"]
    shipping = order["shipping"]
    status = order["status"]
    return {
        "id": str(order["id"]),
        "customerName": f"{billing['first_name']} {billing['last_name']}",
        "customerEmail": billing["email"],
        "customerPhone": billing["phone"],
        "orderDate": order["date_created"] + "+00:00",
        "status": PLUGIN_STATUS_MAP.get(status, status.capitalize()),
        "items": [
            {
                "id": item["id"],
                "name": item["name"],
                "quantity": item["quantity"],
                "price": float(item["subtotal"]) / item["quantity"],
                "imageUrl": (item.get("image") or {}).get("src") or False,
            }
            for item in order["line_items"]
        ],
        "total": float(order["total"]),
        "shippingAddress": f"{shipping['address_1']}<br/>{shipping['city']}",
    }


def _error(status: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(status_code=status, content={"code": code, "message": message, "data": {"status": status}})


def _authorized(route: str, authorization: str) -> bool:
    if route.startswith("/order-manager/v1"):
        return authorization == f"Bearer {API_KEY}"
    expected = base64.b64encode(f"{USERNAME}:{APP_PASSWORD}".encode()).decode()
    return authorization == f"Basic {expected}"


def dispatch(store: MockStore, method: str, route: str, params: Dict[str, str], body: Optional[Dict[str, Any]],
             authorization: str) -> Response:
    """Routes one REST request the way WordPress would."""
    store.requests.append((method, route, body))
    log.info(f"[STORE] {method} {route} {params or ''} {body or ''}")

    if not _authorized(route, authorization):
        return _error(401, "rest_forbidden", "Sorry, you are not allowed to do that.")

    parts = [p for p in route.split("/") if p]
    # e.g. ["wc", "v3", "orders", "1002"] or ["order-manager", "v1", "customer-history"]
    namespace, resource, tail = "/".join(parts[:2]), parts[2] if len(parts) > 2 else "", parts[3:]

    if namespace not in ("wc/v3", "order-manager/v1"):
        return _error(404, "rest_no_route", "No route was found matching the URL and request method.")
    plugin = namespace == "order-manager/v1"

    if resource == "orders" and not tail and method == "GET":
        if store.broken_json:
            return Response(content="[{\"id\": ", media_type="application/json")
        orders = store.orders
        search = params.get("search")
        if search:
            orders = [o for o in orders if search in o["billing"]["email"] or search in o["billing"]["phone"]]
        if "per_page" in params:
            orders = orders[: int(params["per_page"])]
        data = [plugin_format(o) for o in orders] if plugin else copy.deepcopy(orders)
        return JSONResponse(content=data)

    if resource == "orders" and len(tail) == 1 and method == ("POST" if plugin else "PUT"):
        order = store.find(tail[0])
        if order is None:
            return _error(404, "woocommerce_rest_shop_order_invalid_id", "Invalid ID.")
        status = (body or {}).get("status")
        if status not in WC_STATUSES:
            return _error(400, "rest_invalid_param", "Invalid parameter(s): status")
        if store.fail_updates:
            return _error(500, "update_failed", "Could not update the order: database is locked.")
        order["status"] = status
        return JSONResponse(content=plugin_format(order) if plugin else copy.deepcopy(order))

    if plugin and resource == "customer-history" and method == "GET":
        email = params.get("email")
        stats = {"delivered": 0, "returned": 0}
        for order in store.orders:
            if order["billing"]["email"] != email:
                continue
            if order["status"] == "completed":
                stats["delivered"] += 1
            elif order["status"] in ("cancelled", "refunded", "failed"):
                stats["returned"] += 1
        return JSONResponse(content=stats)

    return _error(404, "rest_no_route", "No route was found matching the URL and request method.")


def build_app(store: MockStore) -> FastAPI:
    """Creates a mock site backed by ``store``."""
    app = FastAPI(title="Mock WordPress Store")

    async def handle(request: Request, route: str) -> Response:
        if store.html_login:
            return HTMLResponse(LOGIN_PAGE)
        body = None
        if request.method in ("POST", "PUT"):
            raw = await request.body()
            body = await request.json() if raw else None
        params = {k: v for k, v in request.query_params.items() if k != "rest_route"}
        return dispatch(store, request.method, route, params, body, request.headers.get("authorization", ""))

    @app.api_route("/wp-json/{route:path}", methods=["GET", "POST", "PUT"])
    async def pretty_route(route: str, request: Request):
        if not store.permalinks_enabled:
            return HTMLResponse(NOT_FOUND_PAGE, status_code=404)
        return await handle(request, "/" + route)

    @app.api_route("/", methods=["GET", "POST", "PUT"])
    async def plain_route(request: Request):
        route = request.query_params.get("rest_route")
        if not route:
            return HTMLResponse("<!DOCTYPE html><html><body>Just another WordPress site</body></html>")
        return await handle(request, route)

    return app


store = MockStore()
app = build_app(store)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8010)
