"""
main.py — FastAPI Entry Point for Order Desk

This module provides the JSON API the dashboard front end talks to. It is a
thin layer over the ``OrderLifecycleController``; every rule about orders,
statuses and bookings lives in the controller and the gateways.

Responsibilities:
    • Session handling (login / logout) and store connection
    • Order list, refresh, detail, selection and status changes
    • Courier booking, courier settings and customer delivery history
    • Translating domain errors into JSON error responses
    • Provide system health information
"""

from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import CREDENTIALS_FILE
from .controller import OrderLifecycleController
from .couriers import HistoryReport
from .credential_store import JsonFileCredentialStore, basic_auth_header, bearer_auth_header, normalize_site_url
from .errors import ConfigurationError, OrderDeskError
from .logging_config import get_logger, setup_logging
from .models import ApiVariant, BookingResult, CamelModel, Courier, CourierCredentials, CustomerHistory, Order

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Order Desk")

_controller: Optional[OrderLifecycleController] = None


async def get_controller() -> OrderLifecycleController:
    """Returns the process-wide controller, created on first use."""
    global _controller
    if _controller is None:
        _controller = OrderLifecycleController(JsonFileCredentialStore(CREDENTIALS_FILE))
        log.info(f"Controller initialized with credential file {CREDENTIALS_FILE}.")
    return _controller


async def require_login(controller: OrderLifecycleController = Depends(get_controller)) -> OrderLifecycleController:
    if not controller.is_logged_in:
        raise HTTPException(status_code=401, detail="Please log in first.")
    return controller


async def require_connection(controller: OrderLifecycleController = Depends(require_login)) -> OrderLifecycleController:
    if not controller.is_connected:
        raise ConfigurationError("Connect your store first: Site URL and credentials are required.")
    return controller


@app.on_event("shutdown")
async def on_shutdown():
    """Closes the HTTP clients of the controller's gateways."""
    if _controller is not None:
        await _controller.close()
        log.info("Gateway clients closed.")


@app.exception_handler(OrderDeskError)
async def order_desk_error_handler(request: Request, exc: OrderDeskError):
    log.warning(f"{request.method} {request.url.path} -> {exc.error_type}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"errorType": exc.error_type, "message": exc.message},
    )


# --- Request / response bodies ---

class ConnectRequest(CamelModel):
    """
    Connection wizard payload.

    The plugin variant needs ``api_key``; the WooCommerce variant needs
    ``username`` and ``app_password``.
    """
    site_url: str
    variant: ApiVariant = ApiVariant.PLUGIN
    api_key: Optional[str] = None
    username: Optional[str] = None
    app_password: Optional[str] = None


class StatusUpdateRequest(BaseModel):
    status: str


class BookingRequest(BaseModel):
    courier: str


class CourierSettingsRequest(CamelModel):
    courier: Courier
    api_key: Optional[str] = None
    secret_key: Optional[str] = None
    store_id: Optional[str] = None


class OrdersState(CamelModel):
    orders: List[Order]
    is_connected: bool
    is_loading: bool
    site_url: Optional[str] = None
    selected_order: Optional[Order] = None
    error: Optional[str] = None
    update_error: Optional[str] = None


class StatusUpdateResponse(CamelModel):
    success: bool
    order: Optional[Order] = None
    update_error: Optional[str] = None


class HistoryResponse(CamelModel):
    couriers: HistoryReport
    store: Optional[CustomerHistory] = None
    store_error: Optional[str] = None


def _state(controller: OrderLifecycleController) -> OrdersState:
    credentials = controller.credentials
    return OrdersState(
        orders=controller.orders,
        is_connected=credentials is not None,
        is_loading=controller.is_loading,
        site_url=credentials.site_url if credentials else None,
        selected_order=controller.selected_order,
        error=controller.error,
        update_error=controller.update_error,
    )


# --- Session & connection ---

@app.post("/v1/session")
async def login(controller: OrderLifecycleController = Depends(get_controller)):
    controller.login()
    return {"isLoggedIn": True}


@app.delete("/v1/session")
async def logout(controller: OrderLifecycleController = Depends(get_controller)):
    controller.logout()
    return {"isLoggedIn": False}


@app.post("/v1/connection", response_model=OrdersState)
async def connect(body: ConnectRequest, controller: OrderLifecycleController = Depends(require_login)):
    """
    Stores the store connection and loads the first order list.

    Returns:
        OrdersState: Orders plus a possible fetch error. A failing first fetch
        does not undo the connection; the operator can retry or re-enter the
        credentials.
    """
    site_url = normalize_site_url(body.site_url)
    if body.variant == ApiVariant.WOOCOMMERCE:
        auth_header = basic_auth_header(body.username, body.app_password)
    else:
        auth_header = bearer_auth_header(body.api_key)

    await controller.connect(site_url, auth_header, body.variant)
    return _state(controller)


# --- Orders ---

@app.get("/v1/orders", response_model=OrdersState)
async def list_orders(controller: OrderLifecycleController = Depends(require_login)):
    return _state(controller)


@app.post("/v1/orders/refresh", response_model=OrdersState)
async def refresh_orders(controller: OrderLifecycleController = Depends(require_connection)):
    await controller.load_orders()
    return _state(controller)


@app.get("/v1/orders/{order_id}", response_model=Order)
async def get_order(order_id: str, controller: OrderLifecycleController = Depends(require_login)):
    return controller.get_order(order_id)


@app.put("/v1/selection/{order_id}", response_model=Order)
async def select_order(order_id: str, controller: OrderLifecycleController = Depends(require_login)):
    """Opens the order in the detail view; refreshes keep the selection current."""
    return controller.select_order(order_id)


@app.delete("/v1/selection")
async def clear_selection(controller: OrderLifecycleController = Depends(require_login)):
    controller.clear_selection()
    return {"selectedOrder": None}


@app.put("/v1/orders/{order_id}/status", response_model=StatusUpdateResponse)
async def update_status(
        order_id: str,
        body: StatusUpdateRequest,
        controller: OrderLifecycleController = Depends(require_connection),
):
    """
    Changes an order's status.

    A failed remote update answers 200 with ``success=false`` and the
    resynchronized order, because the local state has already been repaired.
    """
    controller.get_order(order_id)
    success = await controller.update_status(order_id, body.status)
    return StatusUpdateResponse(
        success=success,
        order=controller.find_order(order_id),
        update_error=controller.update_error,
    )


@app.post("/v1/orders/{order_id}/courier", response_model=BookingResult)
async def book_order(
        order_id: str,
        body: BookingRequest,
        controller: OrderLifecycleController = Depends(require_connection),
):
    return await controller.book_order(order_id, body.courier)


@app.get("/v1/orders/{order_id}/history", response_model=HistoryResponse)
async def customer_history(order_id: str, controller: OrderLifecycleController = Depends(require_connection)):
    """Courier delivery histories of the order's customer, plus the store's own view."""
    report = await controller.customer_histories(order_id)
    response = HistoryResponse(couriers=report)
    try:
        response.store = await controller.store_history(order_id)
    except OrderDeskError as e:
        response.store_error = e.message
    return response


# --- Settings ---

@app.get("/v1/settings/couriers", response_model=Dict[Courier, CourierCredentials])
async def courier_settings(controller: OrderLifecycleController = Depends(require_login)):
    return controller.courier_settings()


@app.put("/v1/settings/couriers", response_model=Dict[Courier, CourierCredentials])
async def save_courier_settings(body: CourierSettingsRequest, controller: OrderLifecycleController = Depends(require_login)):
    controller.save_courier_settings(
        body.courier,
        CourierCredentials(api_key=body.api_key, secret_key=body.secret_key, store_id=body.store_id),
    )
    return controller.courier_settings()


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
