"""
mock_pathao.py — Mock Implementation of the Pathao Courier API (REST)

Simulated Pathao (Aladdin) endpoints for testing courier bookings and history
lookups.

Simulation Scenarios:
    • Token "pt_invalid"          → 401 Unauthorized
    • Unknown store id            → 422 with field errors
    • Phone number "000"          → 422 with field errors
    • Anything else               → Order created with a consignment id

Endpoints:
    POST /aladdin/api/v1/orders        — Creates a delivery order.
    POST /aladdin/api/v1/user/success  — Delivery statistics for one phone number.

Port:
    Default: 8012 (HTTP)
"""

import logging
import uuid
from typing import Any, Dict, List

from fastapi import FastAPI, Header
from fastapi.responses import JSONResponse
from pydantic import BaseModel

log = logging.getLogger(__name__)

STORE_ID = "148"

DEFAULT_CUSTOMERS = {
    "01711000001": {"total_delivery": 5, "successful_delivery": 4, "returned_delivery": 0},
}


class PathaoOrderRequest(BaseModel):
    store_id: str
    merchant_order_id: str
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    amount_to_collect: str
    item_quantity: int
    item_weight: float
    item_description: str = ""


class PhoneRequest(BaseModel):
    phone: str


class MockPathao:
    def __init__(self):
        self.orders: List[Dict[str, Any]] = []
        self.history_calls: List[str] = []
        self.customers: Dict[str, Dict[str, int]] = dict(DEFAULT_CUSTOMERS)


def _unauthorized() -> JSONResponse:
    return JSONResponse(status_code=401, content={"message": "Unauthorized", "type": "error", "code": 401})


def _invalid(errors: Dict[str, List[str]]) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"message": "Please fix the given errors", "type": "error", "code": 422, "errors": errors},
    )


def build_app(state: MockPathao) -> FastAPI:
    app = FastAPI(title="Mock Pathao")

    def _authorized(authorization: str) -> bool:
        return authorization.startswith("Bearer ") and authorization != "Bearer pt_invalid"

    @app.post("/aladdin/api/v1/orders")
    def create_order(request: PathaoOrderRequest, authorization: str = Header("")):
        log.info(f"[PT] Order request for {request.merchant_order_id}")
        state.orders.append(request.model_dump())

        if not _authorized(authorization):
            return _unauthorized()
        if request.store_id != STORE_ID:
            return _invalid({"store_id": ["The selected store id is invalid."]})
        if request.recipient_phone == "000":
            return _invalid({"recipient_phone": ["The recipient phone format is invalid."]})

        return {
            "message": "Order Created Successfully",
            "type": "success",
            "code": 200,
            "data": {
                "consignment_id": f"DA{uuid.uuid4().hex[:10].upper()}",
                "merchant_order_id": request.merchant_order_id,
                "order_status": "Pending",
                "delivery_fee": 60,
            },
        }

    @app.post("/aladdin/api/v1/user/success")
    def customer_success(request: PhoneRequest, authorization: str = Header("")):
        state.history_calls.append(request.phone)
        if not _authorized(authorization):
            return _unauthorized()
        customer = state.customers.get(request.phone)
        if customer is None:
            return JSONResponse(
                status_code=404,
                content={"message": "Customer phone not found in Pathao records.", "type": "error", "code": 404},
            )
        return {"message": "Successfully fetched user data", "type": "success", "code": 200, "data": {"customer": customer}}

    return app


state = MockPathao()
app = build_app(state)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8012)
