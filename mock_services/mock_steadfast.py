"""
mock_steadfast.py — Mock Implementation of the Steadfast Courier API (REST)

Simulated Steadfast endpoints for testing courier bookings and history lookups.

Simulation Scenarios (by API key):
    • Starts with "sf_reject_" → booking rejected inside a 200 body (status 400)
    • Starts with "sf_html_"   → HTML maintenance page instead of JSON
    • Any other key            → Successful booking
    • Invoice starting with "NOTRACK" → success without a tracking code

Endpoints:
    POST /api/v1/create_order           — Creates a consignment.
    GET  /api/v1/courier_score/{phone}  — Parcel statistics for one phone number.

Port:
    Default: 8011 (HTTP)
"""

import logging
import uuid
from typing import Any, Dict, List

from fastapi import FastAPI, Header
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel

log = logging.getLogger(__name__)

SECRET_KEY = "sf_secret"

DEFAULT_SCORES = {
    "01711000001": {"total_parcel": 10, "success_parcel": 8, "cancelled_parcel": 1},
    "01711000004": {"total_parcel": 2, "success_parcel": 2, "cancelled_parcel": 0},
}


class CreateOrderRequest(BaseModel):
    """
    Represents a Steadfast consignment request.

    Attributes:
        invoice (str): Merchant order id.
        recipient_name (str): Customer name.
        recipient_phone (str): Customer phone number.
        recipient_address (str): Single-line delivery address.
        cod_amount (float): Cash to collect on delivery.
        note (str): Free-text note for the rider.
    """
    invoice: str
    recipient_name: str
    recipient_phone: str
    recipient_address: str
    cod_amount: float
    note: str = ""


class MockSteadfast:
    def __init__(self):
        self.bookings: List[Dict[str, Any]] = []
        self.history_calls: List[str] = []
        self.scores: Dict[str, Dict[str, int]] = dict(DEFAULT_SCORES)


def build_app(state: MockSteadfast) -> FastAPI:
    app = FastAPI(title="Mock Steadfast")

    def _authorized(api_key: str, secret_key: str) -> bool:
        return bool(api_key) and secret_key == SECRET_KEY

    @app.post("/api/v1/create_order")
    def create_order(
            request: CreateOrderRequest,
            api_key: str = Header("", alias="Api-Key"),
            secret_key: str = Header("", alias="Secret-Key"),
    ):
        """
        Creates a consignment for the given invoice.

        Returns:
            dict: Steadfast envelope with ``consignment.tracking_code``.
        """
        log.info(f"[SF] Booking request for invoice {request.invoice}")
        state.bookings.append(request.model_dump())

        if not _authorized(api_key, secret_key):
            return JSONResponse(status_code=401, content={"status": 401, "message": "Unauthorized. Invalid API credentials."})

        if api_key.startswith("sf_html_"):
            return HTMLResponse("<!DOCTYPE html><html><body>Down for maintenance</body></html>")

        if api_key.startswith("sf_reject_"):
            log.warning(f"[SF] Booking for {request.invoice} rejected.")
            return {"status": 400, "message": "Invalid recipient phone number."}

        consignment = {
            "consignment_id": len(state.bookings) + 1000,
            "invoice": request.invoice,
            "recipient_name": request.recipient_name,
            "cod_amount": request.cod_amount,
            "status": "in_review",
        }
        if not request.invoice.startswith("NOTRACK"):
            consignment["tracking_code"] = f"SF{uuid.uuid4().hex[:8].upper()}"

        return {"status": 200, "message": "Consignment has been created successfully.", "consignment": consignment}

    @app.get("/api/v1/courier_score/{phone}")
    def courier_score(
            phone: str,
            api_key: str = Header("", alias="Api-Key"),
            secret_key: str = Header("", alias="Secret-Key"),
    ):
        state.history_calls.append(phone)
        if not _authorized(api_key, secret_key):
            return JSONResponse(status_code=401, content={"status": 401, "message": "Unauthorized. Invalid API credentials."})
        if phone not in state.scores:
            return JSONResponse(status_code=404, content={"status": 404, "message": "Customer phone not found in Steadfast records."})
        return state.scores[phone]

    return app


state = MockSteadfast()
app = build_app(state)


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8011)
