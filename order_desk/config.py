"""
config.py — Runtime Settings for Order Desk

All settings come from environment variables with sensible defaults, so the
service runs unchanged on a laptop, in Docker, or in tests.
"""

import os
from pathlib import Path

# Courier endpoints
STEADFAST_BASE_URL = os.environ.get("STEADFAST_BASE_URL", "https://portal.steadfast.com.bd")
PATHAO_BASE_URL = os.environ.get("PATHAO_BASE_URL", "https://api-hermes.pathao.com")

# Outbound HTTP timeouts (seconds)
HTTP_CONNECT_TIMEOUT = float(os.environ.get("ORDER_DESK_CONNECT_TIMEOUT", "5.0"))
HTTP_READ_TIMEOUT = float(os.environ.get("ORDER_DESK_READ_TIMEOUT", "15.0"))

# Number of orders requested per list call from the WooCommerce REST API
WOOCOMMERCE_PAGE_SIZE = int(os.environ.get("WOOCOMMERCE_PAGE_SIZE", "30"))

# Scheme the operator's browser uses to reach this application. An "https"
# origin cannot call an "http" store (mixed content).
APP_ORIGIN_SCHEME = os.environ.get("ORDER_DESK_APP_SCHEME", "https")

CREDENTIALS_FILE = Path(
    os.environ.get("ORDER_DESK_CREDENTIALS_FILE", str(Path.home() / ".order_desk" / "credentials.json"))
)

LOG_FILE = os.environ.get("ORDER_DESK_LOG_FILE", "order_desk.log")
