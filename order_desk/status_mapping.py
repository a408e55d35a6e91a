"""
status_mapping.py — Canonical Status Vocabulary Mapping

The remote store speaks WooCommerce order statuses ("on-hold", "completed",
...), the dashboard speaks the closed ``OrderStatus`` enumeration. This module
holds the one table that translates between them in both directions.

The inbound direction is total: every known remote status maps to a local
status, and unknown ones fall back to a default. The outbound direction may be
partial, but only through an explicitly declared ``unmapped`` set. Tables are
validated when a ``StatusMapping`` is constructed, so a broken table fails at
import time rather than on the first update.
"""

import logging
from typing import Dict, Iterable, Mapping, Optional

from .errors import UnmappedStatusError
from .models import OrderStatus

log = logging.getLogger(__name__)


class StatusMapping:
    """
    Bidirectional mapping between remote status strings and ``OrderStatus``.

    Args:
        inbound (Mapping[str, OrderStatus]): Remote status -> local status.
        outbound (Mapping[OrderStatus, str]): Local status -> remote status.
            Several local statuses may collapse onto the same remote value.
        unmapped (Iterable[OrderStatus]): Local statuses that deliberately have
            no remote counterpart.
        default (OrderStatus): Local status for unknown remote values.

    Raises:
        ValueError: If a local status is neither mapped nor declared unmapped,
            is both, or maps to a remote value missing from ``inbound``.
    """

    def __init__(
            self,
            inbound: Mapping[str, OrderStatus],
            outbound: Mapping[OrderStatus, str],
            unmapped: Iterable[OrderStatus] = (),
            default: OrderStatus = OrderStatus.PENDING,
    ):
        self._inbound: Dict[str, OrderStatus] = {k.lower(): v for k, v in inbound.items()}
        self._outbound: Dict[OrderStatus, str] = dict(outbound)
        self.unmapped = frozenset(unmapped)
        self.default = default
        self._validate()

    def _validate(self):
        both = self.unmapped & set(self._outbound)
        if both:
            raise ValueError(f"Statuses declared unmapped but also mapped: {sorted(s.value for s in both)}")

        missing = [s for s in OrderStatus if s not in self._outbound and s not in self.unmapped]
        if missing:
            raise ValueError(
                f"Statuses without an outbound mapping: {[s.value for s in missing]}. "
                f"Map them or declare them unmapped."
            )

        unknown = {v for v in self._outbound.values() if v not in self._inbound}
        if unknown:
            raise ValueError(f"Outbound values unknown to the inbound table: {sorted(unknown)}")

    @property
    def remote_statuses(self):
        return list(self._inbound)

    def to_local(self, remote_status: Optional[str]) -> OrderStatus:
        """Translate a remote status string; unknown values fall back to the default."""
        key = (remote_status or "").strip().lower()
        if key in self._inbound:
            return self._inbound[key]
        log.warning(f"Unknown remote status {remote_status!r}, using {self.default.value}.")
        return self.default

    def to_remote(self, status) -> str:
        """
        Translate a local status into the remote vocabulary.

        Args:
            status (OrderStatus | str): Local status or its string value.

        Returns:
            str: The remote status value to send.

        Raises:
            UnmappedStatusError: If there is no remote counterpart.
        """
        try:
            local = OrderStatus(status)
        except ValueError:
            raise UnmappedStatusError(f"Unknown status mapping for: {status}") from None

        if local not in self._outbound:
            raise UnmappedStatusError(
                f"Status '{local.value}' has no equivalent in the remote store and cannot be sent."
            )
        return self._outbound[local]


# Remote "completed" is the only terminal success state in WooCommerce, so
# Shipped and Delivered both collapse onto it.
WOOCOMMERCE_STATUSES = StatusMapping(
    inbound={
        "pending": OrderStatus.PENDING,
        "processing": OrderStatus.PROCESSING,
        "on-hold": OrderStatus.PENDING,
        "completed": OrderStatus.DELIVERED,
        "cancelled": OrderStatus.CANCELLED,
        "refunded": OrderStatus.CANCELLED,
        "failed": OrderStatus.CANCELLED,
    },
    outbound={
        OrderStatus.PENDING: "pending",
        OrderStatus.PROCESSING: "processing",
        OrderStatus.SHIPPED: "completed",
        OrderStatus.DELIVERED: "completed",
        OrderStatus.CANCELLED: "cancelled",
    },
)

# Remote statuses counted by customer-history aggregation
DELIVERED_REMOTE_STATUSES = frozenset({"completed"})
RETURNED_REMOTE_STATUSES = frozenset({"cancelled", "refunded", "failed"})
