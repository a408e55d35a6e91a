"""
controller.py — Order Lifecycle Controller

This module holds the in-memory order set shown to the operator and the rules
for changing it. It coordinates the Order Gateway, the Courier Gateway and the
Credential Store in the correct sequence.

Status change:
    1. Precondition: connection credentials present, otherwise a no-op.
    2. Apply the new status locally right away (list and selected order).
    3. Send the update to the remote store.
    4. Success: keep the local state.
    5. Failure: record ``update_error`` and refetch the whole order list
       (rollback-by-refetch), so the operator never sees a state the store
       disagrees with. If that refetch fails as well, the order's previous
       status is restored locally.

A second update for an order whose previous update is still in flight is
rejected with ``ConcurrentUpdateError``.

Booking:
    - Blocked locally when the courier's booking keys are missing.
    - On success the order gets courier and tracking id and, if it was still
      Pending, is moved to Processing through the status-change path.
    - A booked order cannot be booked again or switch courier. While one
      booking for an order is outstanding, further attempts are refused.
"""

import logging
from typing import Dict, List, Optional, Set

from .clients import OrderGateway
from .couriers import BOOKING, CourierGateway, HistoryReport
from .credential_store import (
    KEY_LOGGED_IN,
    CredentialStore,
    load_connection,
    load_courier_credentials,
    save_connection,
    save_courier_credentials,
)
from .errors import ConcurrentUpdateError, ConfigurationError, OrderDeskError, OrderNotFoundError
from .models import (
    ApiVariant,
    BookingResult,
    ConnectionCredentials,
    Courier,
    CourierCredentials,
    CustomerHistory,
    Order,
    OrderStatus,
)

log = logging.getLogger(__name__)


class OrderLifecycleController:
    """
    Owns the order list and applies operator actions to it.

    Attributes:
        orders (List[Order]): Current order set, in the order the store sent it.
        selected_order (Optional[Order]): Order opened in the detail view.
        is_loading (bool): True while the order list is being fetched.
        error (Optional[str]): Persistent fetch error shown instead of the list.
        update_error (Optional[str]): Message of the last failed status update.
    """

    def __init__(
            self,
            store: CredentialStore,
            order_gateway: Optional[OrderGateway] = None,
            courier_gateway: Optional[CourierGateway] = None,
    ):
        self.store = store
        self.order_gateway = order_gateway or OrderGateway()
        self.courier_gateway = courier_gateway or CourierGateway()

        self.orders: List[Order] = []
        self.selected_order: Optional[Order] = None
        self.is_loading = False
        self.error: Optional[str] = None
        self.update_error: Optional[str] = None
        self._in_flight: Set[str] = set()
        self._booking: Set[str] = set()

    async def close(self):
        await self.order_gateway.close()
        await self.courier_gateway.close()

    # --- Session & connection ---

    @property
    def is_logged_in(self) -> bool:
        return bool(self.store.get(KEY_LOGGED_IN))

    @property
    def credentials(self) -> Optional[ConnectionCredentials]:
        return load_connection(self.store)

    @property
    def is_connected(self) -> bool:
        return self.credentials is not None

    def login(self):
        self.store.set(KEY_LOGGED_IN, "true")

    def logout(self):
        """Forgets everything: stored credentials, courier keys and the loaded orders."""
        self.store.clear()
        self.orders = []
        self.selected_order = None
        self.error = None
        self.update_error = None
        log.info("Logged out, credential store cleared.")

    async def connect(self, site_url: str, auth_header: str, variant: ApiVariant = ApiVariant.PLUGIN) -> List[Order]:
        """
        Stores new connection credentials and loads the orders with them.

        ``site_url`` is expected to be normalized already (see
        ``credential_store.normalize_site_url``).
        """
        if not site_url or not auth_header:
            raise ConfigurationError("Both the Site URL and the credentials are required.")
        save_connection(self.store, ConnectionCredentials(site_url=site_url, auth_header=auth_header, variant=variant))
        log.info(f"Connected to {site_url} ({ApiVariant(variant).value}).")
        return await self.load_orders()

    # --- Order list ---

    async def load_orders(self) -> List[Order]:
        """
        Replaces the order set with a fresh fetch.

        Fetch errors are not raised; they end up in ``error`` and the previous
        order set is kept.
        """
        credentials = self.credentials
        if credentials is None:
            return self.orders

        self.is_loading = True
        self.error = None
        try:
            orders = await self.order_gateway.fetch_orders(credentials)
        except OrderDeskError as e:
            log.error(f"Loading orders failed ({e.error_type}): {e.message}")
            self.error = e.message
            return self.orders
        finally:
            self.is_loading = False

        self.orders = self._carry_over_bookings(orders)
        self._refresh_selection()
        return self.orders

    def _carry_over_bookings(self, fetched: List[Order]) -> List[Order]:
        # The store does not know about courier bookings; keep them across refetches.
        booked = {o.id: o for o in self.orders if o.is_booked}
        merged = []
        for order in fetched:
            previous = booked.get(order.id)
            if previous is not None and not order.is_booked:
                order = order.model_copy(update={"courier": previous.courier, "tracking_id": previous.tracking_id})
            merged.append(order)
        return merged

    def _refresh_selection(self):
        if self.selected_order is None:
            return
        self.selected_order = self.find_order(self.selected_order.id)

    def find_order(self, order_id: str) -> Optional[Order]:
        for order in self.orders:
            if order.id == order_id:
                return order
        return None

    def get_order(self, order_id: str) -> Order:
        order = self.find_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} is not in the current order list.")
        return order

    def select_order(self, order_id: str) -> Order:
        self.selected_order = self.get_order(order_id)
        return self.selected_order

    def clear_selection(self):
        self.selected_order = None

    def _replace(self, order_id: str, **changes) -> Optional[Order]:
        updated = None
        for index, order in enumerate(self.orders):
            if order.id == order_id:
                updated = order.model_copy(update=changes)
                self.orders[index] = updated
        if self.selected_order is not None and self.selected_order.id == order_id:
            self.selected_order = self.selected_order.model_copy(update=changes)
        return updated

    # --- Status changes ---

    async def update_status(self, order_id: str, status) -> bool:
        """
        Changes an order's status optimistically and confirms it remotely.

        Args:
            order_id (str): Order to change.
            status (OrderStatus | str): Target status.

        Returns:
            bool: True if the store accepted the change, False if it failed
            (``update_error`` is set and the list was refetched) or if there
            is no connection.

        Raises:
            UnmappedStatusError: If the status has no remote counterpart.
            ConcurrentUpdateError: If an update for this order is still running.
        """
        credentials = self.credentials
        if credentials is None:
            return False

        if order_id in self._in_flight:
            raise ConcurrentUpdateError(
                f"Order {order_id} is still being updated. Wait for the previous change to finish."
            )

        log_prefix = f"[Order: {order_id}]"
        # Unmapped statuses are a configuration defect: fail before touching local state
        self.order_gateway.mapping.to_remote(status)
        local_status = OrderStatus(status)

        previous = self.find_order(order_id)
        self._in_flight.add(order_id)
        self.update_error = None
        try:
            self._replace(order_id, status=local_status)
            log.info(f"{log_prefix} Status change to {local_status.value} applied locally.")

            await self.order_gateway.update_order_status(order_id, status, credentials)
            log.info(f"{log_prefix} Status change confirmed by the store.")
            return True

        except OrderDeskError as e:
            log.error(f"{log_prefix} Status update failed ({e.error_type}): {e.message}. Resynchronizing.")
            self.update_error = f"Failed to update order status: {e.message}"
            await self.load_orders()
            if self.error is not None and previous is not None:
                # Refetch failed too; fall back to the last status the store confirmed
                self._replace(order_id, status=previous.status)
            return False

        finally:
            self._in_flight.discard(order_id)

    # --- Courier booking ---

    def courier_credentials(self, courier) -> CourierCredentials:
        return load_courier_credentials(self.store, Courier(courier))

    def courier_settings(self) -> Dict[Courier, CourierCredentials]:
        return {courier: self.courier_credentials(courier) for courier in Courier}

    def save_courier_settings(self, courier, credentials: CourierCredentials):
        save_courier_credentials(self.store, Courier(courier), credentials)
        log.info(f"{Courier(courier).value} settings saved.")

    async def book_order(self, order_id: str, courier) -> BookingResult:
        """
        Books the order with a courier.

        Args:
            order_id (str): Order to ship.
            courier (Courier): Chosen courier.

        Returns:
            BookingResult: Outcome for display. Failures never raise.

        Raises:
            OrderNotFoundError: If the order is not loaded.
        """
        order = self.get_order(order_id)
        log_prefix = f"[Order: {order_id}]"

        if order.is_booked:
            return self._already_booked(order)

        if order_id in self._booking:
            return BookingResult(
                success=False,
                message=f"Order {order_id} is already being booked. Wait for the courier to answer.",
            )

        try:
            courier = Courier(courier)
        except ValueError:
            return BookingResult(success=False, message="Service not configured.")

        credentials = self.courier_credentials(courier)
        missing = self.courier_gateway.missing_credentials(courier, credentials, BOOKING)
        if missing:
            return BookingResult(
                success=False,
                message=self.courier_gateway.missing_credentials_message(courier, missing),
            )

        self._booking.add(order_id)
        try:
            result = await self.courier_gateway.book_order(order, courier, credentials)
            if not result.success:
                return result

            # The order may have been replaced while the booking was in flight
            current = self.find_order(order_id) or order
            if current.is_booked:
                log.error(
                    f"{log_prefix} Booked with {courier.value} (Tracking: {result.tracking_id}) "
                    f"but the order already has {current.courier.value}; keeping the first booking."
                )
                return self._already_booked(current)
            self._replace(order_id, courier=courier, tracking_id=result.tracking_id)
        finally:
            self._booking.discard(order_id)

        if current.status == OrderStatus.PENDING:
            log.info(f"{log_prefix} Booked while Pending, moving to Processing.")
            try:
                await self.update_status(order_id, OrderStatus.PROCESSING)
            except ConcurrentUpdateError as e:
                log.warning(f"{log_prefix} {e.message}")
        return result

    @staticmethod
    def _already_booked(order: Order) -> BookingResult:
        return BookingResult(
            success=False,
            tracking_id=order.tracking_id or "",
            message=f"Order is already booked with {order.courier.value} (Tracking: {order.tracking_id}).",
        )

    # --- Customer history ---

    async def customer_histories(self, order_id: str) -> HistoryReport:
        """Delivery history of the order's customer with every configured courier."""
        order = self.get_order(order_id)
        return await self.courier_gateway.fetch_all_histories(
            order.customer_phone,
            {courier: self.courier_credentials(courier) for courier in Courier},
        )

    async def store_history(self, order_id: str) -> CustomerHistory:
        """The customer's order history according to the remote store itself."""
        order = self.get_order(order_id)
        credentials = self.credentials
        if credentials is None:
            raise ConfigurationError("Connect your store first: Site URL and credentials are required.")
        identifier = order.customer_email
        if credentials.variant == ApiVariant.WOOCOMMERCE and not identifier:
            identifier = order.customer_phone
        return await self.order_gateway.fetch_customer_history(identifier, credentials)
