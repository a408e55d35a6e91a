from decimal import Decimal

import httpx
import pytest

from order_desk.couriers import HISTORY, CourierGateway, PathaoBackend, SteadfastBackend
from order_desk.errors import AuthenticationError, ConfigurationError, MalformedResponseError, RemoteBusinessError
from order_desk.models import Courier, CourierCredentials, Order, OrderItem, OrderStatus


def make_order(order_id="1007", phone="01711000004", **overrides) -> Order:
    values = dict(
        id=order_id,
        customer_name="Katherine Johnson",
        customer_email="katherine@example.com",
        customer_phone=phone,
        order_date="2024-05-10T14:30:00",
        status=OrderStatus.PENDING,
        items=[
            OrderItem(id="71", name="Backpack", quantity=1, price=Decimal("55.00")),
            OrderItem(id="72", name="Bottle", quantity=2, price=Decimal("7.50")),
        ],
        total=Decimal("70.00"),
        shipping_address="Katherine Johnson\nHouse 12, Road 5\nDhaka, BD-13 1207",
    )
    values.update(overrides)
    return Order(**values)


# --- Booking ---

async def test_steadfast_booking_uses_remote_tracking_code(courier_gateway, steadfast, steadfast_credentials):
    result = await courier_gateway.book_order(make_order(), Courier.STEADFAST, steadfast_credentials)

    assert result.success
    assert result.tracking_id.startswith("SF")
    assert result.message == f"Successfully booked with Steadfast. Tracking: {result.tracking_id}"

    payload = steadfast.bookings[0]
    assert payload["invoice"] == "1007"
    assert payload["recipient_address"] == "Katherine Johnson, House 12, Road 5, Dhaka, BD-13 1207"
    assert payload["cod_amount"] == 70.0
    assert payload["note"].endswith("Total items: 2")


async def test_steadfast_booking_without_tracking_code_gets_fallback_id(courier_gateway, steadfast_credentials):
    result = await courier_gateway.book_order(make_order("NOTRACK-7"), Courier.STEADFAST, steadfast_credentials)

    assert result.success
    assert result.tracking_id == "STDFST-NOTRACK-7"


async def test_steadfast_without_secret_key_makes_no_request(courier_gateway, steadfast):
    result = await courier_gateway.book_order(make_order(), Courier.STEADFAST, CourierCredentials(api_key="sf_live_key"))

    assert not result.success
    assert result.message == "Please add the Secret Key for Steadfast in the Settings."
    assert steadfast.bookings == []


async def test_booking_without_any_credentials(courier_gateway, pathao):
    result = await courier_gateway.book_order(make_order(), Courier.PATHAO, None)

    assert not result.success
    assert result.message == "Please add the Access Token and Store ID for Pathao in the Settings."
    assert pathao.orders == []


async def test_steadfast_rejection_inside_ok_body(courier_gateway):
    credentials = CourierCredentials(api_key="sf_reject_key", secret_key="sf_secret")

    result = await courier_gateway.book_order(make_order(), Courier.STEADFAST, credentials)

    assert not result.success
    assert result.message == "Invalid recipient phone number."
    assert result.tracking_id == ""


async def test_steadfast_html_answer(courier_gateway):
    credentials = CourierCredentials(api_key="sf_html_key", secret_key="sf_secret")

    result = await courier_gateway.book_order(make_order(), Courier.STEADFAST, credentials)

    assert not result.success
    assert "invalid response from Steadfast (status: 200)" in result.message


async def test_steadfast_wrong_secret(courier_gateway):
    credentials = CourierCredentials(api_key="sf_live_key", secret_key="wrong")

    result = await courier_gateway.book_order(make_order(), Courier.STEADFAST, credentials)

    assert not result.success
    assert "Steadfast rejected the credentials (401)" in result.message


async def test_pathao_booking(courier_gateway, pathao, pathao_credentials):
    result = await courier_gateway.book_order(make_order(), Courier.PATHAO, pathao_credentials)

    assert result.success
    assert result.tracking_id.startswith("DA")
    payload = pathao.orders[0]
    assert payload["store_id"] == "148"
    assert payload["merchant_order_id"] == "1007"
    assert payload["amount_to_collect"] == "70.00"
    assert payload["item_quantity"] == 2


async def test_pathao_field_errors_are_flattened(courier_gateway, pathao_credentials):
    wrong_store = pathao_credentials.model_copy(update={"store_id": "1"})

    result = await courier_gateway.book_order(make_order(), Courier.PATHAO, wrong_store)
    assert not result.success
    assert result.message == "store_id: The selected store id is invalid."

    result = await courier_gateway.book_order(make_order(phone="000"), Courier.PATHAO, pathao_credentials)
    assert result.message == "recipient_phone: The recipient phone format is invalid."


async def test_pathao_invalid_token(courier_gateway):
    credentials = CourierCredentials(api_key="pt_invalid", store_id="148")

    result = await courier_gateway.book_order(make_order(), Courier.PATHAO, credentials)

    assert not result.success
    assert "Pathao rejected the credentials" in result.message


async def test_unreachable_courier_never_raises(http_client, steadfast_credentials):
    gateway = CourierGateway(
        client=http_client,
        backends={Courier.STEADFAST: SteadfastBackend("https://offline.test")},
    )

    result = await gateway.book_order(make_order(), Courier.STEADFAST, steadfast_credentials)

    assert not result.success
    assert result.message.startswith("Failed to connect to Steadfast")


async def test_unknown_courier_is_not_configured(courier_gateway):
    result = await courier_gateway.book_order(make_order(), "RedX", CourierCredentials(api_key="k"))

    assert not result.success
    assert result.message == "Service not configured."


# --- History ---

async def test_steadfast_history(courier_gateway, steadfast, steadfast_credentials):
    history = await courier_gateway.fetch_customer_history("01711000001", Courier.STEADFAST, steadfast_credentials)

    assert (history.total_parcels, history.delivered, history.returned, history.pending) == (10, 8, 1, 1)
    assert steadfast.history_calls == ["01711000001"]


async def test_pathao_history_needs_only_the_token(courier_gateway):
    history = await courier_gateway.fetch_customer_history(
        "01711000001", Courier.PATHAO, CourierCredentials(api_key="pt_access_token")
    )

    assert (history.total_parcels, history.delivered, history.returned, history.pending) == (5, 4, 0, 1)


async def test_history_without_keys_makes_no_request(courier_gateway, steadfast):
    with pytest.raises(ConfigurationError) as exc:
        await courier_gateway.fetch_customer_history("01711000001", Courier.STEADFAST, CourierCredentials(api_key="k"))

    assert exc.value.message == "Steadfast Secret Key required."
    assert steadfast.history_calls == []


async def test_history_for_unknown_phone(courier_gateway, steadfast_credentials):
    with pytest.raises(RemoteBusinessError) as exc:
        await courier_gateway.fetch_customer_history("01999999999", Courier.STEADFAST, steadfast_credentials)
    assert exc.value.message == "Customer phone not found in Steadfast records."
    assert exc.value.remote_status == 404


async def test_history_with_rejected_token(courier_gateway):
    with pytest.raises(AuthenticationError):
        await courier_gateway.fetch_customer_history(
            "01711000001", Courier.PATHAO, CourierCredentials(api_key="pt_invalid")
        )


async def test_all_histories_are_combined(courier_gateway, steadfast_credentials, pathao_credentials):
    report = await courier_gateway.fetch_all_histories(
        "01711000001",
        {Courier.STEADFAST: steadfast_credentials, Courier.PATHAO: pathao_credentials},
    )

    assert set(report.histories) == {Courier.STEADFAST, Courier.PATHAO}
    assert report.errors == {}
    assert report.unconfigured == []
    assert (report.combined.total_parcels, report.combined.delivered) == (15, 12)


async def test_one_failing_courier_does_not_hide_the_other(courier_gateway, steadfast_credentials, pathao_credentials):
    report = await courier_gateway.fetch_all_histories(
        "01711000004",
        {Courier.STEADFAST: steadfast_credentials, Courier.PATHAO: pathao_credentials},
    )

    assert report.histories[Courier.STEADFAST].delivered == 2
    assert report.errors[Courier.PATHAO] == "Customer phone not found in Pathao records."
    assert report.combined == report.histories[Courier.STEADFAST]


async def test_unconfigured_couriers_are_skipped(courier_gateway, pathao):
    report = await courier_gateway.fetch_all_histories("01711000001", {Courier.STEADFAST: CourierCredentials()})

    assert report.unconfigured == [Courier.STEADFAST, Courier.PATHAO]
    assert report.combined is None
    assert pathao.history_calls == []


def test_required_fields_per_purpose():
    assert SteadfastBackend("https://sf.test").missing_fields(None, HISTORY) == ["API Key", "Secret Key"]
    assert PathaoBackend("https://pt.test").missing_fields(CourierCredentials(api_key="t"), HISTORY) == []
    assert PathaoBackend("https://pt.test").missing_fields(CourierCredentials(api_key="t")) == ["Store ID"]


@pytest.mark.parametrize(
    "courier, body",
    [
        (Courier.PATHAO, {"type": "success", "code": 200, "data": ["unexpected"]}),
        (Courier.PATHAO, {"type": "success", "code": 200, "data": {"customer": None}}),
        (Courier.STEADFAST, {"status": 200, "message": "ok"}),
    ],
)
async def test_unexpected_history_shape_is_malformed(courier, body):
    gateway = CourierGateway(
        client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200, json=body))),
        backends={
            Courier.STEADFAST: SteadfastBackend("https://sf.test"),
            Courier.PATHAO: PathaoBackend("https://pt.test"),
        },
    )
    credentials = CourierCredentials(api_key="k", secret_key="s", store_id="1")

    with pytest.raises(MalformedResponseError):
        await gateway.fetch_customer_history("01711000001", courier, credentials)
