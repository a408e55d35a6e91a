import os

# Keep test runs from writing a log file into the working directory
os.environ.setdefault("ORDER_DESK_LOG_FILE", "")

import httpx
import pytest

from mock_services import mock_pathao, mock_steadfast, mock_store
from order_desk.clients import OrderGateway
from order_desk.controller import OrderLifecycleController
from order_desk.couriers import CourierGateway, PathaoBackend, SteadfastBackend
from order_desk.credential_store import (
    InMemoryCredentialStore,
    basic_auth_header,
    bearer_auth_header,
    save_connection,
    save_courier_credentials,
)
from order_desk.models import ApiVariant, ConnectionCredentials, Courier, CourierCredentials

SITE_URL = "https://shop.test"
STEADFAST_URL = "https://portal.steadfast.com.bd"
PATHAO_URL = "https://api-hermes.pathao.com"


def _refuse_connection(request):
    raise httpx.ConnectError("Connection refused", request=request)


@pytest.fixture
def store():
    return mock_store.MockStore()


@pytest.fixture
def steadfast():
    return mock_steadfast.MockSteadfast()


@pytest.fixture
def pathao():
    return mock_pathao.MockPathao()


@pytest.fixture
def http_client(store, steadfast, pathao):
    mounts = {
        "all://shop.test": httpx.ASGITransport(app=mock_store.build_app(store)),
        "all://portal.steadfast.com.bd": httpx.ASGITransport(app=mock_steadfast.build_app(steadfast)),
        "all://api-hermes.pathao.com": httpx.ASGITransport(app=mock_pathao.build_app(pathao)),
        "all://offline.test": httpx.MockTransport(_refuse_connection),
    }
    return httpx.AsyncClient(mounts=mounts)


@pytest.fixture
def wc_credentials():
    return ConnectionCredentials(
        site_url=SITE_URL,
        auth_header=basic_auth_header(mock_store.USERNAME, mock_store.APP_PASSWORD),
        variant=ApiVariant.WOOCOMMERCE,
    )


@pytest.fixture
def plugin_credentials():
    return ConnectionCredentials(
        site_url=SITE_URL,
        auth_header=bearer_auth_header(mock_store.API_KEY),
        variant=ApiVariant.PLUGIN,
    )


@pytest.fixture
def steadfast_credentials():
    return CourierCredentials(api_key="sf_live_key", secret_key=mock_steadfast.SECRET_KEY)


@pytest.fixture
def pathao_credentials():
    return CourierCredentials(api_key="pt_access_token", store_id=mock_pathao.STORE_ID)


@pytest.fixture
def order_gateway(http_client):
    return OrderGateway(client=http_client, app_scheme="https")


@pytest.fixture
def courier_gateway(http_client):
    return CourierGateway(
        client=http_client,
        backends={
            Courier.STEADFAST: SteadfastBackend(STEADFAST_URL),
            Courier.PATHAO: PathaoBackend(PATHAO_URL),
        },
    )


@pytest.fixture
def credential_store(wc_credentials):
    credentials = InMemoryCredentialStore()
    credentials.set("isLoggedIn", "true")
    save_connection(credentials, wc_credentials)
    return credentials


@pytest.fixture
def controller(credential_store, order_gateway, courier_gateway):
    return OrderLifecycleController(credential_store, order_gateway, courier_gateway)


@pytest.fixture
def configured_couriers(credential_store, steadfast_credentials, pathao_credentials):
    save_courier_credentials(credential_store, Courier.STEADFAST, steadfast_credentials)
    save_courier_credentials(credential_store, Courier.PATHAO, pathao_credentials)
    return credential_store
