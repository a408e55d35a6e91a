import base64
import json

import pytest

from order_desk.credential_store import (
    InMemoryCredentialStore,
    JsonFileCredentialStore,
    basic_auth_header,
    bearer_auth_header,
    load_connection,
    load_courier_credentials,
    normalize_site_url,
    save_connection,
    save_courier_credentials,
)
from order_desk.errors import ConfigurationError
from order_desk.models import ApiVariant, ConnectionCredentials, Courier, CourierCredentials


def test_in_memory_store_get_set_clear():
    store = InMemoryCredentialStore()
    assert store.get("siteUrl") is None

    store.set("siteUrl", "https://shop.test")
    assert store.get("siteUrl") == "https://shop.test"

    store.clear()
    assert store.get("siteUrl") is None


def test_json_store_survives_reopening(tmp_path):
    path = tmp_path / "nested" / "credentials.json"
    store = JsonFileCredentialStore(path)
    store.set("siteUrl", "https://shop.test")
    store.set("authHeader", "Bearer abc")

    reopened = JsonFileCredentialStore(path)
    assert reopened.get("siteUrl") == "https://shop.test"
    assert reopened.get("authHeader") == "Bearer abc"
    assert json.loads(path.read_text())["siteUrl"] == "https://shop.test"


def test_json_store_clear_removes_file(tmp_path):
    path = tmp_path / "credentials.json"
    store = JsonFileCredentialStore(path)
    store.set("siteUrl", "https://shop.test")

    store.clear()

    assert not path.exists()
    assert store.get("siteUrl") is None
    assert JsonFileCredentialStore(path).get("siteUrl") is None


def test_json_store_starts_empty_on_corrupt_file(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text("{not json")

    assert JsonFileCredentialStore(path).get("siteUrl") is None


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("shop.test", "https://shop.test"),
        ("  https://shop.test/  ", "https://shop.test"),
        ("http://shop.test//", "http://shop.test"),
        ("HTTPS://Shop.test/store", "HTTPS://Shop.test/store"),
    ],
)
def test_normalize_site_url(raw, expected):
    assert normalize_site_url(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "https://", "https://my shop.test"])
def test_normalize_site_url_rejects_invalid(raw):
    with pytest.raises(ConfigurationError):
        normalize_site_url(raw)


def test_basic_auth_header_encodes_application_password():
    header = basic_auth_header("admin", "abcd efgh")
    assert header.startswith("Basic ")
    assert base64.b64decode(header[6:]).decode() == "admin:abcd efgh"


def test_auth_headers_require_values():
    with pytest.raises(ConfigurationError):
        basic_auth_header("admin", "")
    with pytest.raises(ConfigurationError):
        bearer_auth_header("  ")
    assert bearer_auth_header(" key ") == "Bearer key"


def test_connection_round_trip_through_store():
    store = InMemoryCredentialStore()
    assert load_connection(store) is None

    credentials = ConnectionCredentials(
        site_url="https://shop.test", auth_header="Basic eA==", variant=ApiVariant.WOOCOMMERCE
    )
    save_connection(store, credentials)

    assert load_connection(store) == credentials


def test_connection_variant_inferred_for_old_stores():
    store = InMemoryCredentialStore({"siteUrl": "https://shop.test", "authHeader": "Basic eA=="})
    assert load_connection(store).variant == ApiVariant.WOOCOMMERCE

    store = InMemoryCredentialStore({"siteUrl": "https://shop.test", "authHeader": "Bearer k"})
    assert load_connection(store).variant == ApiVariant.PLUGIN


def test_courier_credentials_are_trimmed_and_independent():
    store = InMemoryCredentialStore()
    save_courier_credentials(store, Courier.STEADFAST, CourierCredentials(api_key=" key ", secret_key=" secret "))

    steadfast = load_courier_credentials(store, Courier.STEADFAST)
    pathao = load_courier_credentials(store, Courier.PATHAO)

    assert steadfast.api_key == "key"
    assert steadfast.secret_key == "secret"
    assert pathao == CourierCredentials()
    assert store.get("steadfastApiKey") == "key"
