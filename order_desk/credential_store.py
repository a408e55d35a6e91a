"""
credential_store.py — Durable Key-Value Storage for Credentials and Settings

The store is a flat, unversioned key-value namespace holding the site URL, the
Authorization header, the API variant and per-courier key material. It does no
validation; callers decide what a usable value is.

Two implementations are provided:
    - InMemoryCredentialStore: process-local, used in tests.
    - JsonFileCredentialStore: persists to a JSON file until cleared (logout).

The helper functions at the bottom turn raw keys into credential models and
back, so gateways receive explicit configuration objects instead of reading
ambient storage.
"""

import base64
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import urlsplit

from .errors import ConfigurationError
from .models import ApiVariant, ConnectionCredentials, Courier, CourierCredentials

log = logging.getLogger(__name__)

KEY_LOGGED_IN = "isLoggedIn"
KEY_SITE_URL = "siteUrl"
KEY_AUTH_HEADER = "authHeader"
KEY_API_VARIANT = "apiVariant"

COURIER_KEYS = {
    Courier.STEADFAST: {
        "api_key": "steadfastApiKey",
        "secret_key": "steadfastSecretKey",
    },
    Courier.PATHAO: {
        "api_key": "pathaoApiKey",
        "store_id": "pathaoStoreId",
    },
}


class CredentialStore(ABC):
    """Minimal key-value interface. Values are strings; absent keys return None."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class InMemoryCredentialStore(CredentialStore):

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()


class JsonFileCredentialStore(CredentialStore):
    """
    Stores all keys in a single JSON object on disk.

    The file is rewritten on every ``set``; it is small and written rarely
    (connect, settings changes, logout).

    Args:
        path (Path): Location of the JSON file. Parent directories are created
            on first write.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._data: Dict[str, str] = self._read()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            log.error(f"Credential file {self.path} is corrupt, starting empty: {e}")
            return {}
        if not isinstance(data, dict):
            log.error(f"Credential file {self.path} does not hold an object, starting empty.")
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _write(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data, indent=2), encoding="utf-8")

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self._write()

    def clear(self) -> None:
        self._data = {}
        if self.path.exists():
            self.path.unlink()
        log.info(f"Credential file {self.path} cleared.")


# --- Helpers ---

def normalize_site_url(url: str) -> str:
    """
    Cleans up a user-entered site URL.

    Prepends ``https://`` when no scheme is given and strips trailing slashes.

    Raises:
        ConfigurationError: If the URL is empty or has no host.
    """
    url = (url or "").strip()
    if not url:
        raise ConfigurationError("Site URL is required.")

    if not url.lower().startswith(("http://", "https://")):
        url = "https://" + url

    parts = urlsplit(url)
    if not parts.netloc or " " in parts.netloc:
        raise ConfigurationError("Please enter a valid Site URL (e.g., https://example.com).")
    return url.rstrip("/")


def bearer_auth_header(api_key: str) -> str:
    api_key = (api_key or "").strip()
    if not api_key:
        raise ConfigurationError("API key is required.")
    return f"Bearer {api_key}"


def basic_auth_header(username: str, app_password: str) -> str:
    """Builds the basic-auth header used with WordPress application passwords."""
    username = (username or "").strip()
    app_password = (app_password or "").strip()
    if not username or not app_password:
        raise ConfigurationError("Username and Application Password are both required.")
    token = base64.b64encode(f"{username}:{app_password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def load_connection(store: CredentialStore) -> Optional[ConnectionCredentials]:
    site_url = store.get(KEY_SITE_URL)
    auth_header = store.get(KEY_AUTH_HEADER)
    if not site_url or not auth_header:
        return None

    variant = store.get(KEY_API_VARIANT)
    if not variant:
        # Stores written before the variant key existed
        variant = ApiVariant.WOOCOMMERCE if auth_header.startswith("Basic ") else ApiVariant.PLUGIN
    return ConnectionCredentials(site_url=site_url, auth_header=auth_header, variant=variant)


def save_connection(store: CredentialStore, credentials: ConnectionCredentials) -> None:
    store.set(KEY_SITE_URL, credentials.site_url)
    store.set(KEY_AUTH_HEADER, credentials.auth_header)
    store.set(KEY_API_VARIANT, credentials.variant.value)


def load_courier_credentials(store: CredentialStore, courier: Courier) -> CourierCredentials:
    values = {field: store.get(key) or None for field, key in COURIER_KEYS[courier].items()}
    return CourierCredentials(**values)


def save_courier_credentials(store: CredentialStore, courier: Courier, credentials: CourierCredentials) -> None:
    for field, key in COURIER_KEYS[courier].items():
        value = getattr(credentials, field)
        store.set(key, (value or "").strip())
