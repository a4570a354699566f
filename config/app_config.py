"""Centralised application settings (dotenv + env overrides)."""
from __future__ import annotations
import os
from pathlib import Path
from dotenv import load_dotenv

from twinbridge.core.exceptions import ConfigurationError
from twinbridge.protocols.connection_string import parse_connection_string

ROOT = Path(__file__).parents[1]
load_dotenv(ROOT / ".env", override=False)


def _flag(raw: str | None) -> bool:
    return (raw or "").strip().lower() in ("1", "true", "yes", "on")


class settings:                            # pylint: disable=too-few-public-methods
    HUB_CONNECTION_STRING = os.getenv("HUB_CONNECTION_STRING", "")
    ACCESS_TOKEN          = os.getenv("ACCESS_TOKEN", "")
    GATEWAY_URL           = os.getenv("GATEWAY_URL", "http://localhost:8080")
    UPDATE_TWIN           = _flag(os.getenv("UPDATE_TWIN"))
    # numeric values stay raw until validate() converts them
    MIN_CHECK_DEVICE_STATUS_INTERVAL = os.getenv("MIN_CHECK_DEVICE_STATUS_INTERVAL", "0")
    CREDENTIALS_FILE      = os.getenv("CREDENTIALS_FILE", str(ROOT / "data" / "credentials.json"))
    NETWORK_TIMEOUT       = os.getenv("NETWORK_TIMEOUT", "30")
    NEW_DEVICE_STATUS     = os.getenv("NEW_DEVICE_STATUS", "enabled").lower()
    LOG_LEVEL             = os.getenv("LOG_LEVEL", "INFO").upper()

    @classmethod
    def validate(cls):
        """Fail fast on anything the bridge cannot start without."""
        if not cls.HUB_CONNECTION_STRING:
            raise ConfigurationError("No hub connection string configured")
        hub = parse_connection_string(cls.HUB_CONNECTION_STRING)
        if not hub.host_name:
            raise ConfigurationError("Invalid hub connection string, could not extract hostname")
        if not hub.shared_access_key:
            raise ConfigurationError("Invalid hub connection string, no SharedAccessKey")
        if not cls.ACCESS_TOKEN:
            raise ConfigurationError("No access token configured")
        if cls.NEW_DEVICE_STATUS not in ("enabled", "disabled"):
            raise ConfigurationError(
                f"NEW_DEVICE_STATUS must be 'enabled' or 'disabled', got {cls.NEW_DEVICE_STATUS!r}")
        cls.MIN_CHECK_DEVICE_STATUS_INTERVAL = _seconds(
            "MIN_CHECK_DEVICE_STATUS_INTERVAL", cls.MIN_CHECK_DEVICE_STATUS_INTERVAL)
        cls.NETWORK_TIMEOUT = _seconds("NETWORK_TIMEOUT", cls.NETWORK_TIMEOUT)
        if cls.NETWORK_TIMEOUT <= 0:
            raise ConfigurationError(f"NETWORK_TIMEOUT must be positive, got {cls.NETWORK_TIMEOUT}")


def _seconds(name: str, raw) -> float:
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}") from None
