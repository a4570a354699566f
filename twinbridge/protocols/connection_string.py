"""Hub connection string parsing and shared access signature tokens."""
from __future__ import annotations
import base64
import hashlib
import hmac
import time
import urllib.parse
from typing import Dict, Optional

from twinbridge.models import HubConnectionString

_FIELDS = {
    "HostName": "host_name",
    "SharedAccessKeyName": "shared_access_key_name",
    "SharedAccessKey": "shared_access_key",
    "DeviceId": "device_id",
}


def parse_connection_string(raw: str) -> HubConnectionString:
    """Parse ``Key=Value;Key=Value`` pairs. Values may contain ``=`` (base64 padding)."""
    parts: Dict[str, str] = {}
    for segment in (raw or "").split(";"):
        if not segment.strip():
            continue
        key, sep, value = segment.partition("=")
        if not sep:
            continue
        parts[key.strip()] = value.strip()
    kwargs = {attr: parts.get(key) or None for key, attr in _FIELDS.items()}
    return HubConnectionString(**kwargs)


def generate_sas_token(resource_uri: str, key: str, policy_name: Optional[str] = None,
                       ttl: int = 3600, now: Optional[float] = None) -> str:
    """Build a ``SharedAccessSignature`` token signed with the base64 *key*."""
    expiry = int((now if now is not None else time.time()) + ttl)
    encoded_uri = urllib.parse.quote(resource_uri, safe="")
    to_sign = f"{encoded_uri}\n{expiry}".encode("utf-8")
    digest = hmac.new(base64.b64decode(key), to_sign, hashlib.sha256).digest()
    signature = urllib.parse.quote(base64.b64encode(digest).decode("utf-8"), safe="")
    token = f"SharedAccessSignature sr={encoded_uri}&sig={signature}&se={expiry}"
    if policy_name:
        token += f"&skn={policy_name}"
    return token
