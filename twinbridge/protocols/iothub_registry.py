"""
IoT Hub identity registry over the service REST API.

Authenticates with a shared access policy taken from the hub connection
string and exposes list/upsert of device identities.
"""

from __future__ import annotations
import logging
import urllib.parse
from typing import Any, Dict, List, Optional

import aiohttp

from twinbridge.core.exceptions import ConfigurationError, RegistryError, RegistryListError
from twinbridge.models import DeviceIdentity
from twinbridge.protocols.base import IdentityRegistry
from twinbridge.protocols.connection_string import generate_sas_token, parse_connection_string

API_VERSION = "2021-04-12"
LIST_PAGE_SIZE = 1000


class IotHubRegistry(IdentityRegistry):
    """Identity registry backed by ``https://{host}/devices``."""

    def __init__(self, connection_string: str, *, timeout: float = 30.0,
                 session: Optional[aiohttp.ClientSession] = None):
        parsed = parse_connection_string(connection_string)
        if not parsed.host_name or not parsed.shared_access_key:
            raise ConfigurationError("Hub connection string needs HostName and SharedAccessKey")
        self.host_name = parsed.host_name
        self._policy_name = parsed.shared_access_key_name
        self._policy_key = parsed.shared_access_key
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self.logger = logging.getLogger(self.__class__.__name__)

    # --------------------------------------------------------------------- #
    #  IdentityRegistry
    # --------------------------------------------------------------------- #
    async def list_identities(self) -> List[DeviceIdentity]:
        url = self._url("/devices", top=LIST_PAGE_SIZE)
        try:
            async with self._client().get(url, headers=self._headers()) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    raise RegistryListError(
                        f"Listing devices failed with HTTP {resp.status}: {body}", resp.status)
                rows = await resp.json()
        except aiohttp.ClientError as e:
            raise RegistryListError(f"Listing devices failed: {e}") from e
        except ValueError as e:
            raise RegistryListError(f"Listing devices returned malformed JSON: {e}") from e

        try:
            identities = [DeviceIdentity.from_row(row) for row in rows]
        except (KeyError, TypeError) as e:
            raise RegistryListError(f"Listing devices returned an unexpected row: {e!r}") from e

        self.logger.debug("Listed %d device identities", len(identities))
        return identities

    async def create_identity(self, device_id: str, status: str,
                              primary_key: str, secondary_key: str) -> None:
        body = {
            "deviceId": device_id,
            "status": status,
            "authentication": {
                "type": "sas",
                "symmetricKey": {"primaryKey": primary_key, "secondaryKey": secondary_key},
            },
        }
        url = self._url(f"/devices/{urllib.parse.quote(device_id, safe='')}")
        try:
            status_code, text = await self._put(url, body)
            # the identity already exists: overwrite it
            if status_code in (409, 412):
                status_code, text = await self._put(url, body, {"If-Match": "*"})
        except aiohttp.ClientError as e:
            raise RegistryError(f"Creating device {device_id} failed: {e}") from e

        if status_code not in (200, 201):
            raise RegistryError(
                f"Creating device {device_id} failed with HTTP {status_code}: {text}", status_code)

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    # --------------------------------------------------------------------- #
    #  Private helpers
    # --------------------------------------------------------------------- #
    async def _put(self, url: str, body: Dict[str, Any],
                   extra_headers: Optional[Dict[str, str]] = None):
        headers = self._headers()
        headers.update(extra_headers or {})
        async with self._client().put(url, json=body, headers=headers) as resp:
            return resp.status, await resp.text()

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def _headers(self) -> Dict[str, str]:
        token = generate_sas_token(self.host_name, self._policy_key, self._policy_name)
        return {"Authorization": token, "Content-Type": "application/json; charset=utf-8"}

    def _url(self, path: str, **query: Any) -> str:
        params = {"api-version": API_VERSION, **query}
        return f"https://{self.host_name}{path}?{urllib.parse.urlencode(params)}"
