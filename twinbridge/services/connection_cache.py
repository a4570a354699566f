"""Per-device connection and twin cache with credential recovery."""
from __future__ import annotations
import asyncio
import logging
from collections import defaultdict
from typing import Dict, Optional

from twinbridge.core.exceptions import AuthError, ProvisioningFailure
from twinbridge.protocols.base import DeviceConnection, TransportClient, Twin
from twinbridge.services.provisioning import IdentityProvisioner
from twinbridge.utils.async_helpers import run_with_timeout


class DeviceConnectionCache:
    """
    Owns at most one open connection and one twin handle per device id.

    Both are created lazily. A connection that dropped is replaced, never
    repaired. When the hub rejects the stored key the identity is recreated
    with a fresh key and the operation is retried exactly once.
    """

    def __init__(self, host_name: str, transport: TransportClient,
                 provisioner: IdentityProvisioner, *, timeout: Optional[float] = None):
        self.host_name = host_name
        self.transport = transport
        self.provisioner = provisioner
        self.timeout = timeout
        self._connections: Dict[str, DeviceConnection] = {}
        self._twins: Dict[str, Twin] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.log = logging.getLogger(self.__class__.__name__)

    # --------------------------------------------------------------------- #
    #  Public API
    # --------------------------------------------------------------------- #
    async def ensure_connection(self, device_id: str) -> DeviceConnection:
        async with self._locks[device_id]:
            connection = self._connections.get(device_id)
            if connection is not None and getattr(connection, "connected", True):
                return connection
            if connection is not None:
                self.log.info("Connection of %s was lost, reopening", device_id)
                await self._evict(device_id)

            primary_key = await self.provisioner.ensure_identity(device_id)
            try:
                connection = await self._open(device_id, primary_key)
            except AuthError as e:
                self.log.warning("Could not create device: %s", e)
                connection = await self._recreate_and_open(device_id, e)

            self._connections[device_id] = connection
            return connection

    async def ensure_twin(self, device_id: str, connection: DeviceConnection) -> Twin:
        async with self._locks[device_id]:
            twin = self._twins.get(device_id)
            if twin is not None:
                return twin

            connection = self._connections.get(device_id, connection)
            try:
                twin = await self._fetch_twin(device_id, connection)
            except AuthError as e:
                self.log.warning("Could not fetch twin of %s: %s", device_id, e)
                await self._evict(device_id)
                connection = await self._recreate_and_open(device_id, e)
                self._connections[device_id] = connection
                try:
                    twin = await self._fetch_twin(device_id, connection)
                except AuthError as again:
                    raise ProvisioningFailure(
                        f"Twin of {device_id} still rejected after recreating its key") from again

            self._twins[device_id] = twin
            return twin

    def cached(self, device_id: str) -> Optional[DeviceConnection]:
        return self._connections.get(device_id)

    async def close_all(self):
        for device_id in list(self._connections):
            await self._evict(device_id)

    # --------------------------------------------------------------------- #
    #  Private helpers
    # --------------------------------------------------------------------- #
    async def _recreate_and_open(self, device_id: str, cause: Exception) -> DeviceConnection:
        self.log.info("Attempting to recreate device for %s", device_id)
        primary_key = await self.provisioner.recreate_identity(device_id)
        try:
            return await self._open(device_id, primary_key)
        except Exception as e:
            raise ProvisioningFailure(
                f"Could not open {device_id} after recreating its key (first failure: {cause})") from e

    async def _open(self, device_id: str, primary_key: str) -> DeviceConnection:
        self.log.info("Creating device client for %s", device_id)
        connection = await run_with_timeout(
            self.transport.open(self.host_name, device_id, primary_key),
            self.timeout, f"Opening connection for {device_id}")
        self.log.info("Opened connection to device %s", device_id)
        return connection

    async def _fetch_twin(self, device_id: str, connection: DeviceConnection) -> Twin:
        return await run_with_timeout(
            connection.get_twin(), self.timeout, f"Fetching twin of {device_id}")

    async def _evict(self, device_id: str):
        self._twins.pop(device_id, None)
        connection = self._connections.pop(device_id, None)
        if connection is None:
            return
        try:
            await connection.close()
        except Exception as e:
            self.log.warning("Error closing connection of %s: %s", device_id, e)
