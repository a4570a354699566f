"""Lazy creation of hub device identities and their keys."""
from __future__ import annotations
import base64
import logging
import secrets
from typing import Optional, Tuple

from twinbridge.core.exceptions import RegistryError
from twinbridge.protocols.base import IdentityRegistry
from twinbridge.services.credential_store import CredentialStore
from twinbridge.utils.async_helpers import run_with_timeout

KEY_BYTES = 32


def generate_key_pair() -> Tuple[str, str]:
    """Fresh (primary, secondary) base64 symmetric keys."""
    return (base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode("ascii"),
            base64.b64encode(secrets.token_bytes(KEY_BYTES)).decode("ascii"))


class IdentityProvisioner:
    """Maps a device id to the primary key of its hub identity, creating both on demand."""

    def __init__(self, registry: IdentityRegistry, store: CredentialStore, *,
                 new_device_status: str = "enabled", timeout: Optional[float] = None):
        self.registry = registry
        self.store = store
        self.new_device_status = new_device_status
        self.timeout = timeout
        self.log = logging.getLogger(self.__class__.__name__)

    async def ensure_identity(self, device_id: str) -> str:
        """Stored primary key for *device_id*, provisioning a new identity if there is none."""
        primary_key = await self.store.get(device_id)
        if not primary_key:
            primary_key = await self.recreate_identity(device_id)
        return primary_key

    async def recreate_identity(self, device_id: str) -> str:
        """Register a brand-new key pair for *device_id* and overwrite the stored key."""
        primary_key = await self._create_device_key(device_id)
        await self.store.put(device_id, primary_key)
        return primary_key

    async def _create_device_key(self, device_id: str) -> str:
        self.log.info("Creating device for %s", device_id)
        primary_key, secondary_key = generate_key_pair()
        await run_with_timeout(
            self.registry.create_identity(device_id, self.new_device_status, primary_key, secondary_key),
            self.timeout, f"Creating device {device_id}", error=RegistryError)
        return primary_key
