"""
Collaborator interfaces consumed by the bridge services.

The services only talk to these abstract classes; the concrete hub, registry
and gateway clients live next to this module and can be swapped for fakes.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from twinbridge.models import DeviceIdentity


PropertyCallback = Callable[[str, Any], None]


class Twin(ABC):
    """Handle on one device's twin document."""

    @abstractmethod
    async def update_reported(self, patch: Dict[str, Any]) -> None:
        """Merge *patch* into the reported properties; raise TransportError on failure."""
        pass


class DeviceConnection(ABC):
    """Open transport session for a single device identity."""

    @abstractmethod
    async def send_event(self, payload: bytes) -> None:
        """Send one telemetry message."""
        pass

    @abstractmethod
    async def get_twin(self) -> Twin:
        """Fetch the twin; raise AuthError when the key is rejected."""
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class TransportClient(ABC):
    """Factory of device connections."""

    @abstractmethod
    async def open(self, host_name: str, device_id: str, primary_key: str) -> DeviceConnection:
        """Open a connection; raise AuthError on a bad or revoked key."""
        pass


class IdentityRegistry(ABC):
    """Cloud-side device identity registry."""

    @abstractmethod
    async def list_identities(self) -> List[DeviceIdentity]:
        pass

    @abstractmethod
    async def create_identity(self, device_id: str, status: str,
                              primary_key: str, secondary_key: str) -> None:
        """Create or overwrite the identity (upsert)."""
        pass

    async def close(self) -> None:
        pass


class ThingHandle(ABC):
    """One thing exposed by the gateway."""

    @abstractmethod
    def id(self) -> str:
        pass

    @property
    def title(self) -> Optional[str]:
        return None

    @abstractmethod
    async def connect(self) -> None:
        pass

    @abstractmethod
    def on_property_changed(self, callback: PropertyCallback) -> None:
        """Register *callback(property_name, value)* for every change."""
        pass

    async def close(self) -> None:
        pass


class ThingSource(ABC):
    """Gateway that exposes the things to bridge."""

    @abstractmethod
    async def list_things(self) -> List[ThingHandle]:
        pass

    async def close(self) -> None:
        pass
