"""In-memory stand-ins for the hub, registry, gateway and config database."""
from __future__ import annotations
import asyncio
import copy
import json
from typing import Any, Dict, List, Optional, Set

from twinbridge.core.exceptions import AuthError, RegistryListError, TransportError
from twinbridge.models import DeviceIdentity
from twinbridge.protocols.base import (
    DeviceConnection, IdentityRegistry, ThingHandle, ThingSource, TransportClient, Twin,
)
from twinbridge.services.credential_store import ConfigDatabase


class MemoryConfigDatabase(ConfigDatabase):
    def __init__(self, record: Optional[Dict[str, Any]] = None):
        self.record = record or {}
        self.saves = 0

    async def load(self) -> Dict[str, Any]:
        return copy.deepcopy(self.record)

    async def save(self, record: Dict[str, Any]) -> None:
        self.record = copy.deepcopy(record)
        self.saves += 1


class FakeRegistry(IdentityRegistry):
    def __init__(self, statuses: Optional[Dict[str, str]] = None):
        self.statuses: Dict[str, str] = dict(statuses or {})
        self.created: List[tuple] = []
        self.list_calls = 0
        self.fail_listing = False

    async def list_identities(self) -> List[DeviceIdentity]:
        self.list_calls += 1
        if self.fail_listing:
            raise RegistryListError("registry unavailable", 503)
        return [DeviceIdentity(device_id, status) for device_id, status in self.statuses.items()]

    async def create_identity(self, device_id, status, primary_key, secondary_key) -> None:
        self.created.append((device_id, status, primary_key, secondary_key))
        self.statuses[device_id] = status


class FakeTwin(Twin):
    def __init__(self, fail: bool = False):
        self.reported: Dict[str, Any] = {}
        self.patches: List[Dict[str, Any]] = []
        self.fail = fail

    async def update_reported(self, patch: Dict[str, Any]) -> None:
        if self.fail:
            raise TransportError("twin patch rejected")
        self.patches.append(dict(patch))
        self.reported.update(patch)


class FakeConnection(DeviceConnection):
    def __init__(self, transport: "FakeTransport", device_id: str, primary_key: str):
        self.transport = transport
        self.device_id = device_id
        self.primary_key = primary_key
        self.events: List[Dict[str, Any]] = []
        self.twin = FakeTwin(fail=transport.fail_twin_updates)
        self.twin_fetches = 0
        self.connected = True
        self.closed = False

    async def send_event(self, payload: bytes) -> None:
        if self.transport.fail_sends:
            raise TransportError("send failed")
        self.events.append(json.loads(payload))
        self.transport.sent.append((self.device_id, self.primary_key, json.loads(payload)))

    async def get_twin(self) -> Twin:
        self.twin_fetches += 1
        if self.transport.reject_all_twins or self.primary_key in self.transport.rejected_twin_keys:
            raise AuthError("twin fetch unauthorized")
        return self.twin

    async def close(self) -> None:
        self.closed = True
        self.connected = False


class FakeTransport(TransportClient):
    def __init__(self):
        self.opens: List[tuple] = []
        self.connections: List[FakeConnection] = []
        self.sent: List[tuple] = []
        self.rejected_keys: Set[str] = set()
        self.rejected_twin_keys: Set[str] = set()
        self.reject_all_twins = False
        self.reject_all = False
        self.fail_sends = False
        self.fail_twin_updates = False
        self.hold: Optional[asyncio.Event] = None

    async def open(self, host_name, device_id, primary_key) -> FakeConnection:
        self.opens.append((host_name, device_id, primary_key))
        if self.hold is not None:
            await self.hold.wait()
        if self.reject_all or primary_key in self.rejected_keys:
            raise AuthError(f"bad key for {device_id}")
        connection = FakeConnection(self, device_id, primary_key)
        self.connections.append(connection)
        return connection


class FakeThing(ThingHandle):
    def __init__(self, thing_id: str, title: Optional[str] = None, fail_connect: bool = False):
        self._id = thing_id
        self._title = title
        self.fail_connect = fail_connect
        self.callbacks = []
        self.connected = False
        self.closed = False

    def id(self) -> str:
        return self._id

    @property
    def title(self) -> Optional[str]:
        return self._title

    async def connect(self) -> None:
        if self.fail_connect:
            raise TransportError(f"cannot reach {self._id}")
        self.connected = True

    def on_property_changed(self, callback) -> None:
        self.callbacks.append(callback)

    def emit(self, name: str, value: Any):
        for callback in self.callbacks:
            callback(name, value)

    async def close(self) -> None:
        self.closed = True


class FakeThingSource(ThingSource):
    def __init__(self, things: List[FakeThing]):
        self.things = things
        self.closed = False

    async def list_things(self) -> List[ThingHandle]:
        return list(self.things)

    async def close(self) -> None:
        self.closed = True


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeResponse:
    """Async context manager standing in for an aiohttp response."""

    def __init__(self, status: int = 200, body: str = "", error: Optional[Exception] = None):
        self.status = status
        self.body = body
        self.error = error

    async def __aenter__(self):
        if self.error is not None:
            raise self.error
        return self

    async def __aexit__(self, *exc_info):
        return False

    async def text(self) -> str:
        return self.body

    async def json(self) -> Any:
        return json.loads(self.body)


class FakeSession:
    """Replays queued responses and records each request."""

    def __init__(self, *responses: FakeResponse):
        self.responses = list(responses)
        self.requests: List[tuple] = []

    def get(self, url, headers=None):
        self.requests.append(("GET", url, dict(headers or {}), None))
        return self.responses.pop(0)

    def put(self, url, json=None, headers=None):
        self.requests.append(("PUT", url, dict(headers or {}), json))
        return self.responses.pop(0)

    async def close(self):
        pass
