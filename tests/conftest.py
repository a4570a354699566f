import pytest

from twinbridge.services import (
    CredentialStore, DeviceConnectionCache, IdentityProvisioner, StatusGate, UpdateCoalescer,
)
from tests.fakes import FakeClock, FakeRegistry, FakeTransport, MemoryConfigDatabase

HOST = "test-hub.azure-devices.net"


@pytest.fixture
def database():
    return MemoryConfigDatabase()


@pytest.fixture
def store(database):
    return CredentialStore(database)


@pytest.fixture
def registry():
    return FakeRegistry()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def provisioner(registry, store):
    return IdentityProvisioner(registry, store)


@pytest.fixture
def connections(transport, provisioner):
    return DeviceConnectionCache(HOST, transport, provisioner)


@pytest.fixture
def coalescer(connections):
    return UpdateCoalescer(connections, update_twin=True)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def gate(registry, clock):
    return StatusGate(registry, 60, clock=clock)
