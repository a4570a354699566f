"""Bridge services: credentials, provisioning, connections, gating and coalescing."""

from .credential_store import CredentialStore, ConfigDatabase, JsonConfigDatabase
from .provisioning import IdentityProvisioner
from .connection_cache import DeviceConnectionCache
from .status_gate import StatusGate
from .coalescer import UpdateCoalescer, FlushResult
from .bridge import Bridge

__all__ = [
    'CredentialStore',
    'ConfigDatabase',
    'JsonConfigDatabase',
    'IdentityProvisioner',
    'DeviceConnectionCache',
    'StatusGate',
    'UpdateCoalescer',
    'FlushResult',
    'Bridge',
]
