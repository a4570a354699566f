"""Bridge from WebThings gateway property changes to IoT Hub telemetry and device twins."""

__version__ = '1.0.0'
__description__ = 'Lazy device provisioning and per-device update coalescing for IoT Hub'

# Core patterns - most fundamental
from .core import BridgeStateMachine, BridgeState, BridgeError

# Models - domain objects
from .models import DeviceIdentity, StoredDevice, HubConnectionString, Batch

# Services - business logic
from .services import (
    Bridge,
    CredentialStore,
    DeviceConnectionCache,
    IdentityProvisioner,
    StatusGate,
    UpdateCoalescer,
)

# Helpers
from .utils import sanitize_device_id

__all__ = [
    # Core
    'BridgeStateMachine',
    'BridgeState',
    'BridgeError',

    # Models
    'DeviceIdentity',
    'StoredDevice',
    'HubConnectionString',
    'Batch',

    # Services
    'Bridge',
    'CredentialStore',
    'DeviceConnectionCache',
    'IdentityProvisioner',
    'StatusGate',
    'UpdateCoalescer',

    'sanitize_device_id',
]
