"""Data models and domain objects."""

from .bridge_models import (
    DeviceIdentity,
    StoredDevice,
    HubConnectionString,
    Batch,
)

__all__ = [
    'DeviceIdentity',
    'StoredDevice',
    'HubConnectionString',
    'Batch',
]
