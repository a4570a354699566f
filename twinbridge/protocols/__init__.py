"""Collaborator interfaces and their hub / gateway implementations."""

from .base import (
    DeviceConnection,
    IdentityRegistry,
    ThingHandle,
    ThingSource,
    TransportClient,
    Twin,
)

from .connection_string import parse_connection_string, generate_sas_token
from .iothub_mqtt import IotHubMqttConnection, IotHubMqttTransport
from .iothub_registry import IotHubRegistry
from .webthings import WebThingsGateway

__all__ = [
    # Interfaces
    'DeviceConnection',
    'IdentityRegistry',
    'ThingHandle',
    'ThingSource',
    'TransportClient',
    'Twin',

    # Implementations
    'IotHubMqttConnection',
    'IotHubMqttTransport',
    'IotHubRegistry',
    'WebThingsGateway',

    # Helpers
    'parse_connection_string',
    'generate_sas_token',
]
