# twinbridge/core/__init__.py
"""Core infrastructure components for the device-twin bridge."""

# Import order: most fundamental to most specific

from .exceptions import (
    BridgeError,
    ConfigurationError,
    AuthError,
    ProvisioningFailure,
    TransportError,
    RegistryError,
    RegistryListError,
)

from .patterns.state_machine import BridgeStateMachine, BridgeState


__all__ = [
    "BridgeStateMachine",
    "BridgeState",
    "BridgeError",        # make available at package root
    "ConfigurationError",
    "AuthError",
    "ProvisioningFailure",
    "TransportError",
    "RegistryError",
    "RegistryListError",
]
