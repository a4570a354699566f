"""
Centralised exception definitions for the device-twin bridge.
All custom exceptions should inherit from BridgeError.
"""

class BridgeError(Exception):
    """Base class for every custom exception thrown by this project."""

class ConfigurationError(BridgeError):
    """Raised when configuration files or environment variables are invalid."""

class AuthError(BridgeError):
    """The hub rejected a device connection or twin fetch because of its key."""

class ProvisioningFailure(BridgeError):
    """A device could not be connected even after recreating its credential."""

class TransportError(BridgeError):
    """Network failure on send, twin update or connection that is not auth related."""

class RegistryError(BridgeError):
    """The identity registry refused or failed a create/update call."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status

class RegistryListError(RegistryError):
    """Listing device identities failed; callers keep their previous snapshot."""
