#!/usr/bin/env python3
import asyncio, logging, sys
from config.logging_config import configure
from config.app_config import settings
from twinbridge.core.exceptions import ConfigurationError
from twinbridge.protocols import (
    IotHubMqttTransport, IotHubRegistry, WebThingsGateway, parse_connection_string,
)
from twinbridge.services import (
    Bridge, CredentialStore, DeviceConnectionCache, IdentityProvisioner,
    JsonConfigDatabase, StatusGate, UpdateCoalescer,
)

log = logging.getLogger("main")


def build_bridge() -> Bridge:
    timeout = settings.NETWORK_TIMEOUT
    host_name = parse_connection_string(settings.HUB_CONNECTION_STRING).host_name

    registry = IotHubRegistry(settings.HUB_CONNECTION_STRING, timeout=timeout)
    store = CredentialStore(JsonConfigDatabase(settings.CREDENTIALS_FILE))
    provisioner = IdentityProvisioner(
        registry, store, new_device_status=settings.NEW_DEVICE_STATUS, timeout=timeout)
    connections = DeviceConnectionCache(
        host_name, IotHubMqttTransport(timeout=timeout), provisioner, timeout=timeout)
    gate = StatusGate(registry, settings.MIN_CHECK_DEVICE_STATUS_INTERVAL, timeout=timeout)
    coalescer = UpdateCoalescer(connections, update_twin=settings.UPDATE_TWIN, timeout=timeout)
    things = WebThingsGateway(settings.GATEWAY_URL, settings.ACCESS_TOKEN, timeout=timeout)
    return Bridge(things, gate, coalescer, connections, timeout=timeout)


async def async_main() -> int:
    configure()
    try:
        settings.validate()
        bridge = build_bridge()
    except ConfigurationError as e:
        log.error("%s", e)
        return 1

    try:
        if not await bridge.start():
            return 1
        # keep process alive
        while True:
            await asyncio.sleep(3600)
    finally:
        await bridge.shutdown()
        await bridge.gate.registry.close()

def cli():
    try:
        sys.exit(asyncio.run(async_main()))
    except KeyboardInterrupt:
        sys.exit("🌙  graceful shutdown")

if __name__ == "__main__":
    cli()
