"""
IoT Hub device transport over MQTT.

Each device identity gets its own paho client authenticated with a SAS token
derived from the device's primary key. Paho callbacks run on paho's network
thread; everything they produce is handed back to the asyncio loop with
``call_soon_threadsafe``.
"""

from __future__ import annotations
import asyncio
import json
import logging
import ssl
import urllib.parse
from itertools import count
from typing import Any, Dict, Optional, Tuple

import paho.mqtt.client as mqtt

from twinbridge.core.exceptions import AuthError, TransportError
from twinbridge.protocols.base import DeviceConnection, TransportClient, Twin
from twinbridge.protocols.connection_string import generate_sas_token
from twinbridge.utils.async_helpers import run_with_timeout

MQTT_PORT = 8883
API_VERSION = "2021-04-12"
TWIN_RESPONSE_TOPIC = "$iothub/twin/res/#"

# CONNACK return codes (3.1.1) and their MQTT 5 reason code equivalents
_AUTH_REJECTED = {4, 5, 134, 135}


def _parse_twin_response(topic: str) -> Tuple[int, Optional[str]]:
    """``$iothub/twin/res/{status}/?$rid={rid}`` -> (status, rid)."""
    path, _, query = topic.partition("?")
    status = int(path.rstrip("/").rsplit("/", 1)[-1])
    rid = urllib.parse.parse_qs(query).get("$rid", [None])[0]
    return status, rid


class IotHubTwin(Twin):
    def __init__(self, connection: "IotHubMqttConnection", document: Dict[str, Any]):
        self._connection = connection
        self.document = document

    @property
    def reported(self) -> Dict[str, Any]:
        return self.document.setdefault("reported", {})

    async def update_reported(self, patch: Dict[str, Any]) -> None:
        status, _ = await self._connection._twin_request(
            "$iothub/twin/PATCH/properties/reported/", json.dumps(patch))
        if status >= 300:
            raise TransportError(
                f"Reported properties update for {self._connection.device_id} failed with status {status}")
        self.reported.update(patch)


class IotHubMqttConnection(DeviceConnection):
    """
    One MQTT session to the hub on behalf of a single device.

    Features:
    - SAS token authentication
    - Telemetry publish with QoS 1 acknowledgement
    - Twin GET / reported PATCH request-response over ``$iothub/twin``
    """

    def __init__(self, host_name: str, device_id: str, primary_key: str, *,
                 timeout: float = 30.0, token_ttl: int = 24 * 3600):
        self.host_name = host_name
        self.device_id = device_id
        self._primary_key = primary_key
        self._timeout = timeout
        self._token_ttl = token_ttl
        self.client: Optional[mqtt.Client] = None
        self.loop: Optional[asyncio.AbstractEventLoop] = None
        self._connected: Optional[asyncio.Future] = None
        self._pending: Dict[str, asyncio.Future] = {}
        self._rids = count(1)
        self._is_connected = False
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def connected(self) -> bool:
        return self._is_connected

    # --------------------------------------------------------------------- #
    #  Lifecycle
    # --------------------------------------------------------------------- #
    async def open(self):
        self.loop = asyncio.get_running_loop()
        self._connected = self.loop.create_future()

        self.client = mqtt.Client(
            callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
            client_id=self.device_id,
            protocol=mqtt.MQTTv311,
        )
        self.client.username_pw_set(
            username=f"{self.host_name}/{self.device_id}/?api-version={API_VERSION}",
            password=generate_sas_token(
                f"{self.host_name}/devices/{self.device_id}", self._primary_key, ttl=self._token_ttl),
        )
        self.client.tls_set_context(ssl.create_default_context())
        self.client.on_connect = self._on_connect
        self.client.on_disconnect = self._on_disconnect
        self.client.on_message = self._on_message

        try:
            self.client.connect_async(self.host_name, MQTT_PORT, keepalive=60)
            self.client.loop_start()
            await run_with_timeout(self._connected, self._timeout, f"Connecting {self.device_id}")
        except Exception:
            await self.close()
            raise

        result, _ = self.client.subscribe(TWIN_RESPONSE_TOPIC, qos=0)
        if result != mqtt.MQTT_ERR_SUCCESS:
            await self.close()
            raise TransportError(f"Failed to subscribe to {TWIN_RESPONSE_TOPIC}: {result}")
        return self

    async def close(self) -> None:
        client, self.client = self.client, None
        self._is_connected = False
        self._fail_pending(TransportError(f"Connection to {self.device_id} closed"))
        if client is None:
            return
        await asyncio.to_thread(self._shutdown_client, client)

    @staticmethod
    def _shutdown_client(client: mqtt.Client):
        client.disconnect()
        client.loop_stop()

    # --------------------------------------------------------------------- #
    #  DeviceConnection
    # --------------------------------------------------------------------- #
    async def send_event(self, payload: bytes) -> None:
        if not self.client or not self._is_connected:
            raise TransportError(f"Device {self.device_id} is not connected")

        info = self.client.publish(f"devices/{self.device_id}/messages/events/", payload, qos=1)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"Publishing event for {self.device_id} failed: {mqtt.error_string(info.rc)}")

        await run_with_timeout(
            asyncio.to_thread(info.wait_for_publish, self._timeout),
            self._timeout, f"Sending event for {self.device_id}")
        if not info.is_published():
            raise TransportError(f"Event for {self.device_id} was not acknowledged")

    async def get_twin(self) -> IotHubTwin:
        status, body = await self._twin_request("$iothub/twin/GET/", "")
        if status in (401, 403):
            raise AuthError(f"Twin fetch for {self.device_id} rejected with status {status}")
        if status >= 300:
            raise TransportError(f"Twin fetch for {self.device_id} failed with status {status}")
        return IotHubTwin(self, json.loads(body) if body else {})

    # --------------------------------------------------------------------- #
    #  Twin request/response
    # --------------------------------------------------------------------- #
    async def _twin_request(self, topic: str, payload: str) -> Tuple[int, bytes]:
        if not self.client or not self._is_connected:
            raise TransportError(f"Device {self.device_id} is not connected")

        rid = str(next(self._rids))
        future = self.loop.create_future()
        self._pending[rid] = future
        try:
            info = self.client.publish(f"{topic}?$rid={rid}", payload, qos=0)
            if info.rc != mqtt.MQTT_ERR_SUCCESS:
                raise TransportError(f"Twin request for {self.device_id} failed: {mqtt.error_string(info.rc)}")
            return await run_with_timeout(future, self._timeout, f"Twin request for {self.device_id}")
        finally:
            self._pending.pop(rid, None)

    def _resolve(self, rid: Optional[str], status: int, body: bytes):
        future = self._pending.get(rid) if rid else None
        if future is not None and not future.done():
            future.set_result((status, body))

    def _fail_pending(self, error: Exception):
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    def _settle_connect(self, error: Optional[Exception]):
        self._is_connected = error is None
        if self._connected is None or self._connected.done():
            return
        if error is None:
            self._connected.set_result(True)
        else:
            self._connected.set_exception(error)

    # MQTT Event Callbacks (paho network thread)
    def _on_connect(self, client, userdata, flags, reason_code, properties):
        code = getattr(reason_code, "value", reason_code)
        if not reason_code.is_failure:
            self.logger.debug("Connected %s to %s", self.device_id, self.host_name)
            error = None
        elif code in _AUTH_REJECTED:
            error = AuthError(f"Hub rejected credentials for {self.device_id}: {reason_code}")
        else:
            error = TransportError(f"Connection for {self.device_id} refused: {reason_code}")
        self.loop.call_soon_threadsafe(self._settle_connect, error)

    def _on_disconnect(self, client, userdata, disconnect_flags, reason_code, properties):
        if reason_code.is_failure:
            self.logger.warning("Unexpected disconnection of %s (%s)", self.device_id, reason_code)
        error = TransportError(f"Device {self.device_id} disconnected: {reason_code}")
        self.loop.call_soon_threadsafe(self._on_lost, error)

    def _on_lost(self, error: Exception):
        self._is_connected = False
        self._fail_pending(error)
        if self._connected is not None and not self._connected.done():
            self._connected.set_exception(error)

    def _on_message(self, client, userdata, msg):
        if not msg.topic.startswith("$iothub/twin/res/"):
            return
        try:
            status, rid = _parse_twin_response(msg.topic)
        except ValueError:
            self.logger.warning("Ignoring malformed twin response topic %r", msg.topic)
            return
        self.loop.call_soon_threadsafe(self._resolve, rid, status, msg.payload)


class IotHubMqttTransport(TransportClient):
    """Opens one IotHubMqttConnection per device."""

    def __init__(self, *, timeout: float = 30.0):
        self.timeout = timeout

    async def open(self, host_name: str, device_id: str, primary_key: str) -> IotHubMqttConnection:
        connection = IotHubMqttConnection(host_name, device_id, primary_key, timeout=self.timeout)
        return await connection.open()
