"""
WebThings gateway client.

Things are listed over the REST API and each connected thing keeps a
websocket open to receive ``propertyStatus`` messages.
"""

from __future__ import annotations
import asyncio
import json
import logging
import urllib.parse
from typing import Any, Dict, List, Optional

import aiohttp

from twinbridge.core.exceptions import TransportError
from twinbridge.protocols.base import PropertyCallback, ThingHandle, ThingSource


def thing_id_from_description(description: Dict[str, Any]) -> str:
    """Last path segment of the thing's ``id`` URL or ``href``."""
    ref = description.get("id") or description.get("href") or ""
    path = urllib.parse.urlparse(ref).path or ref
    return urllib.parse.unquote(path.rstrip("/").rsplit("/", 1)[-1])


def property_changes(message: Dict[str, Any]) -> List[tuple]:
    """``propertyStatus`` message -> [(name, value), ...]; anything else -> []."""
    if message.get("messageType") != "propertyStatus":
        return []
    data = message.get("data") or {}
    return list(data.items())


class WebThing(ThingHandle):
    def __init__(self, gateway: "WebThingsGateway", description: Dict[str, Any]):
        self._gateway = gateway
        self.description = description
        self._id = thing_id_from_description(description)
        self._callbacks: List[PropertyCallback] = []
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None
        self.running = False
        self.logger = logging.getLogger(self.__class__.__name__)

    def id(self) -> str:
        return self._id

    @property
    def title(self) -> Optional[str]:
        return self.description.get("title")

    def on_property_changed(self, callback: PropertyCallback) -> None:
        self._callbacks.append(callback)

    async def connect(self) -> None:
        self.running = True
        self._ws = await self._gateway.open_websocket(self._id)
        self._reader = asyncio.create_task(self._read_loop(), name=f"webthing-{self._id}")

    async def close(self) -> None:
        self.running = False
        if self._reader is not None:
            self._reader.cancel()
            await asyncio.gather(self._reader, return_exceptions=True)
            self._reader = None
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

    def dispatch(self, message: Dict[str, Any]):
        for name, value in property_changes(message):
            for callback in self._callbacks:
                try:
                    callback(name, value)
                except Exception as e:
                    self.logger.error("Error in property callback of %s: %s", self._id, e, exc_info=True)

    async def _read_loop(self):
        while self.running:
            try:
                async for msg in self._ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        try:
                            self.dispatch(json.loads(msg.data))
                        except json.JSONDecodeError:
                            self.logger.warning("Ignoring non-JSON message from %s", self._id)
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        break
            except aiohttp.ClientError as e:
                self.logger.error("Websocket error for %s: %s", self._id, e)

            if not self.running:
                return
            self.logger.warning("Websocket for %s closed, reconnecting", self._id)
            try:
                self._ws = await self._gateway.reconnect_websocket(self._id, lambda: self.running)
            except TransportError as e:
                self.logger.error("Giving up on %s: %s", self._id, e)
                self.running = False


class WebThingsGateway(ThingSource):
    """Thing source backed by a WebThings gateway."""

    def __init__(self, base_url: str, access_token: str, *, timeout: float = 30.0,
                 max_retries: int = 5, retry_delay: float = 1.0, max_retry_delay: float = 60.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self._token = access_token
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.max_retry_delay = max_retry_delay
        self._session = session
        self._owns_session = session is None
        self._things: List[WebThing] = []
        self.logger = logging.getLogger(self.__class__.__name__)

    async def list_things(self) -> List[WebThing]:
        url = f"{self.base_url}/things"
        try:
            async with self._client().get(url, headers=self._headers()) as resp:
                if resp.status != 200:
                    raise TransportError(f"Listing things failed with HTTP {resp.status}")
                descriptions = await resp.json()
        except aiohttp.ClientError as e:
            raise TransportError(f"Listing things failed: {e}") from e

        self._things = [WebThing(self, d) for d in descriptions]
        self.logger.info("Gateway reports %d things", len(self._things))
        return list(self._things)

    async def open_websocket(self, thing_id: str) -> aiohttp.ClientWebSocketResponse:
        try:
            return await self._client().ws_connect(self._ws_url(thing_id), heartbeat=30)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"Websocket to {thing_id} failed: {e}") from e

    async def reconnect_websocket(self, thing_id: str, keep_going) -> aiohttp.ClientWebSocketResponse:
        """Reopen a websocket with exponential backoff."""
        retry_count = 0
        while keep_going():
            try:
                return await self.open_websocket(thing_id)
            except TransportError as e:
                retry_count += 1
                if retry_count >= self.max_retries:
                    raise TransportError(
                        f"Failed to reconnect {thing_id} after {self.max_retries} attempts: {e}") from e
                delay = min(self.retry_delay * (2 ** (retry_count - 1)), self.max_retry_delay)
                self.logger.warning("Reconnect attempt %d for %s failed: %s. Retrying in %.2fs...",
                                    retry_count, thing_id, e, delay)
                await asyncio.sleep(delay)
        raise TransportError(f"Reconnect of {thing_id} abandoned")

    async def close(self) -> None:
        for thing in self._things:
            await thing.close()
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def _client(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._token}", "Accept": "application/json"}

    def _ws_url(self, thing_id: str) -> str:
        parts = urllib.parse.urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        query = urllib.parse.urlencode({"jwt": self._token})
        path = f"{parts.path}/things/{urllib.parse.quote(thing_id, safe='')}"
        return urllib.parse.urlunsplit((scheme, parts.netloc, path, query, ""))
