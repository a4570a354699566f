"""Wires gateway things to the hub: status gate -> coalescer -> connections."""
from __future__ import annotations
import asyncio
import logging
from functools import partial
from typing import Any, Dict, Optional, Set

from twinbridge.core.exceptions import BridgeError
from twinbridge.core.patterns.state_machine import BridgeState, BridgeStateMachine
from twinbridge.protocols.base import ThingHandle, ThingSource
from twinbridge.services.coalescer import UpdateCoalescer
from twinbridge.services.connection_cache import DeviceConnectionCache
from twinbridge.services.status_gate import StatusGate
from twinbridge.utils.async_helpers import run_with_timeout
from twinbridge.utils.naming import sanitize_device_id


class Bridge:
    """Main orchestrator: one subscription per thing, one routing task per notification."""

    def __init__(self, things: ThingSource, gate: StatusGate, coalescer: UpdateCoalescer,
                 connections: DeviceConnectionCache, *, timeout: Optional[float] = None):
        self.things = things
        self.gate = gate
        self.coalescer = coalescer
        self.connections = connections
        self.timeout = timeout
        self.state_machine = BridgeStateMachine()
        self.subscriptions: Dict[str, ThingHandle] = {}
        self._routing: Set[asyncio.Task] = set()
        self.logger = logging.getLogger(self.__class__.__name__)

    @property
    def state(self) -> BridgeState:
        return self.state_machine.state

    # --------------------------------------------------------------------- #
    #  Public API
    # --------------------------------------------------------------------- #
    async def start(self) -> bool:
        """Initial status snapshot, thing discovery and subscription."""
        try:
            self.state_machine.transition(BridgeState.CONNECTING_HUB)
            await self.gate.refresh()

            self.state_machine.transition(BridgeState.DISCOVERING_THINGS)
            things = await run_with_timeout(self.things.list_things(), self.timeout, "Listing things")
        except BridgeError as e:
            self.logger.error("Bridge startup failed: %s", e)
            self.state_machine.transition(BridgeState.ERROR)
            return False

        for thing in things:
            await self._subscribe(thing)

        self.state_machine.transition(BridgeState.OPERATIONAL)
        self.logger.info("bridge ready (%d of %d things subscribed)", len(self.subscriptions), len(things))
        return True

    async def shutdown(self):
        """Graceful shutdown: stop subscriptions, finish flushes, close connections."""
        self.state_machine.transition(BridgeState.SHUTDOWN)
        for thing in self.subscriptions.values():
            try:
                await thing.close()
            except Exception as e:
                self.logger.warning("Error closing %s: %s", thing.id(), e)
        self.subscriptions.clear()
        await self.things.close()
        while self._routing:
            await asyncio.gather(*list(self._routing), return_exceptions=True)
        await self.coalescer.drain()
        await self.connections.close_all()
        self.logger.info("Bridge shutdown completed")

    def handle_property_changed(self, device_id: str, name: str, value: Any) -> asyncio.Task:
        """Thing callback: hand the notification to its own routing task."""
        task = asyncio.get_running_loop().create_task(self.route(device_id, name, value))
        self._routing.add(task)
        task.add_done_callback(self._routing.discard)
        return task

    async def route(self, device_id: str, name: str, value: Any) -> Optional[asyncio.Task]:
        """Gate one update and pass it to the coalescer. Returns the flush task it started, if any."""
        await self.gate.refresh_if_stale()
        self.logger.info("Updating %s=%r in %s", name, value, device_id)

        if self.gate.is_disabled(device_id):
            self.logger.info("Device %s is not enabled, ignoring update", device_id)
            return None
        return self.coalescer.on_property_changed(device_id, name, value)

    # --------------------------------------------------------------------- #
    #  Private helpers
    # --------------------------------------------------------------------- #
    async def _subscribe(self, thing: ThingHandle):
        original_id = thing.id()
        device_id = sanitize_device_id(original_id)
        try:
            thing.on_property_changed(partial(self.handle_property_changed, device_id))
            await run_with_timeout(thing.connect(), self.timeout, f"Connecting to {original_id}")
        except Exception as e:
            self.logger.error("Could not connect to %s: %s", original_id, e)
            return
        self.subscriptions[device_id] = thing
        self.logger.info("Successfully connected to %s (%s)", thing.title or original_id, original_id)
