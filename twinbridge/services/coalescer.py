"""
Per-device coalescing of property updates into telemetry + twin flushes.

A device has at most one pending Batch. The first update for a device
creates the Batch and schedules a flush task; updates arriving before that
task starts are merged into the same Batch. The flush detaches the Batch
from the table as its very first step, so anything arriving while the send
is in flight opens a new Batch and a new flush instead of waiting.
"""

from __future__ import annotations
import asyncio
import json
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional, Set

from twinbridge.models import Batch
from twinbridge.services.connection_cache import DeviceConnectionCache
from twinbridge.utils.async_helpers import run_with_timeout


@dataclass
class FlushResult:
    device_id: str
    values: Dict[str, Any]
    connected: bool = False
    event_sent: bool = False
    twin_updated: Optional[bool] = None     # None when twin sync is off or never attempted


class UpdateCoalescer:
    def __init__(self, connections: DeviceConnectionCache, *, update_twin: bool = False,
                 timeout: Optional[float] = None):
        self.connections = connections
        self.update_twin = update_twin
        self.timeout = timeout
        self._batches: Dict[str, Batch] = {}
        self._table_lock = threading.Lock()
        self._flushes: Set[asyncio.Task] = set()
        self.log = logging.getLogger(self.__class__.__name__)

    # --------------------------------------------------------------------- #
    #  Public API
    # --------------------------------------------------------------------- #
    def on_property_changed(self, device_id: str, name: str, value: Any) -> Optional[asyncio.Task]:
        """Buffer one update. Returns the flush task when this call started one.

        Must be called from the event loop thread; never suspends.
        """
        with self._table_lock:
            batch = self._batches.get(device_id)
            if batch is not None:
                self.log.info("Adding %s=%r in %s to batch", name, value, device_id)
                batch.put(name, value)
                return None
            self.log.info("Creating batch for %s", device_id)
            batch = Batch(device_id)
            batch.put(name, value)
            self._batches[device_id] = batch

        task = asyncio.get_running_loop().create_task(self._flush(batch), name=f"flush-{device_id}")
        self._flushes.add(task)
        task.add_done_callback(self._flushes.discard)
        return task

    def pending(self, device_id: str) -> Optional[Batch]:
        with self._table_lock:
            return self._batches.get(device_id)

    @property
    def in_flight(self) -> int:
        return len(self._flushes)

    async def drain(self):
        """Wait for every flush started so far."""
        while self._flushes:
            await asyncio.gather(*list(self._flushes), return_exceptions=True)

    # --------------------------------------------------------------------- #
    #  Flush
    # --------------------------------------------------------------------- #
    def _detach(self, batch: Batch):
        with self._table_lock:
            if self._batches.get(batch.device_id) is batch:
                del self._batches[batch.device_id]

    async def _flush(self, batch: Batch) -> FlushResult:
        self._detach(batch)
        device_id = batch.device_id
        values = batch.snapshot()
        result = FlushResult(device_id, values)
        payload = json.dumps(values, default=str)

        try:
            connection = await self.connections.ensure_connection(device_id)
        except Exception as e:
            self.log.error("Could not create device for %s: %s", device_id, e)
            return result
        result.connected = True

        try:
            self.log.info("Sending event %s to %s", payload, device_id)
            await run_with_timeout(connection.send_event(payload.encode("utf-8")),
                                   self.timeout, f"Sending event to {device_id}")
            self.log.info("Sent event %s to %s", payload, device_id)
            result.event_sent = True
        except Exception as e:
            self.log.error("Could not send event to %s: %s", device_id, e)

        if self.update_twin:
            result.twin_updated = False
            try:
                self.log.info("Applying %s to twin %s", payload, device_id)
                twin = await self.connections.ensure_twin(device_id, connection)
                await run_with_timeout(twin.update_reported(values),
                                       self.timeout, f"Updating twin of {device_id}")
                self.log.info("Updated twin of %s with %s", device_id, payload)
                result.twin_updated = True
            except Exception as e:
                self.log.error("Could not update twin of %s: %s", device_id, e)

        return result
