"""Rate-limited enabled/disabled snapshot of hub device identities."""
from __future__ import annotations
import asyncio
import logging
import time
from typing import Callable, Dict, Optional

from twinbridge.core.exceptions import RegistryListError
from twinbridge.protocols.base import IdentityRegistry
from twinbridge.utils.async_helpers import run_with_timeout


class StatusGate:
    """
    Decides whether updates for a device are forwarded at all.

    The disabled set is replaced wholesale from the registry listing, at most
    once per ``min_check_interval`` seconds (``None`` or <= 0 refreshes on
    every check). A failed listing keeps the previous snapshot.
    """

    def __init__(self, registry: IdentityRegistry, min_check_interval: Optional[float] = None, *,
                 clock: Callable[[], float] = time.monotonic, timeout: Optional[float] = None):
        self.registry = registry
        self.min_check_interval = min_check_interval
        self.clock = clock
        self.timeout = timeout
        self.last_refresh: Optional[float] = None
        self._disabled: Dict[str, bool] = {}
        self._inflight: Optional[asyncio.Task] = None
        self.log = logging.getLogger(self.__class__.__name__)

    def is_disabled(self, device_id: str) -> bool:
        return self._disabled.get(device_id, False)

    @property
    def snapshot(self) -> Dict[str, bool]:
        return dict(self._disabled)

    def is_stale(self, now: Optional[float] = None) -> bool:
        if self.last_refresh is None or not self.min_check_interval or self.min_check_interval <= 0:
            return True
        now = self.clock() if now is None else now
        return now - self.last_refresh > self.min_check_interval

    async def refresh_if_stale(self, now: Optional[float] = None) -> bool:
        """Refresh when the snapshot is older than the interval. True if a refresh ran."""
        if self._inflight is not None:
            await asyncio.shield(self._inflight)
            return False
        now = self.clock() if now is None else now
        if not self.is_stale(now):
            return False
        if self.last_refresh is not None:
            self.log.info("Time since last device update: %.1fs", now - self.last_refresh)
        await self.refresh(now)
        return True

    async def refresh(self, now: Optional[float] = None):
        """Replace the snapshot; concurrent callers share one registry listing."""
        if self._inflight is None:
            self.last_refresh = self.clock() if now is None else now
            self._inflight = asyncio.create_task(self._refresh())
            self._inflight.add_done_callback(self._clear_inflight)
        await asyncio.shield(self._inflight)

    def _clear_inflight(self, task: asyncio.Task):
        if self._inflight is task:
            self._inflight = None

    async def _refresh(self):
        try:
            identities = await run_with_timeout(
                self.registry.list_identities(), self.timeout, "Listing device identities",
                error=RegistryListError)
        except RegistryListError as e:
            self.log.error("Could not refresh device status, keeping previous snapshot: %s", e)
            return
        self._disabled = {identity.device_id: identity.disabled for identity in identities}
        self.log.debug("Device status refreshed: %d identities, %d disabled",
                       len(self._disabled), sum(self._disabled.values()))
