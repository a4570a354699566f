from __future__ import annotations
import asyncio
from typing import Awaitable, Type, TypeVar

from twinbridge.core.exceptions import BridgeError, TransportError

T = TypeVar("T")


async def run_with_timeout(aw: Awaitable[T], timeout: float | None, what: str,
                           error: Type[BridgeError] = TransportError) -> T:
    """Await *aw* for at most *timeout* seconds.

    A timeout is raised as *error* so callers handle it like any other
    failure of the same call. ``None`` or a non-positive timeout waits forever.
    """
    if timeout is None or timeout <= 0:
        return await aw
    try:
        return await asyncio.wait_for(aw, timeout)
    except asyncio.TimeoutError as e:
        raise error(f"{what} timed out after {timeout:g}s") from e
