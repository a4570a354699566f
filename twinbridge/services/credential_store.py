"""Persisted per-device primary keys."""
from __future__ import annotations
import asyncio
from abc import ABC, abstractmethod
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from twinbridge.models import StoredDevice

logger = logging.getLogger(__name__)


class ConfigDatabase(ABC):
    """Load/save of the whole configuration record."""

    @abstractmethod
    async def load(self) -> Dict[str, Any]:
        pass

    @abstractmethod
    async def save(self, record: Dict[str, Any]) -> None:
        pass


class JsonConfigDatabase(ConfigDatabase):
    """Configuration record kept in a single JSON file, written atomically."""

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)

    async def load(self) -> Dict[str, Any]:
        return await asyncio.to_thread(self._read)

    async def save(self, record: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._write, record)

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, record: Dict[str, Any]):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise


def migrate_devices(record: Dict[str, Any]) -> bool:
    """Convert an obsolete ``{"devices": {id: {...}}}`` record to list form in place.

    Returns True when the record was changed.
    """
    devices = record.get("devices")
    if isinstance(devices, list):
        return False
    if isinstance(devices, dict):
        record["devices"] = [{"id": key, **value} for key, value in devices.items()]
        return True
    return False


class CredentialStore:
    """
    Maps a device id to its primary key.

    Every operation reloads the record so keys written by another process are
    seen; writes are serialized so concurrent provisioning cannot drop entries.
    """

    def __init__(self, database: ConfigDatabase):
        self.database = database
        self._lock = asyncio.Lock()

    async def get(self, device_id: str) -> Optional[str]:
        logger.info("Loading primary key for %s", device_id)
        async with self._lock:
            record = await self._load()
        entry = _find(device_id, record.get("devices") or [])
        return entry.primary_key if entry else None

    async def put(self, device_id: str, primary_key: str) -> None:
        logger.info("Saving primary key for %s", device_id)
        async with self._lock:
            record = await self._load()
            devices = record.get("devices") or []
            for row in devices:
                if row.get("id") == device_id:
                    row["primaryKey"] = primary_key
                    break
            else:
                devices.append(StoredDevice(device_id, primary_key).to_row())
            record["devices"] = devices
            await self.database.save(record)

    async def _load(self) -> Dict[str, Any]:
        record = await self.database.load()
        if migrate_devices(record):
            logger.info("Migrated %d stored devices to list format", len(record["devices"]))
            await self.database.save(record)
        return record


def _find(device_id: str, rows: List[Dict[str, Any]]) -> Optional[StoredDevice]:
    for row in rows:
        if row.get("id") == device_id and row.get("primaryKey"):
            return StoredDevice.from_row(row)
    return None
