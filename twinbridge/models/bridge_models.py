from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional


###############################################################################
# 1. DEVICE IDENTITY ----------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class DeviceIdentity:
    """Immutable projection of a hub registry device entry."""
    device_id: str
    status: str                        # "enabled" / "disabled"

    @property
    def disabled(self) -> bool:
        return self.status != "enabled"

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "DeviceIdentity":
        return cls(
            device_id = row["deviceId"],
            status    = row.get("status", "disabled"),
        )

###############################################################################
# 2. STORED CREDENTIAL --------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class StoredDevice:
    """One entry of the persisted ``devices`` list."""
    device_id: str
    primary_key: str

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "StoredDevice":
        return cls(device_id=row["id"], primary_key=row["primaryKey"])

    def to_row(self) -> Dict[str, Any]:
        return {"id": self.device_id, "primaryKey": self.primary_key}

###############################################################################
# 3. HUB CONNECTION STRING ----------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class HubConnectionString:
    host_name: Optional[str]
    shared_access_key_name: Optional[str] = None
    shared_access_key: Optional[str] = None
    device_id: Optional[str] = None

###############################################################################
# 4. BATCH --------------------------------------------------------------------
###############################################################################

@dataclass(slots=True)
class Batch:
    """Coalescing buffer of pending property values for one device.

    ``values`` is ordered by last write: re-writing a key moves it to the end.
    """
    device_id: str
    values: Dict[str, Any] = field(default_factory=dict)

    def put(self, key: str, value: Any) -> None:
        self.values.pop(key, None)
        self.values[key] = value

    def snapshot(self) -> Dict[str, Any]:
        return dict(self.values)

    def __len__(self) -> int:
        return len(self.values)
