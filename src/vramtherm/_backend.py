"""Vendor API protocol and the value types it returns."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable


class VendorError(RuntimeError):
    """A vendor-API call failed. Always scoped to a single call."""


class ClockKind(enum.Enum):
    SM = "sm"
    MEM = "mem"


@dataclass(frozen=True)
class PciIdentity:
    """PCI location of a device as reported by the vendor API."""

    domain: int
    bus: int
    device: int
    pci_device_id: int  # (device_id << 16) | vendor_id
    bus_id: str = ""

    @property
    def vendor_id(self) -> int:
        return self.pci_device_id & 0xFFFF

    @property
    def device_id(self) -> int:
        return (self.pci_device_id >> 16) & 0xFFFF


@dataclass(frozen=True)
class MemoryInfo:
    total: int
    free: int
    used: int


@dataclass(frozen=True)
class Utilization:
    gpu: int
    memory: int


@runtime_checkable
class VendorBackend(Protocol):
    """Structural protocol for the GPU management API.

    Every method except ``shutdown`` may raise :class:`VendorError`.
    """

    def init(self) -> None: ...

    def shutdown(self) -> None: ...

    def driver_version(self) -> str: ...

    def device_count(self) -> int: ...

    def handle_by_index(self, index: int) -> Any: ...

    def name(self, handle: Any) -> str: ...

    def uuid(self, handle: Any) -> str: ...

    def pci_info(self, handle: Any) -> PciIdentity: ...

    def temperature(self, handle: Any) -> int: ...

    def power_usage(self, handle: Any) -> int: ...

    def clock(self, handle: Any, kind: ClockKind) -> int: ...

    def fan_speed(self, handle: Any) -> int: ...

    def utilization(self, handle: Any) -> Utilization: ...

    def memory_info(self, handle: Any) -> MemoryInfo: ...

    def throttle_reasons(self, handle: Any) -> int: ...
