"""Shared fakes: vendor backend, sysfs PCI tree and a physical-memory file."""

from __future__ import annotations

import struct
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from vramtherm._backend import ClockKind, MemoryInfo, PciIdentity, Utilization, VendorError
from vramtherm._cleanup import held

GIB = 1024**3

# The register file must cover the hotspot page even with 64 KiB pages.
MEM_FILE_SIZE = 0x40000


@dataclass
class FakeGpu:
    uuid: str
    name: str = "NVIDIA GeForce RTX 3090"
    domain: int = 0
    bus: int = 1
    device: int = 0
    vendor_id: int = 0x10DE
    device_id: int = 0x2204
    temperature: int = 55
    power_mw: int = 250_000
    sm_clock: int = 1800
    mem_clock: int = 9751
    fan_speed: int = 40
    util_gpu: int = 90
    util_mem: int = 35
    mem_total: int = 24 * GIB
    mem_used: int = 8 * GIB
    throttle: int = 0
    fail: set[str] = field(default_factory=set)

    @property
    def pci_identity(self) -> PciIdentity:
        return PciIdentity(
            domain=self.domain,
            bus=self.bus,
            device=self.device,
            pci_device_id=(self.device_id << 16) | self.vendor_id,
            bus_id=f"{self.domain:08x}:{self.bus:02x}:{self.device:02x}.0",
        )


class FakeBackend:
    """In-memory vendor backend; handles are list indices."""

    def __init__(self, gpus: list[FakeGpu] | None = None, *, driver: str = "550.54.14") -> None:
        self.gpus = gpus or []
        self.driver = driver
        self.init_calls = 0
        self.shutdown_calls = 0
        self.fail_init = False
        self.fail_count = False

    def _gpu(self, handle: Any, what: str) -> FakeGpu:
        gpu = self.gpus[handle]
        if what in gpu.fail:
            raise VendorError(f"{what} not supported")
        return gpu

    def init(self) -> None:
        self.init_calls += 1
        if self.fail_init:
            raise VendorError("driver not loaded")

    def shutdown(self) -> None:
        self.shutdown_calls += 1

    def driver_version(self) -> str:
        return self.driver

    def device_count(self) -> int:
        if self.fail_count:
            raise VendorError("unknown error")
        return len(self.gpus)

    def handle_by_index(self, index: int) -> Any:
        self._gpu(index, "handle")
        return index

    def name(self, handle: Any) -> str:
        return self._gpu(handle, "name").name

    def uuid(self, handle: Any) -> str:
        return self._gpu(handle, "uuid").uuid

    def pci_info(self, handle: Any) -> PciIdentity:
        return self._gpu(handle, "pci_info").pci_identity

    def temperature(self, handle: Any) -> int:
        return self._gpu(handle, "temperature").temperature

    def power_usage(self, handle: Any) -> int:
        return self._gpu(handle, "power_usage").power_mw

    def clock(self, handle: Any, kind: ClockKind) -> int:
        gpu = self._gpu(handle, "clock")
        return gpu.sm_clock if kind is ClockKind.SM else gpu.mem_clock

    def fan_speed(self, handle: Any) -> int:
        return self._gpu(handle, "fan_speed").fan_speed

    def utilization(self, handle: Any) -> Utilization:
        gpu = self._gpu(handle, "utilization")
        return Utilization(gpu=gpu.util_gpu, memory=gpu.util_mem)

    def memory_info(self, handle: Any) -> MemoryInfo:
        gpu = self._gpu(handle, "memory_info")
        return MemoryInfo(total=gpu.mem_total, free=gpu.mem_total - gpu.mem_used, used=gpu.mem_used)

    def throttle_reasons(self, handle: Any) -> int:
        return self._gpu(handle, "throttle_reasons").throttle


def write_pci_entry(
    root: Path,
    *,
    domain: int = 0,
    bus: int = 1,
    device: int = 0,
    function: int = 0,
    vendor_id: int = 0x10DE,
    device_id: int = 0x2204,
    device_class: int = 0x030000,
    bar0: int = 0,
) -> Path:
    entry = root / f"{domain:04x}:{bus:02x}:{device:02x}.{function:x}"
    entry.mkdir(parents=True)
    (entry / "vendor").write_text(f"0x{vendor_id:04x}\n")
    (entry / "device").write_text(f"0x{device_id:04x}\n")
    (entry / "class").write_text(f"0x{device_class:06x}\n")
    end = bar0 + 0xFFFFFF if bar0 else 0
    (entry / "resource").write_text(
        f"0x{bar0:016x} 0x{end:016x} 0x0000000000040200\n"
        "0x0000000000000000 0x0000000000000000 0x0000000000000000\n"
    )
    return entry


def write_mem_file(path: Path, registers: dict[int, int], size: int = MEM_FILE_SIZE) -> Path:
    """Create a file standing in for /dev/mem with little-endian u32 values."""
    data = bytearray(size)
    for address, value in registers.items():
        struct.pack_into("<I", data, address, value)
    path.write_bytes(bytes(data))
    return path


@pytest.fixture(autouse=True)
def _clean_held_resources() -> Iterator[None]:
    yield
    held.mem_fd = -1
    held.mapping = None
    held.snapshot_file = None
    held.snapshot_tmp_path = None
