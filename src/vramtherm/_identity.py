"""Static device identity table with register offsets per supported GPU model."""

from __future__ import annotations

from dataclasses import dataclass

NVIDIA_VENDOR_ID = 0x10DE

# Hotspot sensor lives at the same BAR0 offset across the whole family.
HOTSPOT_REGISTER_OFFSET = 0x0002046C


@dataclass(frozen=True)
class DeviceIdentity:
    """Immutable per-model register layout and naming."""

    vendor_id: int
    device_id: int
    vram_offset: int
    vram: str
    arch: str
    name: str
    hotspot_offset: int = HOTSPOT_REGISTER_OFFSET


def _nv(device_id: int, vram_offset: int, vram: str, arch: str, name: str) -> DeviceIdentity:
    return DeviceIdentity(NVIDIA_VENDOR_ID, device_id, vram_offset, vram, arch, name)


_TABLE: tuple[DeviceIdentity, ...] = (
    _nv(0x26B1, 0x0000E2A8, "GDDR6", "AD102", "RTX 6000 Ada"),
    _nv(0x2230, 0x0000E2A8, "GDDR6", "GA102", "RTX A6000"),
    _nv(0x2231, 0x0000E2A8, "GDDR6", "GA102", "RTX A5000"),
    _nv(0x2684, 0x0000E2A8, "GDDR6X", "AD102", "RTX 4090"),
    _nv(0x2704, 0x0000E2A8, "GDDR6X", "AD103", "RTX 4080"),
    _nv(0x2782, 0x0000E2A8, "GDDR6X", "AD104", "RTX 4070 Ti"),
    _nv(0x2786, 0x0000E2A8, "GDDR6X", "AD104", "RTX 4070"),
    _nv(0x2204, 0x0000E2A8, "GDDR6X", "GA102", "RTX 3090"),
    _nv(0x2208, 0x0000E2A8, "GDDR6X", "GA102", "RTX 3080 Ti"),
    _nv(0x2206, 0x0000E2A8, "GDDR6X", "GA102", "RTX 3080"),
    _nv(0x2216, 0x0000E2A8, "GDDR6X", "GA102", "RTX 3080 LHR"),
    _nv(0x2484, 0x0000EE50, "GDDR6", "GA104", "RTX 3070"),
    _nv(0x2488, 0x0000EE50, "GDDR6", "GA104", "RTX 3070 LHR"),
    _nv(0x2531, 0x0000E2A8, "GDDR6", "GA106", "RTX A2000"),
    _nv(0x2571, 0x0000E2A8, "GDDR6", "GA106", "RTX A2000"),
    _nv(0x2232, 0x0000E2A8, "GDDR6", "GA102", "RTX A4500"),
    _nv(0x27B8, 0x0000E2A8, "GDDR6", "AD104", "L4"),
    _nv(0x26B9, 0x0000E2A8, "GDDR6", "AD102", "L40S"),
)

DEVICE_TABLE: dict[tuple[int, int], DeviceIdentity] = {
    (d.vendor_id, d.device_id): d for d in _TABLE
}


def lookup_identity(vendor_id: int, device_id: int) -> DeviceIdentity | None:
    """Return the identity for a vendor:device pair, or None if unsupported."""
    return DEVICE_TABLE.get((vendor_id, device_id))
