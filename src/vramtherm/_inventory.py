"""Device inventory: correlates vendor-API handles with raw PCI functions."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from vramtherm._backend import PciIdentity, VendorBackend, VendorError
from vramtherm._identity import DeviceIdentity, lookup_identity
from vramtherm._pci import PciFunction

logger = logging.getLogger("vramtherm.inventory")

MAX_DEVICES = 32


@dataclass
class DeviceRecord:
    """Per-cycle device state. Rebuilt from scratch every poll cycle.

    ``index`` follows vendor-API enumeration order and is only stable within
    one cycle; ``uuid`` is the identifier to track a card across cycles.
    Metric fields stay ``None`` until collected.
    """

    index: int
    uuid: str
    name: str
    handle: Any = None
    pci: PciFunction | None = None
    identity: DeviceIdentity | None = None

    gpu_temp: int | None = None
    power_mw: int | None = None
    sm_clock: int | None = None
    mem_clock: int | None = None
    fan_speed: int | None = None
    gpu_util: int | None = None
    mem_util: int | None = None
    fb_free: int | None = None
    fb_used: int | None = None
    vram_temp: int | None = None
    hotspot_temp: int | None = None
    throttle_reasons: int | None = None

    @property
    def bar0(self) -> int | None:
        return self.pci.bar0 if self.pci is not None else None

    @property
    def pci_address(self) -> str | None:
        return self.pci.address if self.pci is not None else None


def _matches(fn: PciFunction, ident: PciIdentity) -> bool:
    # Function number is not part of the key.
    return (
        fn.combined_id == ident.pci_device_id
        and fn.domain == ident.domain
        and fn.bus == ident.bus
        and fn.device == ident.device
    )


def correlate(
    ident: PciIdentity,
    pci_functions: Sequence[PciFunction],
    claimed: set[tuple[int, int, int]],
) -> PciFunction | None:
    """Return the first unclaimed PCI function matching ``ident``."""
    for fn in pci_functions:
        if (fn.domain, fn.bus, fn.device) in claimed:
            continue
        if _matches(fn, ident):
            return fn
    return None


def build_inventory(
    backend: VendorBackend,
    pci_functions: Sequence[PciFunction],
    *,
    max_devices: int = MAX_DEVICES,
) -> list[DeviceRecord]:
    """Enumerate vendor handles and pair each with its PCI function.

    A vendor-API failure for one index skips that index only. Handles with no
    PCI match are kept (they still get vendor-API metrics) but carry no BAR0.
    """
    try:
        count = backend.device_count()
    except VendorError as exc:
        logger.error("Device count query failed: %s", exc)
        return []

    records: list[DeviceRecord] = []
    claimed: set[tuple[int, int, int]] = set()

    for index in range(count):
        if len(records) >= max_devices:
            logger.warning(
                "Found %d devices, table holds %d; dropping the rest",
                count,
                max_devices,
            )
            break
        try:
            handle = backend.handle_by_index(index)
            name = backend.name(handle)
            uuid = backend.uuid(handle)
            ident = backend.pci_info(handle)
        except VendorError as exc:
            logger.warning("Skipping device %d: %s", index, exc)
            continue

        record = DeviceRecord(index=index, uuid=uuid, name=name, handle=handle)
        fn = correlate(ident, pci_functions, claimed)
        if fn is None:
            logger.debug("No PCI match for device %d (%s)", index, ident.bus_id or uuid)
        else:
            claimed.add((fn.domain, fn.bus, fn.device))
            record.pci = fn
            record.identity = lookup_identity(fn.vendor_id, fn.device_id)
            if record.identity is None:
                logger.debug(
                    "Device %d (%04x:%04x) has no register layout entry",
                    index,
                    fn.vendor_id,
                    fn.device_id,
                )
        records.append(record)

    return records
