"""Raw PCI bus enumeration from sysfs."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("vramtherm.pci")

DEFAULT_PCI_ROOT = "/sys/bus/pci/devices"

_ADDRESS_RE = re.compile(
    r"^(?P<domain>[0-9a-fA-F]{4,}):(?P<bus>[0-9a-fA-F]{2}):(?P<device>[0-9a-fA-F]{2})\.(?P<function>[0-7])$"
)


@dataclass(frozen=True)
class PciFunction:
    """One PCI function as seen on the raw bus."""

    domain: int
    bus: int
    device: int
    function: int
    vendor_id: int
    device_id: int
    device_class: int
    bar0: int

    @property
    def combined_id(self) -> int:
        """Vendor-API style id: device id in the high half, vendor in the low."""
        return (self.device_id << 16) | self.vendor_id

    @property
    def address(self) -> str:
        return f"{self.domain:04x}:{self.bus:02x}:{self.device:02x}.{self.function:x}"


def _read_hex(path: Path) -> int:
    return int(path.read_text(encoding="ascii").strip(), 16)


def _read_bar0(path: Path) -> int:
    """First column of the first line of ``resource`` is BAR0's start address."""
    with path.open(encoding="ascii") as f:
        first = f.readline().split()
    return int(first[0], 16) if first else 0


def _read_function(entry: Path) -> PciFunction | None:
    match = _ADDRESS_RE.match(entry.name)
    if match is None:
        return None
    try:
        return PciFunction(
            domain=int(match["domain"], 16),
            bus=int(match["bus"], 16),
            device=int(match["device"], 16),
            function=int(match["function"], 16),
            vendor_id=_read_hex(entry / "vendor"),
            device_id=_read_hex(entry / "device"),
            device_class=_read_hex(entry / "class") >> 8,
            bar0=_read_bar0(entry / "resource"),
        )
    except (OSError, ValueError):
        logger.debug("Skipping unreadable PCI entry %s", entry, exc_info=True)
        return None


def scan_pci(root: str | os.PathLike[str] = DEFAULT_PCI_ROOT) -> list[PciFunction]:
    """Walk the sysfs PCI device list, filling ids, class and BAR0.

    Entries are returned in bus address order. Unreadable entries are skipped.
    """
    root_path = Path(root)
    try:
        entries = sorted(root_path.iterdir(), key=lambda p: p.name)
    except OSError:
        logger.warning("Cannot list PCI devices under %s", root_path, exc_info=True)
        return []

    functions: list[PciFunction] = []
    for entry in entries:
        fn = _read_function(entry)
        if fn is not None:
            functions.append(fn)
    return functions
