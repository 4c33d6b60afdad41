"""Physical register reader using scoped one-page mappings of /dev/mem."""

from __future__ import annotations

import logging
import mmap
import os
import struct
from types import TracebackType

from vramtherm._cleanup import held

logger = logging.getLogger("vramtherm.registers")

DEFAULT_MEM_PATH = "/dev/mem"
PAGE_SIZE = mmap.PAGESIZE

VRAM_TEMP_MASK = 0x00000FFF
VRAM_TEMP_DIVISOR = 32
HOTSPOT_INVALID = 0x7F

_U32 = struct.Struct("<I")


def register_address(bar0: int, offset: int) -> int:
    return bar0 + offset


def page_base(address: int, page_size: int = PAGE_SIZE) -> int:
    """Align ``address`` down to its page boundary."""
    return address & ~(page_size - 1)


def decode_vram_temp(raw: int) -> int:
    """VRAM sensor: low 12 bits in 1/32 °C steps. Always 0..127."""
    return (raw & VRAM_TEMP_MASK) // VRAM_TEMP_DIVISOR


def decode_hotspot_temp(raw: int) -> int | None:
    """Hotspot sensor: byte 1 in °C. ``None`` when the sensor reads invalid."""
    temp = (raw >> 8) & 0xFF
    if temp >= HOTSPOT_INVALID:
        return None
    return temp


class RegisterReader:
    """Reads 32-bit registers out of physical memory.

    Use as a context manager: the device file is opened on enter and closed
    on exit. Each :meth:`read32` maps exactly one page and unmaps it before
    returning, so no mapping survives between reads.
    """

    def __init__(self, mem_path: str = DEFAULT_MEM_PATH) -> None:
        self._mem_path = mem_path
        self._fd = -1

    def __enter__(self) -> RegisterReader:
        self._fd = os.open(self._mem_path, os.O_RDWR | os.O_SYNC)
        held.mem_fd = self._fd
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def close(self) -> None:
        if self._fd != -1:
            held.mem_fd = -1
            os.close(self._fd)
            self._fd = -1

    def read32(self, address: int) -> int:
        """Return the raw 32-bit little-endian value at physical ``address``."""
        if self._fd == -1:
            raise OSError(f"{self._mem_path} is not open")
        base = page_base(address)
        try:
            mapping = mmap.mmap(self._fd, PAGE_SIZE, mmap.MAP_SHARED, mmap.PROT_READ, offset=base)
        except ValueError as exc:
            raise OSError(f"cannot map page {base:#x} of {self._mem_path}: {exc}") from exc
        held.mapping = mapping
        try:
            return _U32.unpack_from(mapping, address - base)[0]
        finally:
            held.mapping = None
            mapping.close()

    def read_vram_temp(self, bar0: int, offset: int) -> int:
        return decode_vram_temp(self.read32(register_address(bar0, offset)))

    def read_hotspot_temp(self, bar0: int, offset: int) -> int | None:
        return decode_hotspot_temp(self.read32(register_address(bar0, offset)))
