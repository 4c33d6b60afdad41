"""NVIDIA pynvml vendor backend."""

from __future__ import annotations

import logging
import warnings
from collections.abc import Callable
from typing import Any, TypeVar

from vramtherm._backend import ClockKind, MemoryInfo, PciIdentity, Utilization, VendorError

logger = logging.getLogger("vramtherm.nvml")

# pynvml is optional at import time; NvmlBackend() raises without it.
warnings.filterwarnings("ignore", category=FutureWarning, message=".*pynvml.*deprecated.*")
try:
    import pynvml

    _HAS_PYNVML = True
except ImportError:
    pynvml = None  # type: ignore[assignment,unused-ignore]
    _HAS_PYNVML = False

_T = TypeVar("_T")


def _text(value: str | bytes) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


class NvmlBackend:
    """Vendor backend over NVML. Every NVMLError surfaces as VendorError."""

    def __init__(self) -> None:
        if not _HAS_PYNVML:
            raise VendorError("pynvml is not installed")

    def _call(self, fn: Callable[..., _T], *args: Any) -> _T:
        try:
            return fn(*args)
        except pynvml.NVMLError as exc:
            raise VendorError(f"{fn.__name__}: {exc}") from exc

    def init(self) -> None:
        assert pynvml is not None
        self._call(pynvml.nvmlInit)

    def shutdown(self) -> None:
        try:
            assert pynvml is not None
            pynvml.nvmlShutdown()
        except Exception:  # noqa: BLE001
            logger.debug("nvmlShutdown failed", exc_info=True)

    def driver_version(self) -> str:
        assert pynvml is not None
        return _text(self._call(pynvml.nvmlSystemGetDriverVersion))

    def device_count(self) -> int:
        assert pynvml is not None
        return int(self._call(pynvml.nvmlDeviceGetCount))

    def handle_by_index(self, index: int) -> Any:
        assert pynvml is not None
        return self._call(pynvml.nvmlDeviceGetHandleByIndex, index)

    def name(self, handle: Any) -> str:
        assert pynvml is not None
        return _text(self._call(pynvml.nvmlDeviceGetName, handle))

    def uuid(self, handle: Any) -> str:
        assert pynvml is not None
        return _text(self._call(pynvml.nvmlDeviceGetUUID, handle))

    def pci_info(self, handle: Any) -> PciIdentity:
        assert pynvml is not None
        info = self._call(pynvml.nvmlDeviceGetPciInfo, handle)
        return PciIdentity(
            domain=int(info.domain),
            bus=int(info.bus),
            device=int(info.device),
            pci_device_id=int(info.pciDeviceId),
            bus_id=_text(info.busId),
        )

    def temperature(self, handle: Any) -> int:
        assert pynvml is not None
        return int(self._call(pynvml.nvmlDeviceGetTemperature, handle, pynvml.NVML_TEMPERATURE_GPU))

    def power_usage(self, handle: Any) -> int:
        """Power draw in milliwatts."""
        assert pynvml is not None
        return int(self._call(pynvml.nvmlDeviceGetPowerUsage, handle))

    def clock(self, handle: Any, kind: ClockKind) -> int:
        assert pynvml is not None
        clock_type = pynvml.NVML_CLOCK_SM if kind is ClockKind.SM else pynvml.NVML_CLOCK_MEM
        return int(self._call(pynvml.nvmlDeviceGetClockInfo, handle, clock_type))

    def fan_speed(self, handle: Any) -> int:
        assert pynvml is not None
        return int(self._call(pynvml.nvmlDeviceGetFanSpeed, handle))

    def utilization(self, handle: Any) -> Utilization:
        assert pynvml is not None
        util = self._call(pynvml.nvmlDeviceGetUtilizationRates, handle)
        return Utilization(gpu=int(util.gpu), memory=int(util.memory))

    def memory_info(self, handle: Any) -> MemoryInfo:
        assert pynvml is not None
        mem = self._call(pynvml.nvmlDeviceGetMemoryInfo, handle)
        return MemoryInfo(total=int(mem.total), free=int(mem.free), used=int(mem.used))

    def throttle_reasons(self, handle: Any) -> int:
        assert pynvml is not None
        # Newer drivers rename throttle reasons to "clock event reasons".
        getter = getattr(pynvml, "nvmlDeviceGetCurrentClocksEventReasons", None)
        if getter is None:
            getter = pynvml.nvmlDeviceGetCurrentClocksThrottleReasons
        return int(self._call(getter, handle))
