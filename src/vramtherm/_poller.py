"""Telemetry poller: the periodic enumerate and publish loop."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from typing import TypeVar

from vramtherm._backend import ClockKind, VendorBackend, VendorError
from vramtherm._config import MetricConfig, MetricConfigStore, MetricKind
from vramtherm._host import HostCounters
from vramtherm._inventory import MAX_DEVICES, DeviceRecord, build_inventory
from vramtherm._pci import PciFunction
from vramtherm._registers import RegisterReader
from vramtherm._snapshot import SnapshotWriter, format_summaries, read_summaries

logger = logging.getLogger("vramtherm.poller")

POLL_INTERVAL_S = 5.0

_T = TypeVar("_T")

ReaderFactory = Callable[[], AbstractContextManager[RegisterReader]]
PciScanner = Callable[[], Sequence[PciFunction]]
HostCounterSource = Callable[[], HostCounters]


def _no_host_counters() -> HostCounters:
    return HostCounters()


class TelemetryPoller:
    """Single-threaded poll loop.

    Each cycle re-enumerates devices, collects vendor-API and register
    metrics for the enabled kinds, and publishes one snapshot. Per-device and
    per-metric failures are logged and skipped; only startup failures raise.
    """

    def __init__(
        self,
        backend: VendorBackend,
        config_store: MetricConfigStore,
        writer: SnapshotWriter,
        *,
        reader_factory: ReaderFactory,
        pci_scanner: PciScanner,
        host_counters: HostCounterSource = _no_host_counters,
        interval_s: float = POLL_INTERVAL_S,
        max_devices: int = MAX_DEVICES,
        echo: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._backend = backend
        self._config_store = config_store
        self._writer = writer
        self._reader_factory = reader_factory
        self._pci_scanner = pci_scanner
        self._host_counters = host_counters
        self._interval_s = interval_s
        self._max_devices = max_devices
        self._echo = echo
        self._sleep = sleep
        self._driver_version = ""
        self._started = False

    def start(self) -> None:
        """Initialize the vendor API. Raises VendorError on failure."""
        if self._started:
            return
        self._backend.init()
        try:
            count = self._backend.device_count()
        except VendorError:
            self._backend.shutdown()
            raise
        try:
            self._driver_version = self._backend.driver_version()
        except VendorError as exc:
            logger.warning("Driver version unavailable: %s", exc)
        self._config_store.load()
        self._started = True
        logger.info("Vendor API ready: %d device(s), driver %s", count, self._driver_version or "unknown")

    def stop(self) -> None:
        if self._started:
            self._backend.shutdown()
            self._started = False

    def run(self, cycles: int | None = None) -> None:
        """Poll until interrupted, or for ``cycles`` cycles when given."""
        self.start()
        try:
            done = 0
            while cycles is None or done < cycles:
                try:
                    self.poll_once()
                except Exception:  # noqa: BLE001
                    logger.exception("Poll cycle failed")
                done += 1
                if cycles is not None and done >= cycles:
                    break
                self._sleep(self._interval_s)
        finally:
            self.stop()

    def poll_once(self) -> list[DeviceRecord]:
        """Run one cycle: enumerate, collect, publish."""
        config = self._config_store.refresh()
        records = build_inventory(self._backend, self._pci_scanner(), max_devices=self._max_devices)
        for record in records:
            self._collect_device(record, config)

        try:
            self._writer.write(
                records,
                config,
                driver_version=self._driver_version,
                host=self._host_counters(),
            )
        except OSError:
            logger.error("Failed to publish snapshot %s", self._writer.path, exc_info=True)
            return records

        if self._echo:
            self._echo_snapshot()
        return records

    def _get(self, record: DeviceRecord, what: str, fn: Callable[[], _T]) -> _T | None:
        try:
            return fn()
        except VendorError as exc:
            logger.debug("Device %d: %s unavailable: %s", record.index, what, exc)
            return None

    def _collect_device(self, record: DeviceRecord, config: MetricConfig) -> None:
        backend = self._backend
        handle = record.handle

        if config.is_enabled(MetricKind.GPU_TEMP):
            record.gpu_temp = self._get(record, "temperature", lambda: backend.temperature(handle))
        if config.is_enabled(MetricKind.POWER_USAGE):
            record.power_mw = self._get(record, "power", lambda: backend.power_usage(handle))
        if config.is_enabled(MetricKind.SM_CLOCK):
            record.sm_clock = self._get(record, "SM clock", lambda: backend.clock(handle, ClockKind.SM))
        if config.is_enabled(MetricKind.MEM_CLOCK):
            record.mem_clock = self._get(record, "memory clock", lambda: backend.clock(handle, ClockKind.MEM))
        if config.is_enabled(MetricKind.FAN_SPEED):
            record.fan_speed = self._get(record, "fan speed", lambda: backend.fan_speed(handle))

        if config.any_enabled(MetricKind.GPU_UTIL, MetricKind.MEM_COPY_UTIL):
            util = self._get(record, "utilization", lambda: backend.utilization(handle))
            if util is not None:
                if config.is_enabled(MetricKind.GPU_UTIL):
                    record.gpu_util = util.gpu
                if config.is_enabled(MetricKind.MEM_COPY_UTIL):
                    record.mem_util = util.memory

        if config.any_enabled(MetricKind.FB_FREE, MetricKind.FB_USED):
            mem = self._get(record, "memory info", lambda: backend.memory_info(handle))
            if mem is not None:
                if config.is_enabled(MetricKind.FB_FREE):
                    record.fb_free = mem.free
                if config.is_enabled(MetricKind.FB_USED):
                    record.fb_used = mem.used

        if config.is_enabled(MetricKind.CLOCKS_THROTTLE_REASON):
            record.throttle_reasons = self._get(
                record, "throttle reasons", lambda: backend.throttle_reasons(handle)
            )

        if config.any_enabled(MetricKind.VRAM_TEMP, MetricKind.HOT_SPOT_TEMP):
            self._collect_registers(record, config)

    def _collect_registers(self, record: DeviceRecord, config: MetricConfig) -> None:
        if record.pci is None or record.identity is None:
            return
        bar0 = record.pci.bar0
        if bar0 == 0:
            logger.debug("Device %d: BAR0 unassigned, skipping register reads", record.index)
            return
        identity = record.identity
        try:
            with self._reader_factory() as reader:
                if config.is_enabled(MetricKind.VRAM_TEMP):
                    try:
                        record.vram_temp = reader.read_vram_temp(bar0, identity.vram_offset)
                    except OSError as exc:
                        logger.warning("Device %d: VRAM register read failed: %s", record.index, exc)
                if config.is_enabled(MetricKind.HOT_SPOT_TEMP):
                    try:
                        record.hotspot_temp = reader.read_hotspot_temp(bar0, identity.hotspot_offset)
                    except OSError as exc:
                        logger.warning("Device %d: hotspot register read failed: %s", record.index, exc)
                    else:
                        if record.hotspot_temp is None:
                            logger.debug("Device %d: hotspot sensor reading invalid", record.index)
        except OSError as exc:
            logger.warning(
                "Device %d: cannot open physical memory (%s). "
                "If running as root, enable kernel parameter iomem=relaxed",
                record.index,
                exc,
            )

    def _echo_snapshot(self) -> None:
        try:
            summaries = read_summaries(self._writer.path)
        except (OSError, ValueError):
            logger.warning("Cannot re-read snapshot for echo", exc_info=True)
            return
        if summaries:
            print(format_summaries(summaries), flush=True)
