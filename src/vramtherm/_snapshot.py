"""Snapshot writer: renders device metrics in Prometheus text format and
publishes them atomically by rename."""

from __future__ import annotations

import logging
import os
import socket
from collections.abc import Callable, Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily, Metric
from prometheus_client.parser import text_string_to_metric_families
from prometheus_client.registry import Collector

from vramtherm._cleanup import held
from vramtherm._config import MetricConfig, MetricKind
from vramtherm._host import HostCounters
from vramtherm._inventory import DeviceRecord
from vramtherm._throttle import active_reasons

logger = logging.getLogger("vramtherm.snapshot")

DEVICE_LABELS: tuple[str, ...] = (
    "gpu",
    "UUID",
    "device",
    "modelName",
    "Hostname",
    "DCGM_FI_DRIVER_VERSION",
)
REASON_LABEL = "reason"

PENDING_UPDATES_METRIC = "host_pending_package_updates"
AER_ERRORS_METRIC = "host_pcie_aer_errors"

_MIB = 1024 * 1024


def _mib(value: int | None) -> int | None:
    return value // _MIB if value is not None else None


def _watts(value: int | None) -> float | None:
    return value / 1000.0 if value is not None else None


@dataclass(frozen=True)
class _MetricDef:
    kind: MetricKind
    help: str
    value: Callable[[DeviceRecord], float | int | None]


_GAUGES: tuple[_MetricDef, ...] = (
    _MetricDef(MetricKind.GPU_TEMP, "GPU temperature (in C).", lambda r: r.gpu_temp),
    _MetricDef(MetricKind.POWER_USAGE, "Power draw (in W).", lambda r: _watts(r.power_mw)),
    _MetricDef(MetricKind.SM_CLOCK, "SM clock frequency (in MHz).", lambda r: r.sm_clock),
    _MetricDef(MetricKind.MEM_CLOCK, "Memory clock frequency (in MHz).", lambda r: r.mem_clock),
    _MetricDef(MetricKind.FAN_SPEED, "Fan speed (in %).", lambda r: r.fan_speed),
    _MetricDef(MetricKind.GPU_UTIL, "GPU utilization (in %).", lambda r: r.gpu_util),
    _MetricDef(MetricKind.MEM_COPY_UTIL, "Memory utilization (in %).", lambda r: r.mem_util),
    _MetricDef(MetricKind.FB_FREE, "Framebuffer memory free (in MiB).", lambda r: _mib(r.fb_free)),
    _MetricDef(MetricKind.FB_USED, "Framebuffer memory used (in MiB).", lambda r: _mib(r.fb_used)),
    _MetricDef(MetricKind.VRAM_TEMP, "VRAM temperature (in C).", lambda r: r.vram_temp),
    _MetricDef(MetricKind.HOT_SPOT_TEMP, "Hot Spot temperature (in C).", lambda r: r.hotspot_temp),
)

_THROTTLE_HELP = "Individual throttle reason for GPU clocks."


class _SnapshotCollector(Collector):
    """One-shot collector over a finished DeviceRecord list."""

    def __init__(
        self,
        records: Sequence[DeviceRecord],
        config: MetricConfig,
        *,
        hostname: str,
        driver_version: str,
        host: HostCounters,
    ) -> None:
        self._records = records
        self._config = config
        self._hostname = hostname
        self._driver_version = driver_version
        self._host = host

    def _device_labels(self, record: DeviceRecord) -> list[str]:
        return [
            str(record.index),
            record.uuid,
            f"nvidia{record.index}",
            record.name,
            self._hostname,
            self._driver_version,
        ]

    def collect(self) -> Iterator[Metric]:
        for defn in _GAUGES:
            if not self._config.is_enabled(defn.kind):
                continue
            family = GaugeMetricFamily(defn.kind.value, defn.help, labels=DEVICE_LABELS)
            for record in self._records:
                value = defn.value(record)
                if value is not None:
                    family.add_metric(self._device_labels(record), value)
            yield family

        if self._config.is_enabled(MetricKind.CLOCKS_THROTTLE_REASON):
            family = GaugeMetricFamily(
                MetricKind.CLOCKS_THROTTLE_REASON.value,
                _THROTTLE_HELP,
                labels=(*DEVICE_LABELS, REASON_LABEL),
            )
            for record in self._records:
                if record.throttle_reasons is None:
                    continue
                labels = self._device_labels(record)
                for reason, active in active_reasons(record.throttle_reasons):
                    family.add_metric([*labels, reason.label], 1 if active else 0)
            yield family

        if self._host.pending_package_updates is not None:
            yield GaugeMetricFamily(
                PENDING_UPDATES_METRIC,
                "Number of pending OS package updates.",
                value=self._host.pending_package_updates,
            )
        if self._host.pcie_aer_errors is not None:
            yield CounterMetricFamily(
                AER_ERRORS_METRIC,
                "PCIe AER error lines found in the system log.",
                value=self._host.pcie_aer_errors,
            )


class SnapshotWriter:
    """Renders and publishes the metrics snapshot file.

    Publication writes a sibling temp file, fsyncs it and renames it over the
    published path. Readers only ever see a complete snapshot.
    """

    def __init__(self, path: str | os.PathLike[str], *, hostname: str | None = None) -> None:
        self._path = Path(path)
        self._hostname = hostname if hostname is not None else socket.gethostname()

    @property
    def path(self) -> Path:
        return self._path

    def render(
        self,
        records: Sequence[DeviceRecord],
        config: MetricConfig,
        *,
        driver_version: str = "",
        host: HostCounters | None = None,
    ) -> bytes:
        registry = CollectorRegistry(auto_describe=False)
        registry.register(_SnapshotCollector(
            records,
            config,
            hostname=self._hostname,
            driver_version=driver_version,
            host=host or HostCounters(),
        ))
        return generate_latest(registry)

    def publish(self, payload: bytes) -> None:
        """Atomically replace the published snapshot with ``payload``."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = f"{self._path}.{os.getpid()}.tmp"
        held.snapshot_tmp_path = tmp_path
        try:
            f = open(tmp_path, "wb")  # noqa: SIM115
            held.snapshot_file = f
            try:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            finally:
                held.snapshot_file = None
                f.close()
            os.replace(tmp_path, self._path)
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise
        finally:
            held.snapshot_tmp_path = None

    def write(
        self,
        records: Sequence[DeviceRecord],
        config: MetricConfig,
        *,
        driver_version: str = "",
        host: HostCounters | None = None,
    ) -> bytes:
        payload = self.render(records, config, driver_version=driver_version, host=host)
        self.publish(payload)
        return payload


@dataclass
class DeviceSummary:
    """Per-device view reconstructed from a published snapshot."""

    index: int
    uuid: str
    model: str
    values: dict[str, float] = field(default_factory=dict)
    throttle_active: list[str] = field(default_factory=list)

    def format(self) -> str:
        parts = [f"GPU {self.index} {self.model} ({self.uuid})"]
        parts.extend(f"{name}={value:g}" for name, value in self.values.items())
        if self.throttle_active:
            parts.append("throttle=" + ",".join(self.throttle_active))
        return " ".join(parts)


def _short_name(metric: str) -> str:
    return metric.removeprefix("DCGM_FI_DEV_")


def summarize(text: str) -> list[DeviceSummary]:
    """Parse snapshot text into one summary per device, ordered by index."""
    devices: dict[int, DeviceSummary] = {}
    for family in text_string_to_metric_families(text):
        for sample in family.samples:
            if "gpu" not in sample.labels:
                continue
            index = int(sample.labels["gpu"])
            summary = devices.get(index)
            if summary is None:
                summary = DeviceSummary(
                    index=index,
                    uuid=sample.labels.get("UUID", ""),
                    model=sample.labels.get("modelName", ""),
                )
                devices[index] = summary
            if REASON_LABEL in sample.labels:
                if sample.value:
                    summary.throttle_active.append(sample.labels[REASON_LABEL])
            else:
                summary.values[_short_name(sample.name)] = sample.value
    return [devices[i] for i in sorted(devices)]


def read_summaries(path: str | os.PathLike[str]) -> list[DeviceSummary]:
    return summarize(Path(path).read_text(encoding="utf-8"))


def format_summaries(summaries: Iterable[DeviceSummary]) -> str:
    return "\n".join(s.format() for s in summaries)
