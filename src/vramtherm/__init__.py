"""vramtherm: NVIDIA GPU VRAM and hotspot temperature exporter."""

from __future__ import annotations

from vramtherm._backend import VendorBackend, VendorError
from vramtherm._config import ExporterConfig, MetricConfig, MetricConfigStore, MetricKind
from vramtherm._identity import DEVICE_TABLE, DeviceIdentity, lookup_identity
from vramtherm._inventory import DeviceRecord, build_inventory
from vramtherm._poller import TelemetryPoller
from vramtherm._registers import RegisterReader, decode_hotspot_temp, decode_vram_temp
from vramtherm._snapshot import SnapshotWriter, summarize
from vramtherm._throttle import THROTTLE_REASONS, ThrottleReason

__version__ = "0.1.0"

__all__ = [
    "DEVICE_TABLE",
    "THROTTLE_REASONS",
    "DeviceIdentity",
    "DeviceRecord",
    "ExporterConfig",
    "MetricConfig",
    "MetricConfigStore",
    "MetricKind",
    "RegisterReader",
    "SnapshotWriter",
    "TelemetryPoller",
    "ThrottleReason",
    "VendorBackend",
    "VendorError",
    "__version__",
    "build_inventory",
    "decode_hotspot_temp",
    "decode_vram_temp",
    "lookup_identity",
    "summarize",
]
