"""Exporter configuration and the metric-enable config file."""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger("vramtherm.config")


class MetricKind(enum.Enum):
    """Metric kinds that can be switched on in the config file."""

    GPU_TEMP = "DCGM_FI_DEV_GPU_TEMP"
    POWER_USAGE = "DCGM_FI_DEV_POWER_USAGE"
    SM_CLOCK = "DCGM_FI_DEV_SM_CLOCK"
    MEM_CLOCK = "DCGM_FI_DEV_MEM_CLOCK"
    FAN_SPEED = "DCGM_FI_DEV_FAN_SPEED"
    GPU_UTIL = "DCGM_FI_DEV_GPU_UTIL"
    MEM_COPY_UTIL = "DCGM_FI_DEV_MEM_COPY_UTIL"
    FB_FREE = "DCGM_FI_DEV_FB_FREE"
    FB_USED = "DCGM_FI_DEV_FB_USED"
    VRAM_TEMP = "DCGM_FI_DEV_VRAM_TEMP"
    HOT_SPOT_TEMP = "DCGM_FI_DEV_HOT_SPOT_TEMP"
    CLOCKS_THROTTLE_REASON = "DCGM_FI_DEV_CLOCKS_THROTTLE_REASON"


_BY_NAME: dict[str, MetricKind] = {kind.value: kind for kind in MetricKind}

DEFAULT_METRICS: tuple[MetricKind, ...] = (
    MetricKind.GPU_TEMP,
    MetricKind.POWER_USAGE,
    MetricKind.GPU_UTIL,
    MetricKind.FB_USED,
    MetricKind.VRAM_TEMP,
    MetricKind.HOT_SPOT_TEMP,
    MetricKind.CLOCKS_THROTTLE_REASON,
)


@dataclass(frozen=True)
class MetricConfig:
    """Immutable set of enabled metric kinds."""

    enabled: frozenset[MetricKind] = field(default_factory=frozenset)

    def is_enabled(self, kind: MetricKind) -> bool:
        return kind in self.enabled

    def any_enabled(self, *kinds: MetricKind) -> bool:
        return any(kind in self.enabled for kind in kinds)


def parse_metric_config(text: str) -> MetricConfig:
    """Parse one metric name per line. Unknown names are ignored."""
    enabled: set[MetricKind] = set()
    for line in text.splitlines():
        kind = _BY_NAME.get(line.strip())
        if kind is not None:
            enabled.add(kind)
    return MetricConfig(enabled=frozenset(enabled))


class MetricConfigStore:
    """Loads the metric config file, bootstrapping it with defaults on first run.

    ``refresh()`` reloads the file when its modification time changes, so
    edits take effect on the next poll cycle without a restart.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self._path = Path(path)
        self._mtime_ns: int | None = None
        self._config = MetricConfig()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def config(self) -> MetricConfig:
        return self._config

    def load(self) -> MetricConfig:
        """Read the config file, creating it with defaults if absent."""
        try:
            if not self._path.exists():
                self._bootstrap()
            self._mtime_ns = self._path.stat().st_mtime_ns
            self._config = parse_metric_config(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError):
            logger.error("Cannot read metric config %s; all metrics disabled", self._path, exc_info=True)
            self._mtime_ns = None
            self._config = MetricConfig()
            return self._config

        logger.info(
            "Loaded %d enabled metric(s) from %s",
            len(self._config.enabled),
            self._path,
        )
        return self._config

    def refresh(self) -> MetricConfig:
        """Reload if the file changed (or was never read successfully)."""
        try:
            mtime_ns = self._path.stat().st_mtime_ns
        except OSError:
            mtime_ns = None
        if self._mtime_ns is None or mtime_ns != self._mtime_ns:
            return self.load()
        return self._config

    def _bootstrap(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        body = "".join(f"{kind.value}\n" for kind in DEFAULT_METRICS)
        self._path.write_text(body, encoding="utf-8")
        logger.info("Created default metric config at %s", self._path)


@dataclass(frozen=True)
class ExporterConfig:
    """Immutable exporter runtime configuration."""

    snapshot_path: str = "./metrics.txt"
    config_path: str = "./metrics.cfg"
    mem_path: str = "/dev/mem"
    pci_root: str = "/sys/bus/pci/devices"
    interval_s: float = 5.0
    echo: bool = False
    max_devices: int = 32
    package_count_file: str | None = None
    package_count_command: str | None = None
    aer_log_path: str | None = None
