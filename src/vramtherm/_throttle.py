"""Clock throttle reasons reported by NVML as a bitmask."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ThrottleReason:
    mask: int
    label: str


# Values match NVML's nvmlClocksThrottleReason* constants.
THROTTLE_REASONS: tuple[ThrottleReason, ...] = (
    ThrottleReason(0x0000000000000001, "GpuIdle"),
    ThrottleReason(0x0000000000000002, "ApplicationsClocksSetting"),
    ThrottleReason(0x0000000000000004, "SwPowerCap"),
    ThrottleReason(0x0000000000000008, "HwSlowdown"),
    ThrottleReason(0x0000000000000010, "SyncBoost"),
    ThrottleReason(0x0000000000000020, "SwThermalSlowdown"),
    ThrottleReason(0x0000000000000040, "HwThermalSlowdown"),
    ThrottleReason(0x0000000000000080, "HwPowerBrakeSlowdown"),
    ThrottleReason(0x0000000000000100, "DisplayClockSetting"),
)


def active_reasons(bitmask: int) -> list[tuple[ThrottleReason, bool]]:
    """Pair every known reason with whether its bit is set in ``bitmask``."""
    return [(reason, bool(bitmask & reason.mask)) for reason in THROTTLE_REASONS]
