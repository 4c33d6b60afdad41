"""Host-wide auxiliary counters appended to every snapshot."""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger("vramtherm.host")

_FIRST_INT_RE = re.compile(r"\d+")
AER_MARKER = "AER:"


@dataclass(frozen=True)
class HostCounters:
    """Counters not scoped to a device. ``None`` means unknown."""

    pending_package_updates: int | None = None
    pcie_aer_errors: int | None = None


def read_package_count_file(path: str) -> int | None:
    """First integer in a cached count file (e.g. update-notifier output)."""
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        logger.debug("Cannot read package count file %s: %s", path, exc)
        return None
    match = _FIRST_INT_RE.search(text)
    return int(match.group()) if match else 0


def run_package_count_command(command: str, timeout: float = 30.0) -> int | None:
    """Run a package-manager query and count upgradable packages.

    A bare integer on stdout is taken as-is; otherwise every non-empty line
    except ``Listing...`` headers counts as one package.
    """
    try:
        proc = subprocess.run(
            shlex.split(command),  # noqa: S603
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("Package count command failed: %s", exc)
        return None
    if proc.returncode != 0:
        logger.debug("Package count command exited %d", proc.returncode)
        return None
    out = proc.stdout.strip()
    if out.isdigit():
        return int(out)
    return sum(1 for line in out.splitlines() if line.strip() and not line.startswith("Listing"))


def count_aer_lines(path: str) -> int | None:
    """Number of PCIe AER lines in a system log file."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            return sum(1 for line in f if AER_MARKER in line)
    except OSError as exc:
        logger.debug("Cannot read AER log %s: %s", path, exc)
        return None


def collect_host_counters(
    *,
    package_count_file: str | None = None,
    package_count_command: str | None = None,
    aer_log_path: str | None = None,
) -> HostCounters:
    pending: int | None = None
    if package_count_file:
        pending = read_package_count_file(package_count_file)
    if pending is None and package_count_command:
        pending = run_package_count_command(package_count_command)
    aer = count_aer_lines(aer_log_path) if aer_log_path else None
    return HostCounters(pending_package_updates=pending, pcie_aer_errors=aer)
