"""Process-wide record of releasable OS resources and the signal handlers.

The poll loop is single-threaded, so the record needs no locking: the only
other party touching it is the signal handler, which CPython runs in the main
thread between bytecodes.
"""

from __future__ import annotations

import logging
import mmap
import os
import signal
from dataclasses import dataclass
from types import FrameType
from typing import IO

logger = logging.getLogger("vramtherm.cleanup")

HANDLED_SIGNALS: tuple[signal.Signals, ...] = (
    signal.SIGINT,
    signal.SIGHUP,
    signal.SIGTERM,
)


@dataclass
class HeldResources:
    """Resources that must not outlive the process on interruption."""

    mem_fd: int = -1
    mapping: mmap.mmap | None = None
    snapshot_file: IO[bytes] | None = None
    snapshot_tmp_path: str | None = None


held = HeldResources()


def release_all() -> None:
    """Unmap, close and remove whatever is currently held. Idempotent."""
    if held.mapping is not None:
        try:
            held.mapping.close()
        except (OSError, BufferError):
            pass
        held.mapping = None
    if held.mem_fd != -1:
        try:
            os.close(held.mem_fd)
        except OSError:
            pass
        held.mem_fd = -1
    if held.snapshot_file is not None:
        try:
            held.snapshot_file.close()
        except OSError:
            pass
        held.snapshot_file = None
    if held.snapshot_tmp_path is not None:
        try:
            os.unlink(held.snapshot_tmp_path)
        except OSError:
            pass
        held.snapshot_tmp_path = None


def _exit_on_signal(signum: int, frame: FrameType | None) -> None:
    release_all()
    os._exit(0)


def install_signal_handlers() -> None:
    """Release held resources and exit immediately on INT/HUP/TERM."""
    for sig in HANDLED_SIGNALS:
        try:
            signal.signal(sig, _exit_on_signal)
        except (OSError, ValueError):
            logger.warning("Cannot handle %s", sig.name, exc_info=True)
