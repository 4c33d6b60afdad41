"""Tests for the held-resource record and the signal handlers."""

from __future__ import annotations

import mmap
import os
import signal
from pathlib import Path

import pytest

from vramtherm import _cleanup
from vramtherm._cleanup import HANDLED_SIGNALS, held, install_signal_handlers, release_all


class TestReleaseAll:
    def test_releases_everything(self, tmp_path: Path) -> None:
        mem = tmp_path / "mem"
        mem.write_bytes(b"\0" * mmap.PAGESIZE)
        fd = os.open(mem, os.O_RDONLY)
        mapping = mmap.mmap(fd, mmap.PAGESIZE, mmap.MAP_SHARED, mmap.PROT_READ)
        tmp = tmp_path / "metrics.txt.1.tmp"
        f = open(tmp, "wb")  # noqa: SIM115

        held.mem_fd = fd
        held.mapping = mapping
        held.snapshot_file = f
        held.snapshot_tmp_path = str(tmp)

        release_all()

        assert mapping.closed
        assert f.closed
        assert not tmp.exists()
        with pytest.raises(OSError):
            os.fstat(fd)
        assert held == _cleanup.HeldResources()

    def test_idempotent(self) -> None:
        release_all()
        release_all()
        assert held.mem_fd == -1

    def test_missing_temp_file_tolerated(self, tmp_path: Path) -> None:
        held.snapshot_tmp_path = str(tmp_path / "gone.tmp")
        release_all()
        assert held.snapshot_tmp_path is None


class TestSignalHandlers:
    def test_installs_for_handled_signals(self, monkeypatch: pytest.MonkeyPatch) -> None:
        installed: dict[int, object] = {}
        monkeypatch.setattr(signal, "signal", lambda sig, handler: installed.__setitem__(sig, handler))
        install_signal_handlers()
        assert set(installed) == set(HANDLED_SIGNALS)
        assert signal.SIGINT in installed
        assert signal.SIGHUP in installed
        assert signal.SIGTERM in installed

    def test_install_failure_logged(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        def refuse(sig: int, handler: object) -> None:
            raise ValueError("signal only works in main thread")

        monkeypatch.setattr(signal, "signal", refuse)
        install_signal_handlers()
        assert "Cannot handle SIGINT" in caplog.text

    def test_handler_releases_then_exits(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        exits: list[int] = []
        monkeypatch.setattr(os, "_exit", exits.append)
        tmp = tmp_path / "metrics.txt.1.tmp"
        tmp.write_bytes(b"partial")
        held.snapshot_tmp_path = str(tmp)

        _cleanup._exit_on_signal(signal.SIGTERM, None)

        assert exits == [0]
        assert not tmp.exists()

    def test_handler_does_no_logging(
        self, monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
    ) -> None:
        monkeypatch.setattr(os, "_exit", lambda code: None)
        caplog.set_level("DEBUG")
        _cleanup._exit_on_signal(signal.SIGINT, None)
        assert caplog.records == []
