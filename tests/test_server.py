"""Tests for the snapshot HTTP server."""

from __future__ import annotations

import threading
import urllib.error
import urllib.request
from collections.abc import Iterator
from pathlib import Path

import pytest

from vramtherm._server import make_server


@pytest.fixture
def serve(tmp_path: Path) -> Iterator[tuple[str, Path]]:
    snapshot = tmp_path / "metrics.txt"
    server = make_server(snapshot, host="127.0.0.1", port=0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}", snapshot
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)


class TestSnapshotServer:
    def test_serves_snapshot_verbatim(self, serve: tuple[str, Path]) -> None:
        url, snapshot = serve
        body = b"# HELP DCGM_FI_DEV_VRAM_TEMP VRAM temperature (in C).\nDCGM_FI_DEV_VRAM_TEMP 10.0\n"
        snapshot.write_bytes(body)
        with urllib.request.urlopen(f"{url}/metrics", timeout=5) as resp:
            assert resp.status == 200
            assert resp.headers["Content-Type"].startswith("text/plain")
            assert resp.read() == body

    def test_landing_page(self, serve: tuple[str, Path]) -> None:
        url, _ = serve
        with urllib.request.urlopen(f"{url}/", timeout=5) as resp:
            assert b"/metrics" in resp.read()

    def test_missing_snapshot_404(self, serve: tuple[str, Path]) -> None:
        url, _ = serve
        with pytest.raises(urllib.error.HTTPError) as info:
            urllib.request.urlopen(f"{url}/metrics", timeout=5)
        assert info.value.code == 404

    def test_unreadable_snapshot_500(self, serve: tuple[str, Path]) -> None:
        url, snapshot = serve
        snapshot.mkdir()
        with pytest.raises(urllib.error.HTTPError) as info:
            urllib.request.urlopen(f"{url}/metrics", timeout=5)
        assert info.value.code == 500

    def test_unknown_path_404(self, serve: tuple[str, Path]) -> None:
        url, _ = serve
        with pytest.raises(urllib.error.HTTPError) as info:
            urllib.request.urlopen(f"{url}/other", timeout=5)
        assert info.value.code == 404
