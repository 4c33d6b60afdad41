"""Command-line entry point.

    vramtherm poll  [--output metrics.txt] [--config metrics.cfg] [--echo] ...
    vramtherm serve [--output metrics.txt] [--port 9500]
"""

from __future__ import annotations

import argparse
import functools
import logging
import os
import sys

from vramtherm._backend import VendorError
from vramtherm._cleanup import install_signal_handlers
from vramtherm._config import ExporterConfig, MetricConfigStore
from vramtherm._host import collect_host_counters
from vramtherm._nvml import NvmlBackend
from vramtherm._pci import scan_pci
from vramtherm._poller import TelemetryPoller
from vramtherm._registers import RegisterReader
from vramtherm._server import DEFAULT_PORT, serve_forever
from vramtherm._snapshot import SnapshotWriter

logger = logging.getLogger("vramtherm.cli")

_defaults = ExporterConfig()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="vramtherm", description="GPU VRAM/hotspot temperature exporter")
    parser.add_argument("-d", "--debug", action="store_true", help="debug logging")
    parser.add_argument(
        "--log-level",
        default=os.getenv("VRAMTHERM_LOG_LEVEL", "INFO"),
        help="log level (default: $VRAMTHERM_LOG_LEVEL or INFO)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    poll = sub.add_parser("poll", help="poll GPUs and publish the snapshot file")
    poll.add_argument("--output", default=_defaults.snapshot_path, help="snapshot file path")
    poll.add_argument("--config", default=_defaults.config_path, help="metric config file path")
    poll.add_argument("--mem", default=_defaults.mem_path, help="physical memory device")
    poll.add_argument("--pci-root", default=_defaults.pci_root, help="sysfs PCI devices directory")
    poll.add_argument("--interval", type=float, default=_defaults.interval_s, help="seconds between cycles")
    poll.add_argument("--echo", action="store_true", help="print a per-device summary each cycle")
    poll.add_argument("--once", action="store_true", help="run a single cycle and exit")
    poll.add_argument("--package-count-file", help="cached pending package-update count")
    poll.add_argument("--package-count-command", help="command listing upgradable packages")
    poll.add_argument("--aer-log", help="system log scanned for PCIe AER lines")

    serve = sub.add_parser("serve", help="serve the snapshot file over HTTP")
    serve.add_argument("--output", default=_defaults.snapshot_path, help="snapshot file path")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=DEFAULT_PORT)
    return parser


def config_from_args(args: argparse.Namespace) -> ExporterConfig:
    return ExporterConfig(
        snapshot_path=args.output,
        config_path=args.config,
        mem_path=args.mem,
        pci_root=args.pci_root,
        interval_s=args.interval,
        echo=args.echo,
        package_count_file=args.package_count_file,
        package_count_command=args.package_count_command,
        aer_log_path=args.aer_log,
    )


def build_poller(config: ExporterConfig) -> TelemetryPoller:
    return TelemetryPoller(
        NvmlBackend(),
        MetricConfigStore(config.config_path),
        SnapshotWriter(config.snapshot_path),
        reader_factory=functools.partial(RegisterReader, config.mem_path),
        pci_scanner=functools.partial(scan_pci, config.pci_root),
        host_counters=functools.partial(
            collect_host_counters,
            package_count_file=config.package_count_file,
            package_count_command=config.package_count_command,
            aer_log_path=config.aer_log_path,
        ),
        interval_s=config.interval_s,
        max_devices=config.max_devices,
        echo=config.echo,
    )


def _poll(args: argparse.Namespace) -> int:
    config = config_from_args(args)
    try:
        poller = build_poller(config)
        install_signal_handlers()
        poller.run(cycles=1 if args.once else None)
    except VendorError as exc:
        logger.error("Failed to initialize GPU management API: %s", exc)
        return 1
    return 0


def _serve(args: argparse.Namespace) -> int:
    try:
        serve_forever(args.output, args.host, args.port)
    except KeyboardInterrupt:
        pass
    except OSError as exc:
        logger.error("Cannot start HTTP server: %s", exc)
        return 1
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.debug else args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "poll":
        return _poll(args)
    return _serve(args)


if __name__ == "__main__":
    sys.exit(main())
