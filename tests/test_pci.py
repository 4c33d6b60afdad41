"""Tests for sysfs PCI enumeration."""

from __future__ import annotations

from pathlib import Path

from conftest import write_pci_entry

from vramtherm._pci import PciFunction, scan_pci


class TestScanPci:
    def test_reads_ids_class_and_bar0(self, tmp_path: Path) -> None:
        write_pci_entry(tmp_path, bus=0x41, device=0, device_id=0x2684, bar0=0xFB000000)
        [fn] = scan_pci(tmp_path)
        assert fn.domain == 0
        assert fn.bus == 0x41
        assert fn.device == 0
        assert fn.function == 0
        assert fn.vendor_id == 0x10DE
        assert fn.device_id == 0x2684
        assert fn.device_class == 0x0300
        assert fn.bar0 == 0xFB000000

    def test_64bit_bar0_not_truncated(self, tmp_path: Path) -> None:
        write_pci_entry(tmp_path, bar0=0x38_0000_0000)
        [fn] = scan_pci(tmp_path)
        assert fn.bar0 == 0x38_0000_0000

    def test_sorted_by_address(self, tmp_path: Path) -> None:
        write_pci_entry(tmp_path, bus=0x81)
        write_pci_entry(tmp_path, bus=0x01)
        write_pci_entry(tmp_path, bus=0x01, function=1, device_class=0x040300)
        addresses = [fn.address for fn in scan_pci(tmp_path)]
        assert addresses == ["0000:01:00.0", "0000:01:00.1", "0000:81:00.0"]

    def test_incomplete_entry_skipped(self, tmp_path: Path) -> None:
        write_pci_entry(tmp_path, bus=0x01)
        broken = tmp_path / "0000:02:00.0"
        broken.mkdir()
        (broken / "vendor").write_text("0x10de\n")
        assert [fn.bus for fn in scan_pci(tmp_path)] == [0x01]

    def test_non_address_names_ignored(self, tmp_path: Path) -> None:
        write_pci_entry(tmp_path)
        (tmp_path / "not-a-device").mkdir()
        assert len(scan_pci(tmp_path)) == 1

    def test_missing_root(self, tmp_path: Path) -> None:
        assert scan_pci(tmp_path / "nope") == []


def test_combined_id_layout() -> None:
    fn = PciFunction(
        domain=0, bus=1, device=0, function=0,
        vendor_id=0x10DE, device_id=0x2204, device_class=0x0300, bar0=0,
    )
    assert fn.combined_id == 0x220410DE
