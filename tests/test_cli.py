import gzip
import json
import logging
from pathlib import Path

import pytest
from conftest import build_png

from nestcarve import cli


@pytest.fixture(autouse=True)
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_scan_prints_table(target_file, capsys) -> None:
    path = target_file(b"\x00" * 32 + build_png())

    assert cli.main([str(path)]) == 0

    out = capsys.readouterr().out
    assert "DECIMAL" in out
    assert "0x20" in out
    assert "PNG image, 4 x 4" in out
    assert "signature match(es)" in out


def test_extract_writes_report(tmp_path: Path, target_file) -> None:
    path = target_file(b"\x00" * 8 + gzip.compress(b"payload " * 32, mtime=0))
    out = tmp_path / "out"

    assert cli.main([str(path), "-e", "-o", str(out), "-d", "0"]) == 0

    report = json.loads((out / "extraction_report.json").read_text(encoding="utf-8"))
    assert report["total_succeeded"] == 1
    assert (out / "target.bin.extracted" / "00000008_gzip" / "decompressed.bin").exists()


def test_missing_target_returns_error(tmp_path: Path) -> None:
    assert cli.main([str(tmp_path / "nope.bin")]) == 1


def test_list_signatures(capsys) -> None:
    assert cli.main(["--list"]) == 0
    out = capsys.readouterr().out
    assert "png" in out
    assert "1f 8b 08" in out


def test_format_scan_results_counts_matches() -> None:
    assert cli.format_scan_results(()).endswith("Analyzed 0 signature match(es)")


def test_root_script_uses_package_cli() -> None:
    import main

    assert main.main is cli.main
