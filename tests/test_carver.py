import gzip
import json
from pathlib import Path

import pytest
from conftest import build_png

from nestcarve import Carver, ConfigError, Configuration, configure, extract_file, scan_file
from nestcarve.config import DEFAULT_MAX_EXTRACTIONS, FULL_SEARCH_MAX_EXTRACTIONS


def test_missing_target_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="Input file does not exist"):
        configure(str(tmp_path / "missing.bin"))


def test_output_path_that_is_a_file_is_rejected(tmp_path: Path, target_file) -> None:
    target = target_file(b"data")
    with pytest.raises(ConfigError, match="not a directory"):
        configure(str(target), str(target))


def test_negative_depth_is_rejected(target_file) -> None:
    with pytest.raises(ConfigError, match="depth"):
        configure(str(target_file(b"data")), max_depth=-1)


def test_unknown_option_is_rejected(target_file) -> None:
    with pytest.raises(ConfigError):
        configure(str(target_file(b"data")), colour=True)


def test_extraction_budget_defaults() -> None:
    assert Configuration(target_path="x").extraction_budget == DEFAULT_MAX_EXTRACTIONS
    assert Configuration(target_path="x", full_search=True).extraction_budget == FULL_SEARCH_MAX_EXTRACTIONS
    assert Configuration(target_path="x", full_search=True, max_extractions=5).extraction_budget == 5


def test_scan_file_returns_string_dicts(target_file) -> None:
    png = build_png()
    path = target_file(b"\x00" * 16 + png)

    matches = scan_file(str(path))

    png_matches = [m for m in matches if m["id"] == "png"]
    assert png_matches == [
        {
            "description": f"PNG image, 4 x 4, total size: {len(png)} bytes",
            "id": "png",
            "name": "PNG",
            "confidence": "high",
            "offset": "16",
            "size": str(len(png)),
        }
    ]
    assert [int(m["offset"]) for m in matches] == sorted(int(m["offset"]) for m in matches)


def test_include_filter_limits_scan(target_file) -> None:
    path = target_file(b"\x00" * 4 + build_png() + gzip.compress(b"payload" * 20, mtime=0))
    carver = Carver.configure(str(path), include=["GZIP"])
    results = carver.scan(carver.read_target())
    assert [r.id for r in results] == ["gzip"]


def test_extract_file(tmp_path: Path, target_file) -> None:
    path = target_file(b"\x00" * 8 + gzip.compress(b"hello " * 50, mtime=0))
    out = tmp_path / "out"

    results = extract_file(str(path), str(out))

    (gz,) = [r for r in results if r["key"].endswith(":0x8:gzip")]
    assert gz["success"] == "true"
    assert gz["extractor"] == "gzip"
    assert Path(gz["output_directory"], "decompressed.bin").read_bytes() == b"hello " * 50


def test_save_report(tmp_path: Path, target_file) -> None:
    data = b"\x00" * 8 + gzip.compress(b"hello " * 50, mtime=0)
    path = target_file(data)
    out = tmp_path / "out"

    carver = Carver.configure(str(path), str(out))
    results = carver.scan(carver.read_target())
    extraction = carver.extract(data, carver.base_target_file, results)
    report_path = carver.save_report(len(data), results, extraction, version="1.2.3")

    assert report_path == out / "extraction_report.txt"
    assert "target.bin" in report_path.read_text(encoding="utf-8")
    report = json.loads((out / "extraction_report.json").read_text(encoding="utf-8"))
    assert report["version"] == "1.2.3"
    assert report["target_size"] == len(data)
    assert report["total_succeeded"] == 1
    assert report["by_signature"]["gzip"]["extracted"] == 1
