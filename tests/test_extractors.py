import gzip
import io
import os
import zlib
from pathlib import Path

from conftest import build_png

from nestcarve.extractors import CarveExtractor, GzipExtractor, ZlibExtractor, write_output_file
from nestcarve.models import ValidationOutcome
from nestcarve.parsers import PNGParser
from nestcarve.utils import extraction_directory, is_within_directory, sanitize_filename


def test_write_output_file_never_overwrites(tmp_path: Path) -> None:
    first = write_output_file(str(tmp_path), "a.bin", b"1")
    second = write_output_file(str(tmp_path), "a.bin", b"2")
    assert os.path.basename(first) == "a.bin"
    assert os.path.basename(second) == "a_1.bin"
    assert Path(first).read_bytes() == b"1"


def test_carve_png(tmp_path: Path) -> None:
    png = build_png()
    outcome = CarveExtractor(PNGParser.validate, ".png").extract(b"\xee" * 5 + png + b"\xee", 5, str(tmp_path))
    assert outcome.success
    assert outcome.size == len(png)
    (path,) = outcome.written_paths
    assert os.path.basename(path) == "00000005.png"
    assert Path(path).read_bytes() == png


def test_carve_without_size_fails(tmp_path: Path) -> None:
    outcome = CarveExtractor(lambda d, o: ValidationOutcome()).extract(b"data", 0, str(tmp_path))
    assert not outcome.success
    assert os.listdir(tmp_path) == []


def test_zlib_extractor_names_output_by_content(tmp_path: Path) -> None:
    stream = zlib.compress(build_png())
    outcome = ZlibExtractor().extract(stream, 0, str(tmp_path))
    assert outcome.success
    assert outcome.size == len(stream)
    assert os.path.basename(outcome.written_paths[0]) == "decompressed_png.png"


def test_gzip_extractor_restores_original_name(tmp_path: Path) -> None:
    buffer = io.BytesIO()
    with gzip.GzipFile(filename="notes.txt", mode="wb", fileobj=buffer, mtime=0) as fh:
        fh.write(b"root")
    outcome = GzipExtractor().extract(buffer.getvalue(), 0, str(tmp_path))
    assert outcome.success
    assert outcome.written_paths == [str(tmp_path / "notes.txt")]


def test_extraction_directory_layout() -> None:
    path = extraction_directory("out", "/data/fw.bin", 0x1F, "gzip")
    assert path == os.path.join("out", "fw.bin.extracted", "0000001F_gzip")


def test_sanitize_filename() -> None:
    assert sanitize_filename("a/b:c") == "a_b_c"
    assert sanitize_filename("..") == "_.."


def test_is_within_directory(tmp_path: Path) -> None:
    assert is_within_directory(str(tmp_path / "a" / "b"), str(tmp_path))
    assert not is_within_directory(str(tmp_path / ".." / "x"), str(tmp_path))
    assert not is_within_directory(str(tmp_path), str(tmp_path))
