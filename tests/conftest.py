import struct
import zlib
from pathlib import Path

import pytest

PNG_MAGIC = b"\x89PNG\r\n\x1a\n"


def png_chunk(kind: bytes, body: bytes) -> bytes:
    return struct.pack(">I", len(body)) + kind + body + struct.pack(">I", zlib.crc32(kind + body) & 0xFFFFFFFF)


def build_png(width: int = 4, height: int = 4) -> bytes:
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    raw = b"".join(b"\x00" + b"\x10\x20\x30" * width for _ in range(height))
    return PNG_MAGIC + png_chunk(b"IHDR", ihdr) + png_chunk(b"IDAT", zlib.compress(raw)) + png_chunk(b"IEND", b"")


@pytest.fixture
def png_bytes() -> bytes:
    return build_png()


@pytest.fixture
def target_file(tmp_path: Path):
    """Write bytes to a target file under tmp_path and return its path."""

    def _write(data: bytes, name: str = "target.bin") -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    return _write
