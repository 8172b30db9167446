"""
Extractor contract and the built-in extractors.

An extractor materializes one confirmed match as files inside the directory
it is handed. It must not write anywhere else; the orchestrator checks.
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import Callable, Optional

from .models import ExtractionOutcome, ValidationOutcome
from .parsers import GzipParser, ZlibStreamParser
from .utils import format_size, sanitize_filename

logger = logging.getLogger(__name__)


def write_output_file(output_dir: str, filename: str, payload: bytes) -> str:
    """Write payload to output_dir/filename without overwriting an existing file."""
    output_file = os.path.join(output_dir, sanitize_filename(filename))
    if os.path.exists(output_file):
        base, ext = os.path.splitext(output_file)
        counter = 1
        while os.path.exists(f"{base}_{counter}{ext}"):
            counter += 1
        output_file = f"{base}_{counter}{ext}"

    with open(output_file, "wb") as out_f:
        out_f.write(payload)
    return output_file


class Extractor(ABC):
    name: str

    @abstractmethod
    def extract(self, data: bytes, offset: int, output_dir: str) -> ExtractionOutcome:
        raise NotImplementedError


class FunctionExtractor(Extractor):
    """Adapts a plain function (data, offset, output_dir) -> ExtractionOutcome."""

    def __init__(self, name: str, func: Callable[[bytes, int, str], ExtractionOutcome]) -> None:
        self.name = name
        self.func = func

    def extract(self, data: bytes, offset: int, output_dir: str) -> ExtractionOutcome:
        return self.func(data, offset, output_dir)


class CarveExtractor(Extractor):
    """Copies the validated byte range out of the buffer as-is."""

    name = "carve"

    def __init__(self, validator: Callable[[bytes, int], Optional[ValidationOutcome]], extension: str = ".bin") -> None:
        self.validator = validator
        self.extension = extension

    def extract(self, data: bytes, offset: int, output_dir: str) -> ExtractionOutcome:
        outcome = self.validator(data, offset)
        if outcome is None or not outcome.size:
            return ExtractionOutcome(success=False, error="size of embedded data is unknown")

        size = min(outcome.size, len(data) - offset)
        filename = f"{offset:08X}{self.extension}"
        output_file = write_output_file(output_dir, filename, data[offset : offset + size])
        logger.debug(f"Carved: {filename} ({format_size(size)})")
        return ExtractionOutcome(success=True, size=size, written_paths=[output_file])


class ZlibExtractor(Extractor):
    """Inflates a zlib stream and names the output after its content type."""

    name = "zlib"

    def extract(self, data: bytes, offset: int, output_dir: str) -> ExtractionOutcome:
        zlib_info = ZlibStreamParser.try_decompress(data, offset)
        if zlib_info is None:
            return ExtractionOutcome(success=False, error="zlib stream could not be decompressed")

        filename = f"decompressed_{zlib_info['content_type']}{zlib_info['extension']}"
        output_file = write_output_file(output_dir, filename, zlib_info["decompressed_data"])
        logger.debug(
            f"Inflated zlib: {filename} ({format_size(zlib_info['decompressed_size'])} decompressed, {zlib_info['compression_ratio']:.1f}x ratio)"
        )
        return ExtractionOutcome(success=True, size=zlib_info["compressed_size"], written_paths=[output_file])


class GzipExtractor(Extractor):
    """Inflates a gzip member, restoring the original file name when the header carries one."""

    name = "gzip"

    def extract(self, data: bytes, offset: int, output_dir: str) -> ExtractionOutcome:
        member = GzipParser.parse_member(data, offset)
        if member is None:
            return ExtractionOutcome(success=False, error="gzip member could not be decompressed")

        filename = "decompressed.bin"
        if member["original_name"]:
            # Only the final path component; gzip headers can carry full paths
            filename = os.path.basename(member["original_name"].replace("\\", "/")) or filename
        output_file = write_output_file(output_dir, filename, member["decompressed_data"])
        logger.debug(f"Inflated gzip: {os.path.basename(output_file)} ({format_size(member['decompressed_size'])})")
        return ExtractionOutcome(success=True, size=member["total_size"], written_paths=[output_file])
