"""
Structural validators for the built-in signatures.

Each parser confirms that a raw pattern hit really is an instance of its
format and, where the header allows it, works out how many bytes the
embedded file occupies. ``validate`` is the scanner-facing entry point: it
returns a ValidationOutcome, or None to reject the hit.
"""

import struct
import zlib
from typing import Any, Dict, Optional, Tuple

from .models import Confidence, ValidationOutcome
from .utils import is_printable_text, read_uint16_le, read_uint32_be, read_uint32_le

# Limits applied while test-inflating candidate streams
DEFAULT_MAX_COMPRESSED = 16 * 1024 * 1024
DEFAULT_MAX_DECOMPRESSED = 64 * 1024 * 1024
_INFLATE_CHUNK = 1024 * 1024


def inflate(data: bytes, offset: int, wbits: int, max_input: int = DEFAULT_MAX_COMPRESSED, max_output: int = DEFAULT_MAX_DECOMPRESSED) -> Optional[Tuple[int, bytes]]:
    """
    Inflate a deflate/zlib/gzip stream that starts at offset.

    Args:
        data: Buffer holding the stream
        offset: Start of the stream
        wbits: zlib window bits (15 = zlib header, -15 = raw deflate)
        max_input: Maximum compressed bytes to consider
        max_output: Give up once more than this many bytes were produced

    Returns:
        (compressed bytes consumed, decompressed data), or None if the stream
        is corrupt, truncated or too large
    """
    window = memoryview(data)[offset : offset + max_input]
    dobj = zlib.decompressobj(wbits)
    pieces = []
    total = 0
    pending: Any = window

    try:
        while True:
            out = dobj.decompress(pending, _INFLATE_CHUNK)
            if out:
                pieces.append(out)
                total += len(out)
                if total > max_output:
                    return None
            if dobj.eof:
                break
            pending = dobj.unconsumed_tail
            if not pending and not out:
                # Input ran out before the end-of-stream marker
                return None
    except zlib.error:
        return None

    consumed = len(window) - len(dobj.unused_data)
    return consumed, b"".join(pieces)


class PNGParser:
    """PNG: walks the chunk list up to IEND to bound the image."""

    PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
    IEND_CHUNK = b"IEND"
    MAX_CHUNK_SIZE = 50 * 1024 * 1024

    @staticmethod
    def parse_header(data: bytes, offset: int = 0) -> Optional[Dict[str, Any]]:
        """
        Validate a PNG at offset and measure it.

        The IHDR chunk must come first and carry a valid CRC; the image ends
        after the IEND chunk.

        Args:
            data: Buffer to inspect
            offset: Position of the PNG magic

        Returns:
            Dictionary with format, file_size, width and height, or None
        """
        if len(data) < offset + 33:  # Minimum PNG: header(8) + IHDR(25) = 33
            return None

        try:
            if data[offset : offset + 8] != PNGParser.PNG_MAGIC:
                return None

            # IHDR must be the first chunk and is always 13 bytes long
            ihdr_offset = offset + 8
            if read_uint32_be(data, ihdr_offset) != 13 or data[ihdr_offset + 4 : ihdr_offset + 8] != b"IHDR":
                return None
            ihdr_crc = read_uint32_be(data, ihdr_offset + 21)
            if zlib.crc32(data[ihdr_offset + 4 : ihdr_offset + 21]) & 0xFFFFFFFF != ihdr_crc:
                return None
            width = read_uint32_be(data, ihdr_offset + 8)
            height = read_uint32_be(data, ihdr_offset + 12)

            # Walk chunks: length(4) + type(4) + data(length) + CRC(4)
            chunk_offset = ihdr_offset
            while chunk_offset + 12 <= len(data):
                chunk_length = read_uint32_be(data, chunk_offset)
                chunk_type = data[chunk_offset + 4 : chunk_offset + 8]

                if chunk_length > PNGParser.MAX_CHUNK_SIZE or not chunk_type.isalpha():
                    return None

                chunk_offset += 12 + chunk_length
                if chunk_type == PNGParser.IEND_CHUNK:
                    if chunk_offset > len(data):
                        return None
                    return {
                        "format": "PNG",
                        "file_size": chunk_offset - offset,
                        "width": width,
                        "height": height,
                    }

            # Ran off the end of the buffer without seeing IEND
            return None
        except (struct.error, IndexError):
            return None

    @staticmethod
    def validate(data: bytes, offset: int) -> Optional[ValidationOutcome]:
        info = PNGParser.parse_header(data, offset)
        if info is None:
            return None
        return ValidationOutcome(
            confidence=Confidence.HIGH,
            size=info["file_size"],
            description=f"PNG image, {info['width']} x {info['height']}, total size: {info['file_size']} bytes",
        )


class DDSParser:
    """DDS textures, little- or big-endian headers."""

    COMPRESSED_FORMATS = ("DXT1", "DXT2", "DXT3", "DXT4", "DXT5", "ATI1", "BC4U", "BC4S", "ATI2", "BC5U", "BC5S")

    @staticmethod
    def _get_bytes_per_block(fourcc_str: str) -> int:
        if fourcc_str in ("DXT1", "ATI1", "BC4U", "BC4S"):
            return 8
        return 16

    @staticmethod
    def _calculate_mipmap_size(width: int, height: int, mipmap_count: int, bytes_per_block: int) -> int:
        """Block-compressed body size over the whole mip chain."""
        estimated_size = 0
        mip_width, mip_height = width, height
        for _ in range(max(1, min(mipmap_count, 16))):
            estimated_size += max(1, (mip_width + 3) // 4) * max(1, (mip_height + 3) // 4) * bytes_per_block
            mip_width = max(1, mip_width // 2)
            mip_height = max(1, mip_height // 2)
        return estimated_size

    @staticmethod
    def _calculate_pitch_size(height: int, pitch: int, mipmap_count: int) -> int:
        """Uncompressed body size from the row pitch."""
        estimated_size = pitch * height
        mip_size = estimated_size
        for _ in range(1, min(mipmap_count, 16)):
            mip_size //= 4
            estimated_size += max(mip_size, 1)
        return estimated_size

    @staticmethod
    def parse_header(data: bytes, offset: int = 0) -> Optional[Dict[str, Any]]:
        """
        Read a DDS header and estimate the texture size.

        Args:
            data: Buffer to inspect
            offset: Position of the "DDS " magic

        Returns:
            Dictionary with dimensions, fourcc, endianness and
            estimated_size (header included), or None
        """
        if len(data) < offset + 128:
            return None

        try:
            if data[offset : offset + 4] != b"DDS ":
                return None

            header_size = read_uint32_le(data, offset + 4)
            read = read_uint32_le
            endianness = "little"
            if header_size != 124:
                # Console dumps store the header big-endian
                if read_uint32_be(data, offset + 4) != 124:
                    return None
                read = read_uint32_be
                endianness = "big"

            height = read(data, offset + 12)
            width = read(data, offset + 16)
            pitch_or_linear_size = read(data, offset + 20)
            mipmap_count = read(data, offset + 28)
            fourcc_str = data[offset + 84 : offset + 88].decode("ascii", errors="ignore").strip("\x00")

            if height == 0 or width == 0 or height > 16384 or width > 16384:
                return None

            if fourcc_str in DDSParser.COMPRESSED_FORMATS or pitch_or_linear_size == 0:
                bytes_per_block = DDSParser._get_bytes_per_block(fourcc_str)
                body_size = DDSParser._calculate_mipmap_size(width, height, mipmap_count, bytes_per_block)
            else:
                body_size = DDSParser._calculate_pitch_size(height, pitch_or_linear_size, mipmap_count)

            return {
                "width": width,
                "height": height,
                "mipmap_count": mipmap_count,
                "fourcc": fourcc_str,
                "endianness": endianness,
                "estimated_size": body_size + 128,
            }
        except (struct.error, IndexError):
            return None

    @staticmethod
    def validate(data: bytes, offset: int) -> Optional[ValidationOutcome]:
        info = DDSParser.parse_header(data, offset)
        if info is None:
            return None
        available = len(data) - offset
        size = info["estimated_size"]
        # The size is an estimate; a texture that runs past the buffer is kept but truncated
        confidence = Confidence.MEDIUM
        if size > available:
            size = available
            confidence = Confidence.LOW
        fourcc = info["fourcc"] or "uncompressed"
        return ValidationOutcome(
            confidence=confidence,
            size=size,
            description=f"DirectDraw Surface texture, {info['width']} x {info['height']}, {fourcc}, {info['endianness']} endian",
        )


class RIFFParser:
    """Parser for RIFF containers (WAVE, AVI, WEBP and Xbox XMA audio)."""

    KNOWN_FORMS = (b"WAVE", b"AVI ", b"WEBP", b"ACON", b"RMID", b"CDXA")
    XMA_FORMAT_CODES = (0x0165, 0x0166)

    @staticmethod
    def _is_xma_chunk(data: bytes, search_offset: int) -> bool:
        """True for an XMA2 chunk or a fmt chunk with an XMA format tag."""
        chunk_id = data[search_offset : search_offset + 4]

        if chunk_id == b"XMA2":
            return True

        if chunk_id == b"fmt " and len(data) >= search_offset + 10:
            format_tag = read_uint16_le(data, search_offset + 8)
            if format_tag in RIFFParser.XMA_FORMAT_CODES:
                return True

        return False

    @staticmethod
    def parse_header(data: bytes, offset: int = 0) -> Optional[Dict[str, Any]]:
        """
        Parse RIFF header from data.

        Args:
            data: Data containing the RIFF header
            offset: Starting offset of the header

        Returns:
            Dictionary with header information or None if invalid
        """
        if len(data) < offset + 20:
            return None

        try:
            if data[offset : offset + 4] != b"RIFF":
                return None

            file_size = read_uint32_le(data, offset + 4) + 8
            form_type = data[offset + 8 : offset + 12]

            if file_size < 20 or offset + file_size > len(data):
                return None
            if not is_printable_text(form_type, min_ratio=1.0):
                return None

            # The first sub-chunk id must be printable as well
            if not is_printable_text(data[offset + 12 : offset + 16], min_ratio=1.0):
                return None

            is_xma = False
            search_offset = offset + 12
            end = min(offset + file_size, offset + 200, len(data)) - 8
            while search_offset <= end:
                if RIFFParser._is_xma_chunk(data, search_offset):
                    is_xma = True
                    break
                chunk_size = read_uint32_le(data, search_offset + 4)
                search_offset += 8 + ((chunk_size + 1) & ~1)

            return {
                "format": form_type.decode("ascii").strip(),
                "file_size": file_size,
                "is_xma": is_xma,
                "known_form": form_type in RIFFParser.KNOWN_FORMS,
            }
        except (struct.error, IndexError):
            return None

    @staticmethod
    def validate(data: bytes, offset: int) -> Optional[ValidationOutcome]:
        info = RIFFParser.parse_header(data, offset)
        if info is None:
            return None
        description = f"RIFF container, {info['format']}"
        if info["is_xma"]:
            description += ", Xbox Media Audio"
        return ValidationOutcome(
            confidence=Confidence.HIGH if info["known_form"] else Confidence.MEDIUM,
            size=info["file_size"],
            description=f"{description}, total size: {info['file_size']} bytes",
        )


class ZlibStreamParser:
    """Parser for zlib-compressed data streams."""

    ZLIB_DEFAULT = b"\x78\x9c"
    ZLIB_BEST = b"\x78\xda"

    # Leading bytes of decompressed data -> (content_type, extension)
    _SIGNATURE_MAP: Dict[bytes, Tuple[str, str]] = {
        b"\x89PNG": ("png", ".png"),
        b"DDS ": ("dds", ".dds"),
        b"RIFF": ("riff", ".riff"),
        b"\x1f\x8b\x08": ("gzip", ".gz"),
        b"PK\x03\x04": ("zip", ".zip"),
        b"\x7fELF": ("elf", ".elf"),
        b"%PDF": ("pdf", ".pdf"),
        b"MZ": ("pe", ".exe"),
    }

    @staticmethod
    def is_valid_zlib_header(data: bytes, offset: int = 0) -> bool:
        """Check the CMF/FLG pair: deflate method, 32K window max, checksum, no preset dictionary."""
        if len(data) < offset + 2:
            return False
        cmf, flg = data[offset], data[offset + 1]
        if cmf & 0x0F != 8 or cmf >> 4 > 7:
            return False
        if ((cmf << 8) | flg) % 31 != 0:
            return False
        return not flg & 0x20

    @staticmethod
    def determine_content_type(decompressed: bytes) -> Tuple[str, str]:
        """Guess what a decompressed payload is from its first bytes."""
        for sig, (ctype, ext) in ZlibStreamParser._SIGNATURE_MAP.items():
            if decompressed.startswith(sig):
                return ctype, ext

        if decompressed.startswith(b"<?xml"):
            return "xml", ".xml"

        sample = decompressed[:500]
        if len(decompressed) > 20 and is_printable_text(sample, min_ratio=0.85):
            return "text", ".txt"

        return "binary", ".bin"

    @staticmethod
    def try_decompress(data: bytes, offset: int = 0, max_compressed_size: int = DEFAULT_MAX_COMPRESSED) -> Optional[Dict[str, Any]]:
        """
        Inflate a zlib stream that starts at offset.

        Args:
            data: Buffer to inspect
            offset: Position of the CMF byte
            max_compressed_size: Largest stream to consider

        Returns:
            Dictionary with content type, sizes and the decompressed data,
            or None if the header is invalid or the stream does not inflate
        """
        if len(data) < offset + 8 or not ZlibStreamParser.is_valid_zlib_header(data, offset):
            return None

        inflated = inflate(data, offset, zlib.MAX_WBITS, max_input=max_compressed_size)
        if inflated is None:
            return None
        compressed_size, decompressed = inflated
        if not decompressed:
            return None

        content_type, extension = ZlibStreamParser.determine_content_type(decompressed)
        return {
            "format": "zlib",
            "content_type": content_type,
            "extension": extension,
            "compressed_size": compressed_size,
            "decompressed_size": len(decompressed),
            "decompressed_data": decompressed,
            "compression_ratio": len(decompressed) / compressed_size if compressed_size > 0 else 0,
        }

    @staticmethod
    def validate(data: bytes, offset: int) -> Optional[ValidationOutcome]:
        info = ZlibStreamParser.try_decompress(data, offset)
        if info is None:
            return None
        # Tiny streams that happen to decode are common in noise
        confidence = Confidence.HIGH if info["decompressed_size"] >= 20 else Confidence.MEDIUM
        return ValidationOutcome(
            confidence=confidence,
            size=info["compressed_size"],
            description=(
                f"Zlib compressed data, {info['content_type']}, "
                f"compressed size: {info['compressed_size']} bytes, "
                f"decompressed size: {info['decompressed_size']} bytes"
            ),
        )


class GzipParser:
    """Parser for gzip members (RFC 1952)."""

    FTEXT = 0x01
    FHCRC = 0x02
    FEXTRA = 0x04
    FNAME = 0x08
    FCOMMENT = 0x10
    RESERVED = 0xE0

    @staticmethod
    def _skip_string(data: bytes, position: int) -> Tuple[int, bytes]:
        end = data.index(b"\x00", position)
        return end + 1, data[position:end]

    @staticmethod
    def parse_header(data: bytes, offset: int = 0) -> Optional[Dict[str, Any]]:
        """
        Parse the gzip member header.

        Args:
            data: Data containing the gzip member
            offset: Starting offset of the member

        Returns:
            Dictionary with header fields and the offset of the deflate
            payload, or None if invalid
        """
        if len(data) < offset + 18:  # 10 byte header + empty deflate block + 8 byte trailer
            return None

        try:
            if data[offset : offset + 3] != b"\x1f\x8b\x08":
                return None
            flags = data[offset + 3]
            if flags & GzipParser.RESERVED:
                return None
            mtime = read_uint32_le(data, offset + 4)

            position = offset + 10
            if flags & GzipParser.FEXTRA:
                position += 2 + read_uint16_le(data, position)
            original_name = None
            if flags & GzipParser.FNAME:
                position, raw_name = GzipParser._skip_string(data, position)
                original_name = raw_name.decode("latin-1")
            comment = None
            if flags & GzipParser.FCOMMENT:
                position, raw_comment = GzipParser._skip_string(data, position)
                comment = raw_comment.decode("latin-1")
            if flags & GzipParser.FHCRC:
                position += 2

            if position >= len(data):
                return None

            return {
                "flags": flags,
                "mtime": mtime,
                "original_name": original_name,
                "comment": comment,
                "header_size": position - offset,
            }
        except (struct.error, IndexError, ValueError):
            return None

    @staticmethod
    def parse_member(data: bytes, offset: int = 0, max_compressed_size: int = DEFAULT_MAX_COMPRESSED) -> Optional[Dict[str, Any]]:
        """
        Parse and inflate one complete gzip member, checking CRC32 and ISIZE.

        Returns:
            Dictionary with header fields, total member size and the
            decompressed data, or None if invalid
        """
        header = GzipParser.parse_header(data, offset)
        if header is None:
            return None

        payload_offset = offset + header["header_size"]
        inflated = inflate(data, payload_offset, -zlib.MAX_WBITS, max_input=max_compressed_size)
        if inflated is None:
            return None
        compressed_size, decompressed = inflated

        trailer_offset = payload_offset + compressed_size
        if trailer_offset + 8 > len(data):
            return None
        crc = read_uint32_le(data, trailer_offset)
        isize = read_uint32_le(data, trailer_offset + 4)
        if zlib.crc32(decompressed) & 0xFFFFFFFF != crc or len(decompressed) & 0xFFFFFFFF != isize:
            return None

        member = dict(header)
        member.update(
            {
                "format": "gzip",
                "compressed_size": compressed_size,
                "total_size": trailer_offset + 8 - offset,
                "decompressed_size": len(decompressed),
                "decompressed_data": decompressed,
            }
        )
        return member

    @staticmethod
    def validate(data: bytes, offset: int) -> Optional[ValidationOutcome]:
        member = GzipParser.parse_member(data, offset)
        if member is None:
            return None
        description = "gzip compressed data"
        if member["original_name"]:
            description += f", original file name: \"{member['original_name']}\""
        description += f", total size: {member['total_size']} bytes"
        return ValidationOutcome(confidence=Confidence.HIGH, size=member["total_size"], description=description)
