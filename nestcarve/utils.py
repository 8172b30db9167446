"""
Utility functions for scanning and extraction.
"""

import hashlib
import os
import struct


def read_uint32_le(data: bytes, offset: int = 0) -> int:
    """Read a 32-bit unsigned integer in little-endian format."""
    return struct.unpack_from("<I", data, offset)[0]


def read_uint32_be(data: bytes, offset: int = 0) -> int:
    """Read a 32-bit unsigned integer in big-endian format."""
    return struct.unpack_from(">I", data, offset)[0]


def read_uint16_le(data: bytes, offset: int = 0) -> int:
    """Read a 16-bit unsigned integer in little-endian format."""
    return struct.unpack_from("<H", data, offset)[0]


def is_printable_text(data: bytes, min_ratio: float = 0.8) -> bool:
    """
    Check if data contains mostly printable ASCII text.

    Args:
        data: Bytes to check
        min_ratio: Minimum ratio of printable characters (0.0-1.0)

    Returns:
        True if data appears to be text
    """
    if len(data) == 0:
        return False

    printable_count = sum(1 for b in data if 32 <= b < 127 or b in (9, 10, 13))
    return (printable_count / len(data)) >= min_ratio


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename by removing/replacing invalid characters.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename safe for filesystem
    """
    invalid_chars = '<>:"|?*\\/\x00'
    for char in invalid_chars:
        filename = filename.replace(char, "_")
    # Never let a name climb out of its directory
    if filename in ("", ".", ".."):
        filename = "_" + filename
    return filename


def extraction_directory(base_path: str, source_path: str, offset: int, signature_id: str) -> str:
    """
    Derive the output directory for one match.

    The layout is <base>/<source name>.extracted/<OFFSET>_<signature id>, so two
    matches in the same file (or two signatures at one offset) never share a
    directory. Nothing is created on disk.

    Args:
        base_path: Directory the extraction tree hangs off
        source_path: File the match was found in
        offset: Match offset inside the source file
        signature_id: Signature that matched

    Returns:
        Path of the directory the extractor should write into
    """
    source_name = sanitize_filename(os.path.basename(source_path))
    unit_name = f"{offset:08X}_{sanitize_filename(signature_id)}"
    return os.path.join(base_path, f"{source_name}.extracted", unit_name)


def is_within_directory(path: str, directory: str) -> bool:
    """Return True if path resolves to a location inside directory."""
    real_dir = os.path.realpath(directory)
    real_path = os.path.realpath(path)
    return os.path.commonpath([real_dir, real_path]) == real_dir and real_path != real_dir


def sha256_digest(data: bytes) -> str:
    """Hex SHA-256 of a buffer."""
    return hashlib.sha256(data).hexdigest()


def format_size(size_bytes: int) -> str:
    """
    Format byte size to human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    size_float = float(size_bytes)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size_float < 1024.0:
            return f"{size_float:.2f} {unit}"
        size_float /= 1024.0
    return f"{size_float:.2f} PB"
