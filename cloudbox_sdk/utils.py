"""
Utility functions for CloudBox SDK.

This module provides helpers for reading files in chunks, building
remote paths and formatting transfer statistics.
"""

import re
import math
from typing import BinaryIO, Optional
from urllib.parse import quote

from .exceptions import ValidationError

DEFAULT_CHUNK_SIZE = 4 * 1024 * 1024  # 4MB
MAX_CHUNK_SIZE = 150 * 1024 * 1024  # 150MB, also the single-shot upload limit


def read_fully(file_obj: BinaryIO, num_bytes: int) -> bytes:
    """
    Read up to ``num_bytes``, stopping early only at EOF.

    ``read`` may return fewer bytes than requested (pipes, network
    streams), so it is called repeatedly until the chunk is complete.
    """
    parts = []
    remaining = num_bytes

    while remaining > 0:
        part = file_obj.read(remaining)
        if not part:
            break
        parts.append(part)
        remaining -= len(part)

    return b"".join(parts)


def validate_chunk_size(chunk_size) -> int:
    """Check a chunk size is a positive integer within the service limit."""
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int):
        raise ValidationError(
            f"Expecting chunk size to be an integer, got {type(chunk_size).__name__}",
            field="chunk_size",
        )
    if chunk_size <= 0:
        raise ValidationError(f"Chunk size must be positive, got {chunk_size}", field="chunk_size")
    if chunk_size > MAX_CHUNK_SIZE:
        raise ValidationError(
            f"Chunk size must not exceed {MAX_CHUNK_SIZE} bytes, got {chunk_size}",
            field="chunk_size",
        )
    return chunk_size


def normalise_path(path: str) -> str:
    """Trim slashes from both ends and collapse repeated slashes."""
    return re.sub(r"/+", "/", path.strip("/"))


def encode_path(path: str) -> str:
    """Percent-encode a remote path, keeping the slashes literal."""
    return quote(normalise_path(path), safe="/~")


def join_remote_path(directory: str, filename: str) -> str:
    """Join a remote directory and a filename the way the service expects."""
    return directory.rstrip("/") + "/" + filename


def format_file_size(size_bytes: int) -> str:
    """
    Format file size in human-readable format.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted size string (e.g., "1.5 MB")
    """
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB", "PB"]
    i = int(math.floor(math.log(size_bytes, 1024)))

    if i >= len(size_names):
        i = len(size_names) - 1

    p = math.pow(1024, i)
    size = round(size_bytes / p, 2)

    return f"{size} {size_names[i]}"


def parse_file_size(size_str: str) -> int:
    """
    Parse human-readable file size to bytes.

    Args:
        size_str: Size string (e.g., "1.5 MB", "500KB")

    Returns:
        Size in bytes
    """
    size_str = size_str.strip().upper()

    match = re.match(r'^(\d+(?:\.\d+)?)\s*([KMGTPE]?B?)$', size_str)
    if not match:
        raise ValueError(f"Invalid size format: {size_str}")

    number, unit = match.groups()
    number = float(number)

    multipliers = {
        'B': 1,
        'KB': 1024,
        'MB': 1024 ** 2,
        'GB': 1024 ** 3,
        'TB': 1024 ** 4,
        'PB': 1024 ** 5,
        'EB': 1024 ** 6,
    }

    if unit == '':
        unit = 'B'
    elif unit in ['K', 'M', 'G', 'T', 'P', 'E']:
        unit += 'B'

    if unit not in multipliers:
        raise ValueError(f"Unknown unit: {unit}")

    return int(number * multipliers[unit])


def calculate_transfer_speed(bytes_transferred: int, elapsed_time: float) -> float:
    """Calculate transfer speed in bytes per second."""
    if elapsed_time <= 0:
        return 0
    return bytes_transferred / elapsed_time


def estimate_remaining_time(bytes_transferred: int, total_bytes: int, elapsed_time: float) -> Optional[float]:
    """
    Estimate remaining transfer time.

    Args:
        bytes_transferred: Bytes transferred so far
        total_bytes: Total bytes to transfer
        elapsed_time: Time elapsed so far

    Returns:
        Estimated remaining time in seconds, or None if cannot estimate
    """
    if bytes_transferred <= 0 or elapsed_time <= 0:
        return None

    speed = calculate_transfer_speed(bytes_transferred, elapsed_time)
    if speed <= 0:
        return None

    remaining_bytes = total_bytes - bytes_transferred
    return remaining_bytes / speed
