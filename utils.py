#!/usr/bin/env python3
"""
Portal Check Utilities - Shared streaming digest operations

OCFL inventories name their digest algorithm (``digestAlgorithm``); the
helpers here map those names onto hashlib and hash files in chunks so
multi-gigabyte payloads never have to fit in memory.
"""

import hashlib
from pathlib import Path
from typing import Tuple, Optional, Callable


DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024  # 8MB chunks
DEFAULT_DIGEST_ALGORITHM = "sha512"

# OCFL algorithm names -> hashlib constructor names
DIGEST_ALGORITHMS = {
    "sha512": "sha512",
    "sha256": "sha256",
    "sha1": "sha1",
    "md5": "md5",
    "blake2b-512": "blake2b",
}


def new_hasher(algorithm: str = DEFAULT_DIGEST_ALGORITHM):
    """Create a hashlib object for an OCFL digest algorithm name."""
    try:
        name = DIGEST_ALGORITHMS[algorithm.lower()]
    except KeyError:
        raise ValueError(f"Unsupported digest algorithm: {algorithm}") from None
    return hashlib.new(name)


def compute_file_hash(
    file_path: Path,
    algorithm: str = DEFAULT_DIGEST_ALGORITHM,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    progress_callback: Optional[Callable[[int], None]] = None,
) -> Tuple[str, int]:
    """
    Compute the digest of a file using streaming (memory-efficient for large files).

    Args:
        file_path: Path to file to hash
        algorithm: OCFL digest algorithm name (default: sha512)
        chunk_size: Size of chunks to read (default: 8MB)
        progress_callback: Optional callback called with bytes_read after each chunk

    Returns:
        (hash_hex, file_size): lowercase hex digest and file size in bytes
    """
    hasher = new_hasher(algorithm)
    file_size = 0

    with open(file_path, "rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)
            file_size += len(chunk)

            if progress_callback:
                progress_callback(file_size)

    return hasher.hexdigest(), file_size


def hash_bytes(data: bytes, algorithm: str = DEFAULT_DIGEST_ALGORITHM) -> str:
    """Compute the hex digest of bytes."""
    hasher = new_hasher(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


def format_bytes(byte_count: int) -> str:
    """Format byte count in human-readable form."""
    if byte_count < 1024:
        return f"{byte_count} bytes"
    elif byte_count < 1024 * 1024:
        return f"{byte_count / 1024:.1f} KB"
    elif byte_count < 1024 * 1024 * 1024:
        return f"{byte_count / (1024 * 1024):.1f} MB"
    else:
        return f"{byte_count / (1024 * 1024 * 1024):.2f} GB"
