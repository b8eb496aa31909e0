"""
Content fingerprinting for change detection.

MD5 is not collision-safe against an adversary. It only has to tell us
whether a task file changed since it was last imported.
"""

import hashlib
from pathlib import Path
from typing import BinaryIO, Union

STREAM_BUFFER_LENGTH = 1024


def md5_hex(stream: BinaryIO, chunk_size: int = STREAM_BUFFER_LENGTH) -> str:
    """
    Digest a byte stream in bounded chunks and return the uppercase hex MD5.
    Read errors propagate as OSError.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    digest = hashlib.md5()
    while True:
        chunk = stream.read(chunk_size)
        if not chunk:
            break
        digest.update(chunk)
    return digest.hexdigest().upper()


def md5_file(path: Union[str, Path]) -> str:
    """Fingerprint a file on disk."""
    with open(path, "rb") as stream:
        return md5_hex(stream)
