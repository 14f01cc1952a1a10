"""
File fingerprints used as dedupe keys.

A fingerprint identifies one "version" of a file: the same path, size and
modification time always hash to the same key, and a rewritten file gets
a new one.
"""

from app.utils.helpers import hash_text


def compute_fingerprint(path: str, size: int, mtime: float) -> str:
    """
    Compute the SHA256 fingerprint of ``(path, size, mtime)``.

    Args:
        path: Absolute file path
        size: File size in bytes
        mtime: Modification time in seconds since the epoch

    Returns:
        Hex digest
    """
    return hash_text(f"{path}|{int(size)}|{float(mtime)!r}")
