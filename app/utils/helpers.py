"""
Helper utilities for the Voice Memo Transcriber.

Common functions used across the pipeline and the control API.
"""

import hashlib
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable


def hash_text(text: str) -> str:
    """Generate SHA256 hash of text."""
    return hashlib.sha256(text.encode()).hexdigest()


def now_iso() -> str:
    """Get current timestamp as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def is_hidden(path: Path) -> bool:
    """Check if path is hidden (starts with dot)."""
    return path.name.startswith('.')


def has_excluded_component(path: Path, excluded_names: Iterable[str]) -> bool:
    """Check if any path component matches an excluded folder name (case-insensitive)."""
    excluded = {name.lower() for name in excluded_names}
    return any(part.lower() in excluded for part in path.parts)


def is_package_like(path: Path, package_suffixes: Iterable[str]) -> bool:
    """Check if a directory looks like a package bundle (``Foo.app``, ``X.bundle``)."""
    suffix = path.suffix.lstrip('.').lower()
    return bool(suffix) and suffix in set(package_suffixes)
