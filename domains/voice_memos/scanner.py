"""Listing of candidate audio files inside the watch folder."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List

from app.utils.config import Settings
from app.utils.helpers import has_excluded_component, is_hidden, is_package_like


@dataclass
class AudioFileFilter:
    """Decides which directory entries are candidate recordings."""

    extensions: set[str] = field(default_factory=lambda: {"m4a", "wav", "aiff", "caf"})
    excluded_folders: List[str] = field(default_factory=lambda: ["Capture"])
    package_suffixes: set[str] = field(default_factory=set)

    @classmethod
    def from_settings(cls, settings: Settings) -> "AudioFileFilter":
        return cls(
            extensions=settings.get_supported_extensions(),
            excluded_folders=settings.get_excluded_folders(),
            package_suffixes=settings.get_package_suffixes(),
        )

    def is_supported(self, path: str) -> bool:
        """Check the extension, case-insensitively."""
        return Path(path).suffix.lstrip('.').lower() in self.extensions

    def should_descend(self, directory: Path) -> bool:
        """Check whether a subdirectory may contain candidates."""
        if is_hidden(directory):
            return False
        if is_package_like(directory, self.package_suffixes):
            return False
        return not has_excluded_component(Path(directory.name), self.excluded_folders)


def list_audio_files(folder: Path, audio_filter: AudioFileFilter) -> List[str]:
    """
    List supported audio files under ``folder``, recursively.

    Hidden entries, package-like bundles, excluded folder names and anything
    that is not a regular file are skipped. The result is sorted
    lexicographically so processing order is reproducible.

    Args:
        folder: Watch folder
        audio_filter: Candidate filter

    Returns:
        Sorted list of absolute paths
    """
    folder = Path(folder)
    found: List[str] = []

    for current, dirnames, filenames in os.walk(folder):
        current_path = Path(current)
        dirnames[:] = [d for d in dirnames if audio_filter.should_descend(current_path / d)]
        found.extend(_candidates(current_path, filenames, audio_filter))

    return sorted(found)


def _candidates(directory: Path, filenames: Iterable[str], audio_filter: AudioFileFilter):
    for name in filenames:
        path = directory / name
        if is_hidden(path):
            continue
        if not audio_filter.is_supported(name):
            continue
        try:
            if not path.is_file() or path.is_symlink():
                continue
        except OSError:
            continue
        yield str(path.absolute())
