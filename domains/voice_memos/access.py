"""
Watch folder references and access grants.

A ``FolderReference`` is what gets persisted when the user picks a folder:
the path plus the directory's device and inode numbers. At watch start the
reference is turned into an ``AccessGrant`` that is held for the whole
session. A reference that no longer resolves to the same readable
directory is a typed failure; the user has to pick the folder again.
"""

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import BaseModel

from domains.voice_memos.errors import AccessDeniedError, StaleAccessGrantError


class FolderReference(BaseModel):
    """Persisted pointer to the watch folder."""

    path: str
    device: Optional[int] = None
    inode: Optional[int] = None

    @classmethod
    def capture(cls, path: Path) -> "FolderReference":
        """
        Build a reference for an existing directory.

        Raises:
            OSError: If the directory cannot be stat'ed
        """
        path = Path(path).expanduser().absolute()
        st = os.stat(path)
        return cls(path=str(path), device=st.st_dev, inode=st.st_ino)

    @property
    def is_opaque(self) -> bool:
        """Whether the reference pins a specific directory (not just a path)."""
        return self.device is not None and self.inode is not None


@dataclass(frozen=True)
class AccessGrant:
    """Permission to read the watch folder for one session."""

    folder: Path
    reference: FolderReference
    acquired_at: float

    def revalidate(self) -> "AccessGrant":
        """Check the grant still holds; raises like ``acquire_access_grant``."""
        return acquire_access_grant(self.reference)


def acquire_access_grant(reference: FolderReference) -> AccessGrant:
    """
    Resolve a folder reference into an access grant.

    Args:
        reference: Saved folder reference

    Returns:
        AccessGrant for the folder

    Raises:
        StaleAccessGrantError: Folder is gone, not a directory, or replaced
        AccessDeniedError: Folder exists but cannot be listed
    """
    folder = Path(reference.path)

    try:
        st = os.stat(folder)
    except FileNotFoundError as e:
        raise StaleAccessGrantError(f"Folder no longer exists: {folder}") from e
    except PermissionError as e:
        raise AccessDeniedError(f"Cannot read folder: {folder}") from e

    if not folder.is_dir():
        raise StaleAccessGrantError(f"Not a directory: {folder}")

    if reference.is_opaque and (st.st_dev, st.st_ino) != (reference.device, reference.inode):
        raise StaleAccessGrantError(f"Folder was replaced since it was selected: {folder}")

    if not os.access(folder, os.R_OK | os.X_OK):
        raise AccessDeniedError(f"Cannot read folder: {folder}")

    return AccessGrant(folder=folder, reference=reference, acquired_at=time.time())
