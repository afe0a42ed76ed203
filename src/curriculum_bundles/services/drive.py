"""Google Drive folder contract used by the Doc bundle.

The Doc bundle needs exactly two things from Drive: create (or find) a
folder under a parent, and turn a folder id into a shareable URL.
"""

from __future__ import annotations

import threading
import uuid
from typing import Protocol, runtime_checkable

DRIVE_FOLDER_URL = "https://drive.google.com/drive/folders/{folder_id}"


@runtime_checkable
class DriveService(Protocol):
    def create_folder(self, name: str, parent_id: str | None = None) -> str:
        """Create ``name`` under ``parent_id`` (root when None) unless it exists; return its id."""
        ...

    def url_for(self, folder_id: str) -> str:
        ...


def drive_folder_url(folder_id: str) -> str:
    return DRIVE_FOLDER_URL.format(folder_id=folder_id)


class MemoryDrive:
    """Folder tree kept in memory; same name under the same parent yields the same id."""

    def __init__(self, root_id: str = "root"):
        self.root_id = root_id
        self._folders: dict[tuple[str, str], str] = {}
        self._lock = threading.Lock()
        self.calls: list[tuple[str, str | None]] = []

    def create_folder(self, name: str, parent_id: str | None = None) -> str:
        parent = parent_id or self.root_id
        with self._lock:
            self.calls.append((name, parent_id))
            return self._folders.setdefault((parent, name), uuid.uuid4().hex[:12])

    def url_for(self, folder_id: str) -> str:
        return drive_folder_url(folder_id)


__all__ = ["DRIVE_FOLDER_URL", "DriveService", "MemoryDrive", "drive_folder_url"]
