from __future__ import annotations

from typing import BinaryIO, Protocol

from bucketfs_core.domain.forms import LoginForm
from bucketfs_core.domain.models import FileEntry, Metadata


class FilesystemBackend(Protocol):
    """Uniform filesystem contract consumed by the upstream file manager.

    Paths are absolute upstream paths (``/container/key...``); a trailing ``/``
    marks a directory.
    """

    def login_form(self) -> LoginForm:
        """Fields needed to configure this backend."""

    def meta(self, path: str) -> Metadata:
        """Capability flags for ``path``."""

    def list_dir(self, path: str) -> list[FileEntry]:
        """Entries directly under ``path``."""

    def read(self, path: str) -> BinaryIO:
        """Open the object at ``path`` for streaming reads."""

    def mkdir(self, path: str) -> None:
        """Create a directory (or a container at the root)."""

    def delete(self, path: str) -> None:
        """Delete a file, or a directory and everything under it."""

    def rename(self, source: str, target: str) -> None:
        """Move a file to a new path."""

    def touch(self, path: str) -> None:
        """Create an empty file."""

    def write(self, path: str, stream: BinaryIO) -> None:
        """Stream ``stream`` into the file at ``path`` (overwrite)."""
