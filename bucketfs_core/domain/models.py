from __future__ import annotations

from dataclasses import dataclass

FILE = "file"
DIRECTORY = "directory"


@dataclass(frozen=True)
class FileEntry:
    """One row of a directory listing."""

    name: str
    type: str = FILE
    size: int | None = None
    time: int | None = None
    can_move: bool | None = None

    @property
    def is_dir(self) -> bool:
        return self.type == DIRECTORY

    @classmethod
    def directory(cls, name: str, *, time: int | None = None, can_move: bool | None = None) -> FileEntry:
        return cls(name=name, type=DIRECTORY, time=time, can_move=can_move)


@dataclass(frozen=True)
class Metadata:
    """Capability flags for a path. ``None`` leaves the decision to the upstream default."""

    can_create_file: bool | None = None
    can_rename: bool | None = None
    can_move: bool | None = None
    can_upload: bool | None = None

    @classmethod
    def readonly_root(cls) -> Metadata:
        return cls(can_create_file=False, can_rename=False, can_move=False, can_upload=False)
