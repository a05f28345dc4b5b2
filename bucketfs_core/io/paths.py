from __future__ import annotations

from dataclasses import dataclass

SEPARATOR = "/"


@dataclass(frozen=True)
class ObjectPath:
    """An upstream path split into its container and intra-container key."""

    container: str
    key: str

    @property
    def is_root(self) -> bool:
        return not self.container

    @property
    def is_container_root(self) -> bool:
        return bool(self.container) and not self.key


def decompose(path: str) -> ObjectPath:
    """Split ``/container/key...`` into an ``ObjectPath``.

    The first non-empty segment is the container, the remainder (trailing
    separator included) is the key. No ``.``/``..`` normalization is done.
    """

    value = (path or "").lstrip(SEPARATOR)
    container, _, key = value.partition(SEPARATOR)
    return ObjectPath(container=container, key=key)


def compose(container: str, key: str = "") -> str:
    if not container:
        return SEPARATOR
    if not key:
        return f"{SEPARATOR}{container}"
    return f"{SEPARATOR}{container}{SEPARATOR}{key}"


def is_directory_path(path: str) -> bool:
    return (path or "").endswith(SEPARATOR)


def basename(key: str) -> str:
    """Last non-empty segment of a key: ``a/b`` and ``a/b/`` both give ``b``."""

    stripped = (key or "").rstrip(SEPARATOR)
    if not stripped:
        return SEPARATOR if key else "."
    return stripped.rsplit(SEPARATOR, 1)[-1]


def join_physical(*parts: str) -> str:
    """Join path fragments with single separators, skipping empty fragments."""

    segments: list[str] = []
    for part in parts:
        for segment in (part or "").split(SEPARATOR):
            if segment:
                segments.append(segment)
    return SEPARATOR.join(segments)
