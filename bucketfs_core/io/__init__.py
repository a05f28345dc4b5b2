"""Path helpers mapping upstream hierarchical paths onto container/key pairs."""

from bucketfs_core.io.paths import (
    SEPARATOR,
    ObjectPath,
    basename,
    compose,
    decompose,
    is_directory_path,
    join_physical,
)

__all__ = [
    "SEPARATOR",
    "ObjectPath",
    "basename",
    "compose",
    "decompose",
    "is_directory_path",
    "join_physical",
]
