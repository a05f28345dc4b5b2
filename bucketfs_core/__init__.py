"""Stable public imports for `bucketfs_core`.

Upstream applications should create backends through the registry
(``get_registry().create(params)``) and talk to them via ``FilesystemBackend``.
"""

from bucketfs_core.domain import FileEntry, FormElement, LoginForm, Metadata
from bucketfs_core.errors import (
    BucketFsError,
    EncryptionKeyMismatchError,
    ForbiddenError,
    InvalidPathError,
    NotFoundError,
    UnimplementedError,
    UpstreamError,
    ValidationError,
)
from bucketfs_core.io.paths import ObjectPath, compose, decompose
from bucketfs_core.registry import BackendRegistry, get_registry
from bucketfs_core.store import (
    ExpiringCache,
    FilesystemBackend,
    S3Backend,
    S3Config,
    WorkspacesBackend,
)

__all__ = [
    "BackendRegistry",
    "BucketFsError",
    "EncryptionKeyMismatchError",
    "ExpiringCache",
    "FileEntry",
    "FilesystemBackend",
    "ForbiddenError",
    "FormElement",
    "InvalidPathError",
    "LoginForm",
    "Metadata",
    "NotFoundError",
    "ObjectPath",
    "S3Backend",
    "S3Config",
    "UnimplementedError",
    "UpstreamError",
    "ValidationError",
    "WorkspacesBackend",
    "compose",
    "decompose",
    "get_registry",
]
