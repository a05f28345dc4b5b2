"""Filesystem backends and the caches they share."""

from bucketfs_core.store.backend import FilesystemBackend
from bucketfs_core.store.s3 import S3Backend, S3Config, build_s3_client
from bucketfs_core.store.session_cache import ExpiringCache, RegionResolver
from bucketfs_core.store.workspaces import WorkspacesBackend, WorkspacesConfig

__all__ = [
    "ExpiringCache",
    "FilesystemBackend",
    "RegionResolver",
    "S3Backend",
    "S3Config",
    "WorkspacesBackend",
    "WorkspacesConfig",
    "build_s3_client",
]
