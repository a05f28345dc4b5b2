"""Process-wide table of backend constructors keyed by backend type."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from functools import lru_cache

from bucketfs_core.errors import ValidationError
from bucketfs_core.observability import log_event, redact_params
from bucketfs_core.store.backend import FilesystemBackend

logger = logging.getLogger(__name__)

BackendConstructor = Callable[[Mapping[str, str]], FilesystemBackend]


class BackendRegistry:
    """Populated once at start-up, then frozen and read concurrently."""

    def __init__(self) -> None:
        self._factories: dict[str, BackendConstructor] = {}
        self._lock = threading.Lock()
        self._frozen = False

    def register(self, name: str, factory: BackendConstructor) -> None:
        with self._lock:
            if self._frozen:
                raise RuntimeError(f"Registry is frozen; cannot register backend {name!r}")
            if name in self._factories:
                raise RuntimeError(f"Backend {name!r} is already registered")
            self._factories[name] = factory

    def freeze(self) -> None:
        with self._lock:
            self._frozen = True

    def names(self) -> list[str]:
        return sorted(self._factories)

    def get(self, name: str) -> BackendConstructor:
        try:
            return self._factories[name]
        except KeyError:
            known = ", ".join(self.names()) or "none"
            raise ValidationError(f"Unknown backend type: {name} (available: {known})") from None

    def create(self, params: Mapping[str, str]) -> FilesystemBackend:
        backend_type = str(params.get("type") or "")
        if not backend_type:
            raise ValidationError("Backend params are missing 'type'")
        factory = self.get(backend_type)
        log_event(
            logger,
            "registry.create",
            level=logging.DEBUG,
            type=backend_type,
            params=redact_params(params),
        )
        return factory(params)


def build_default_registry() -> BackendRegistry:
    from bucketfs_core.store.s3 import S3Backend
    from bucketfs_core.store.workspaces import WorkspacesBackend

    registry = BackendRegistry()
    registry.register(S3Backend.type_name, S3Backend.from_params)
    registry.register(WorkspacesBackend.type_name, WorkspacesBackend.from_params)
    registry.freeze()
    return registry


@lru_cache()
def get_registry() -> BackendRegistry:
    return build_default_registry()


def reset_registry() -> None:
    """Drop the cached process registry (useful for testing)."""
    get_registry.cache_clear()
