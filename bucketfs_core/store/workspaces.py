"""Filesystem backend brokered by a workspace management service.

The service hands out short-lived S3 credentials for a logical path; every
operation that touches data provisions a fresh object-store backend with those
credentials and forwards the call to it using the physical path.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, BinaryIO
from urllib.parse import urlsplit, urlunsplit

import requests

from bucketfs_core.domain.forms import FormElement, LoginForm
from bucketfs_core.domain.models import FileEntry, Metadata
from bucketfs_core.errors import (
    BucketFsError,
    InvalidPathError,
    NotFoundError,
    UpstreamError,
    ValidationError,
)
from bucketfs_core.io.paths import SEPARATOR, decompose, is_directory_path, join_physical
from bucketfs_core.observability import log_event
from bucketfs_core.store.backend import FilesystemBackend
from bucketfs_core.store.session_cache import ExpiringCache

logger = logging.getLogger(__name__)

LOGIN_PATH = "/api/auth/jwt/login"
WORKSPACE_PATH = "/api/workspace"
TOKEN_SEARCH_PATH = "/api/token/search"
DEFAULT_TIMEOUT_SECONDS = 30.0


def _close_backend(backend: Any) -> None:
    backend.close()


_INSTANCE_CACHE = ExpiringCache.from_env(on_evict=_close_backend)

BackendFactory = Callable[[Mapping[str, str]], FilesystemBackend]


def _text(payload: Mapping[str, Any], name: str) -> str:
    value = payload.get(name)
    return "" if value is None else str(value)


@dataclass(frozen=True)
class WorkspaceRoot:
    root_type: str
    bucket: str
    base_path: str
    id: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> WorkspaceRoot:
        return cls(
            root_type=_text(payload, "root_type"),
            bucket=_text(payload, "bucket"),
            base_path=_text(payload, "base_path"),
            id=_text(payload, "id"),
        )


@dataclass(frozen=True)
class Workspace:
    name: str
    base_path: str
    id: str
    created: str
    owner_id: str
    root_id: str
    root: WorkspaceRoot

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> Workspace:
        return cls(
            name=_text(payload, "name"),
            base_path=_text(payload, "base_path"),
            id=_text(payload, "id"),
            created=_text(payload, "created"),
            owner_id=_text(payload, "owner_id"),
            root_id=_text(payload, "root_id"),
            root=WorkspaceRoot.from_payload(payload.get("root") or {}),
        )

    def created_epoch(self) -> int | None:
        if not self.created:
            return None
        try:
            created = datetime.fromisoformat(self.created)
        except ValueError:
            return None
        if created.tzinfo is None:
            created = created.replace(tzinfo=timezone.utc)
        return int(created.timestamp())


@dataclass(frozen=True)
class ScopedToken:
    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: str = ""
    id: str = ""
    created: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> ScopedToken:
        return cls(
            access_key_id=_text(payload, "access_key_id"),
            secret_access_key=_text(payload, "secret_access_key"),
            session_token=_text(payload, "session_token"),
            expiration=_text(payload, "expiration"),
            id=_text(payload, "id"),
            created=_text(payload, "created"),
        )


@dataclass(frozen=True)
class StorageNode:
    name: str
    api_url: str
    region_name: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> StorageNode:
        return cls(
            name=_text(payload, "name"),
            api_url=_text(payload, "api_url"),
            region_name=_text(payload, "region_name"),
        )


@dataclass(frozen=True)
class TokenGrant:
    token: ScopedToken
    node: StorageNode

    def backend_params(self) -> dict[str, str]:
        return {
            "type": "s3",
            "access_key_id": self.token.access_key_id,
            "secret_access_key": self.token.secret_access_key,
            "session_token": self.token.session_token,
            "path": "",
            "region": self.node.region_name,
            "endpoint": self.node.api_url,
            "encryption_key": "",
        }


@dataclass(frozen=True)
class WorkspaceMatch:
    path: str
    workspace: Workspace

    def physical_path(self) -> str:
        root = self.workspace.root
        return SEPARATOR + join_physical(
            root.bucket, root.base_path, self.workspace.base_path, self.path
        )


@dataclass(frozen=True)
class TokenSearchResult:
    tokens: tuple[TokenGrant, ...] = ()
    workspaces: dict[str, WorkspaceMatch] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Any) -> TokenSearchResult:
        if not isinstance(payload, dict):
            raise UpstreamError("Token search returned an unexpected payload")
        try:
            tokens = tuple(
                TokenGrant(
                    token=ScopedToken.from_payload(item.get("token") or {}),
                    node=StorageNode.from_payload(item.get("node") or {}),
                )
                for item in payload.get("tokens") or []
            )
            workspaces = {
                str(term): WorkspaceMatch(
                    path=_text(part, "path"),
                    workspace=Workspace.from_payload(part.get("workspace") or {}),
                )
                for term, part in (payload.get("workspaces") or {}).items()
            }
        except (AttributeError, TypeError) as exc:
            raise UpstreamError("Token search returned a malformed payload") from exc
        return cls(tokens=tokens, workspaces=workspaces)


@dataclass(frozen=True)
class WorkspacesConfig:
    endpoint: str
    username: str
    password: str

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> WorkspacesConfig:
        endpoint = str(params.get("endpoint") or "").strip()
        username = str(params.get("username") or "")
        password = str(params.get("password") or "")
        parsed = urlsplit(endpoint)
        if parsed.scheme not in {"http", "https"} or not parsed.netloc:
            raise ValidationError(f"Invalid workspaces endpoint: {endpoint or '<empty>'}")
        if not username or not password:
            raise ValidationError("username and password are required")
        return cls(endpoint=endpoint, username=username, password=password)

    def url(self, path: str) -> str:
        parsed = urlsplit(self.endpoint)
        return urlunsplit((parsed.scheme, parsed.netloc, path, "", ""))


def reset_instance_cache() -> None:
    _INSTANCE_CACHE.clear()


def _default_backend_factory(params: Mapping[str, str]) -> FilesystemBackend:
    from bucketfs_core.registry import get_registry

    return get_registry().create(params)


def authenticate(
    session: requests.Session, config: WorkspacesConfig, *, timeout: float = DEFAULT_TIMEOUT_SECONDS
) -> str:
    """Exchange username/password for a bearer token."""

    try:
        response = session.post(
            config.url(LOGIN_PATH),
            data={"username": config.username, "password": config.password},
            timeout=timeout,
        )
        response.raise_for_status()
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        raise UpstreamError(f"Workspaces login failed: {exc}") from exc

    token = payload.get("access_token") if isinstance(payload, dict) else None
    if not token:
        raise UpstreamError("Workspaces login response has no access_token")
    return str(token)


class WorkspacesBackend:
    """``FilesystemBackend`` that re-provisions an S3 backend per operation."""

    type_name = "workspaces"

    def __init__(
        self,
        config: WorkspacesConfig,
        token: str,
        *,
        session: requests.Session,
        backend_factory: BackendFactory | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        owns_session: bool = False,
    ) -> None:
        self.config = config
        self._token = token
        self._session = session
        self._backend_factory = backend_factory or _default_backend_factory
        self._timeout = timeout
        self._owns_session = owns_session
        self._cache: ExpiringCache | None = None
        self._cache_params: dict[str, str] = {}

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, str],
        *,
        session: requests.Session | None = None,
        backend_factory: BackendFactory | None = None,
        cache: ExpiringCache | None = None,
    ) -> WorkspacesBackend:
        """Return an authenticated backend, reusing one cached for identical params.

        A session created here belongs to the backend and is closed when the
        backend leaves the cache.
        """

        cache = cache if cache is not None else _INSTANCE_CACHE
        cached = cache.get(params)
        if cached is not None:
            return cached

        config = WorkspacesConfig.from_params(params)
        owns_session = session is None
        session = session or requests.Session()
        try:
            token = authenticate(session, config)
        except UpstreamError:
            if owns_session:
                session.close()
            raise
        backend = cls(
            config,
            token,
            session=session,
            backend_factory=backend_factory,
            owns_session=owns_session,
        )
        backend._cache = cache
        backend._cache_params = dict(params)
        log_event(logger, "workspaces.client_created", endpoint=config.endpoint, user=config.username)
        cache.set(params, backend)
        return backend

    @staticmethod
    def login_form() -> LoginForm:
        return LoginForm(
            elements=(
                FormElement(name="type", type="hidden", value="workspaces"),
                FormElement(name="username", placeholder="Username", required=True),
                FormElement(name="password", placeholder="Password", required=True),
                FormElement(
                    name="advanced", type="enable", placeholder="Advanced", target=("wio_endpoint",)
                ),
                FormElement(id="wio_endpoint", name="endpoint", placeholder="Endpoint"),
            )
        )

    def meta(self, path: str) -> Metadata:
        if path == SEPARATOR:
            return Metadata.readonly_root()
        return Metadata()

    def close(self) -> None:
        if self._owns_session:
            self._session.close()

    def _forget(self) -> None:
        """Drop this instance from the cache so the next lookup logs in again."""

        if self._cache is not None and self._cache.get(self._cache_params) is self:
            self._cache.pop(self._cache_params)
            self.close()

    def _request(self, method: str, path: str, payload: Any = None) -> Any:
        try:
            response = self._session.request(
                method,
                self.config.url(path),
                headers={"Authorization": f"Bearer {self._token}"},
                json=payload,
                timeout=self._timeout,
            )
            if response.status_code == 401:
                log_event(logger, "workspaces.token_rejected", method=method, path=path)
                self._forget()
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            raise UpstreamError(f"{method} {path} failed: {exc}") from exc

    def workspaces(self) -> list[Workspace]:
        payload = self._request("GET", WORKSPACE_PATH)
        if not isinstance(payload, list):
            raise UpstreamError("Workspace listing returned an unexpected payload")
        try:
            return [Workspace.from_payload(item) for item in payload]
        except (AttributeError, TypeError) as exc:
            raise UpstreamError("Workspace listing returned a malformed payload") from exc

    def search(self, terms: list[str]) -> TokenSearchResult:
        return TokenSearchResult.from_payload(
            self._request("POST", TOKEN_SEARCH_PATH, {"search_terms": terms})
        )

    def _provision(self, path: str) -> tuple[str, FilesystemBackend]:
        """Resolve ``path`` to a physical path plus a backend holding scoped credentials."""

        result = self.search([path])
        if not result.tokens or not result.workspaces:
            raise UpstreamError(f"No workspace credentials granted for {path}")
        match = result.workspaces.get(path) or next(iter(result.workspaces.values()))
        backend = self._backend_factory(result.tokens[0].backend_params())
        physical = match.physical_path()
        log_event(
            logger,
            "workspaces.provisioned",
            level=logging.DEBUG,
            path=path,
            workspace=match.workspace.name,
            physical=physical,
        )
        return physical, backend

    def _forward(
        self, path: str, *, root_error: type[BucketFsError] = InvalidPathError
    ) -> tuple[str, FilesystemBackend]:
        # The root only lists workspaces; it maps to no physical location.
        if decompose(path).is_root:
            raise root_error(path)
        physical, backend = self._provision(path)
        if is_directory_path(path) and not is_directory_path(physical):
            physical += SEPARATOR
        return physical, backend

    def list_dir(self, path: str) -> list[FileEntry]:
        if decompose(path).is_root:
            return [
                FileEntry.directory(ws.name, time=ws.created_epoch(), can_move=False)
                for ws in self.workspaces()
            ]
        physical, backend = self._provision(path)
        return backend.list_dir(physical.rstrip(SEPARATOR) + SEPARATOR)

    def read(self, path: str) -> BinaryIO:
        physical, backend = self._forward(path, root_error=NotFoundError)
        return backend.read(physical)

    def mkdir(self, path: str) -> None:
        physical, backend = self._forward(path)
        backend.mkdir(physical)

    def delete(self, path: str) -> None:
        physical, backend = self._forward(path, root_error=NotFoundError)
        backend.delete(physical)

    def rename(self, source: str, target: str) -> None:
        # Moves across workspaces have no defined meaning; accepted as a no-op.
        log_event(logger, "workspaces.rename_ignored", source=source, target=target)

    def touch(self, path: str) -> None:
        physical, backend = self._forward(path)
        backend.touch(physical)

    def write(self, path: str, stream: BinaryIO) -> None:
        physical, backend = self._forward(path)
        backend.write(physical, stream)
