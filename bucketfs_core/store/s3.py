"""Filesystem backend over an S3-compatible object store.

Directories are emulated: a directory is either a zero-length marker object
whose key ends in ``/`` or a common prefix reported by a delimited listing.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime
from typing import Any, BinaryIO

import boto3
from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from bucketfs_core.config import DEFAULT_REGION, LOOKUP_FALLBACK_REGION
from bucketfs_core.domain.forms import FormElement, LoginForm
from bucketfs_core.domain.models import FILE, FileEntry, Metadata
from bucketfs_core.errors import (
    BucketFsError,
    EncryptionKeyMismatchError,
    ForbiddenError,
    InvalidPathError,
    NotFoundError,
    UnimplementedError,
    UpstreamError,
    ValidationError,
    classify_client_error,
    client_error_details,
)
from bucketfs_core.io.paths import SEPARATOR, basename, decompose, is_directory_path
from bucketfs_core.observability import log_event
from bucketfs_core.store.session_cache import ExpiringCache, RegionResolver

logger = logging.getLogger(__name__)

SSE_ALGORITHM = "AES256"
ENCRYPTION_KEY_LENGTH = 32
DELETE_BATCH_SIZE = 1000

_REGION_CACHE = ExpiringCache.from_env()


@dataclass(frozen=True)
class S3Config:
    """Immutable credential set and options of one S3 backend instance."""

    access_key_id: str
    secret_access_key: str
    session_token: str = ""
    region: str = DEFAULT_REGION
    endpoint: str = ""
    encryption_key: str = ""
    fallback_region: str = LOOKUP_FALLBACK_REGION
    delete_workers: int = 1

    @classmethod
    def from_params(cls, params: Mapping[str, str]) -> S3Config:
        encryption_key = str(params.get("encryption_key") or "")
        if encryption_key and len(encryption_key) != ENCRYPTION_KEY_LENGTH:
            raise ValidationError(
                f"Encryption key needs to be {ENCRYPTION_KEY_LENGTH} characters "
                f"(current: {len(encryption_key)})"
            )
        raw_workers = str(params.get("delete_workers") or "1")
        try:
            delete_workers = int(raw_workers)
        except ValueError as exc:
            raise ValidationError(f"delete_workers must be an integer: {raw_workers}") from exc
        if delete_workers < 1:
            raise ValidationError("delete_workers must be at least 1")

        return cls(
            access_key_id=str(params.get("access_key_id") or ""),
            secret_access_key=str(params.get("secret_access_key") or ""),
            session_token=str(params.get("session_token") or ""),
            region=str(params.get("region") or DEFAULT_REGION),
            endpoint=str(params.get("endpoint") or ""),
            encryption_key=encryption_key,
            fallback_region=str(params.get("fallback_region") or LOOKUP_FALLBACK_REGION),
            delete_workers=delete_workers,
        )

    def credentials_key(self) -> tuple[str, ...]:
        return (
            self.access_key_id,
            self.secret_access_key,
            self.session_token,
            self.endpoint,
            self.encryption_key,
        )

    def sse_params(self) -> dict[str, str]:
        if not self.encryption_key:
            return {}
        return {"SSECustomerAlgorithm": SSE_ALGORITHM, "SSECustomerKey": self.encryption_key}

    def copy_source_sse_params(self) -> dict[str, str]:
        if not self.encryption_key:
            return {}
        return {
            "CopySourceSSECustomerAlgorithm": SSE_ALGORITHM,
            "CopySourceSSECustomerKey": self.encryption_key,
        }


def build_s3_client(config: S3Config, region: str) -> Any:
    """Create a boto3 S3 client using path-style addressing."""

    session = boto3.session.Session()
    return session.client(
        "s3",
        endpoint_url=config.endpoint or None,
        region_name=region,
        aws_access_key_id=config.access_key_id or None,
        aws_secret_access_key=config.secret_access_key or None,
        aws_session_token=config.session_token or None,
        config=Config(s3={"addressing_style": "path"}),
    )


def reset_region_cache() -> None:
    _REGION_CACHE.clear()


def _store_error(exc: Exception, target: str) -> BucketFsError:
    if isinstance(exc, ClientError):
        return classify_client_error(exc, target=target)
    return UpstreamError(f"{target}: {exc}")


def _epoch(value: datetime | None) -> int | None:
    if value is None:
        return None
    return int(value.timestamp())


def _batched(values: list[str], *, size: int = DELETE_BATCH_SIZE) -> Iterator[list[str]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


class S3Backend:
    """``FilesystemBackend`` implementation for S3 and S3-compatible stores."""

    type_name = "s3"

    def __init__(
        self,
        config: S3Config,
        *,
        client_factory: Callable[[S3Config, str], Any] = build_s3_client,
        region_cache: ExpiringCache | None = None,
        transfer_config: TransferConfig | None = None,
    ) -> None:
        self.config = config
        self._client_factory = client_factory
        self._client = client_factory(config, config.region)
        self._clients: dict[str, Any] = {config.region: self._client}
        self._regions = RegionResolver(
            region_cache if region_cache is not None else _REGION_CACHE,
            fallback_region=config.fallback_region,
        )
        self._transfer_config = transfer_config or TransferConfig(
            multipart_chunksize=8 * 1024 * 1024, max_concurrency=4
        )

    @classmethod
    def from_params(cls, params: Mapping[str, str], **kwargs: Any) -> S3Backend:
        return cls(S3Config.from_params(params), **kwargs)

    @staticmethod
    def login_form() -> LoginForm:
        return LoginForm(
            elements=(
                FormElement(name="type", type="hidden", value="s3"),
                FormElement(name="access_key_id", placeholder="Access Key ID*"),
                FormElement(name="secret_access_key", placeholder="Secret Access Key*"),
                FormElement(
                    name="advanced",
                    type="enable",
                    placeholder="Advanced",
                    target=("s3_path", "s3_session_token", "s3_encryption_key", "s3_region", "s3_endpoint"),
                ),
                FormElement(id="s3_session_token", name="session_token", placeholder="Session Token"),
                FormElement(id="s3_path", name="path", placeholder="Path"),
                FormElement(id="s3_encryption_key", name="encryption_key", placeholder="Encryption Key"),
                FormElement(id="s3_region", name="region", placeholder="Region"),
                FormElement(id="s3_endpoint", name="endpoint", placeholder="Endpoint"),
            )
        )

    def meta(self, path: str) -> Metadata:
        if path == SEPARATOR:
            return Metadata.readonly_root()
        return Metadata()

    def _client_for(self, container: str) -> Any:
        region = self._regions.resolve(self._client, self.config.credentials_key(), container)
        client = self._clients.get(region)
        if client is None:
            client = self._client_factory(self.config, region)
            self._clients[region] = client
        return client

    def _scan(self, client: Any, container: str, prefix: str) -> tuple[list[dict[str, Any]], list[str]]:
        """One delimited level under ``prefix``: (objects, common prefixes)."""

        objects: list[dict[str, Any]] = []
        prefixes: list[str] = []
        paginator = client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=container, Prefix=prefix, Delimiter=SEPARATOR):
            objects.extend(page.get("Contents") or [])
            prefixes.extend(item["Prefix"] for item in page.get("CommonPrefixes") or [])
        return objects, prefixes

    def list_dir(self, path: str) -> list[FileEntry]:
        p = decompose(path)
        if p.is_root:
            return self._list_containers()

        try:
            client = self._client_for(p.container)
            objects, prefixes = self._scan(client, p.container, p.key)
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, path) from exc

        entries: list[FileEntry] = []
        for obj in objects:
            if obj["Key"] == p.key:
                continue
            entries.append(
                FileEntry(
                    name=basename(obj["Key"]),
                    type=FILE,
                    size=obj.get("Size"),
                    time=_epoch(obj.get("LastModified")),
                )
            )
        entries.extend(FileEntry.directory(basename(prefix)) for prefix in prefixes)
        return entries

    def _list_containers(self) -> list[FileEntry]:
        try:
            response = self._client.list_buckets()
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, SEPARATOR) from exc
        return [
            FileEntry.directory(
                bucket["Name"], time=_epoch(bucket.get("CreationDate")), can_move=False
            )
            for bucket in response.get("Buckets") or []
        ]

    def read(self, path: str) -> BinaryIO:
        p = decompose(path)
        if p.is_root or not p.key:
            raise NotFoundError(path)

        request: dict[str, Any] = {"Bucket": p.container, "Key": p.key}
        try:
            client = self._client_for(p.container)
            return client.get_object(**request, **self.config.sse_params())["Body"]
        except ClientError as exc:
            code, message = client_error_details(exc)
            if code == "InvalidRequest" and "encryption" in message.lower():
                if not self.config.encryption_key:
                    raise EncryptionKeyMismatchError() from exc
                log_event(logger, "s3.read_without_encryption", bucket=p.container, key=p.key)
                return self._get_plain(client, request, path)
            if code == "InvalidArgument" and "secret key was invalid" in message:
                raise EncryptionKeyMismatchError() from exc
            raise _store_error(exc, path) from exc
        except BotoCoreError as exc:
            raise _store_error(exc, path) from exc

    def _get_plain(self, client: Any, request: dict[str, Any], path: str) -> BinaryIO:
        try:
            return client.get_object(**request)["Body"]
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, path) from exc

    def mkdir(self, path: str) -> None:
        p = decompose(path)
        if p.is_root:
            raise InvalidPathError(path)

        log_event(logger, "s3.mkdir", bucket=p.container, key=p.key)
        try:
            if p.is_container_root:
                self._create_container(p.container)
                return
            client = self._client_for(p.container)
            client.put_object(Bucket=p.container, Key=p.key, Body=b"")
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, path) from exc

    def _create_container(self, container: str) -> None:
        request: dict[str, Any] = {"Bucket": container}
        if self.config.region != LOOKUP_FALLBACK_REGION:
            request["CreateBucketConfiguration"] = {"LocationConstraint": self.config.region}
        self._client.create_bucket(**request)

    def delete(self, path: str) -> None:
        p = decompose(path)
        if p.is_root:
            raise NotFoundError(path)

        log_event(logger, "s3.delete", bucket=p.container, key=p.key)
        try:
            client = self._client_for(p.container)
            if p.key and not is_directory_path(path):
                client.delete_object(Bucket=p.container, Key=p.key)
                return

            self._remove_children(client, p.container, p.key, workers=self.config.delete_workers)
            if p.is_container_root:
                client.delete_bucket(Bucket=p.container)
            else:
                self._delete_marker(client, p.container, p.key)
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, path) from exc

    def _remove_children(self, client: Any, container: str, prefix: str, *, workers: int = 1) -> None:
        """Delete everything below ``prefix``, leaving its own marker in place."""

        objects, prefixes = self._scan(client, container, prefix)
        self._delete_keys(client, container, [obj["Key"] for obj in objects if obj["Key"] != prefix])

        if workers > 1 and len(prefixes) > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [
                    pool.submit(self._remove_directory, client, container, sub) for sub in prefixes
                ]
                for future in as_completed(futures):
                    future.result()
            return

        for sub in prefixes:
            self._remove_directory(client, container, sub)

    def _remove_directory(self, client: Any, container: str, prefix: str) -> None:
        self._remove_children(client, container, prefix)
        self._delete_marker(client, container, prefix)

    def _delete_keys(self, client: Any, container: str, keys: list[str]) -> None:
        for batch in _batched(keys):
            response = client.delete_objects(
                Bucket=container,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )
            errors = response.get("Errors") or []
            if errors:
                first = errors[0]
                detail = f"{container}/{first.get('Key')}: {first.get('Message') or first.get('Code')}"
                if first.get("Code") == "AccessDenied":
                    raise ForbiddenError(detail)
                raise UpstreamError(detail)

    def _delete_marker(self, client: Any, container: str, key: str) -> None:
        # The store may already have dropped the marker along with its last child.
        try:
            client.delete_object(Bucket=container, Key=key)
        except ClientError as exc:
            if not isinstance(classify_client_error(exc), NotFoundError):
                raise

    def rename(self, source: str, target: str) -> None:
        src = decompose(source)
        dst = decompose(target)
        if not src.key or is_directory_path(source):
            raise UnimplementedError(f"Cannot rename directory: {source}")
        if not dst.key:
            raise InvalidPathError(target)

        log_event(
            logger,
            "s3.rename",
            source_bucket=src.container,
            source_key=src.key,
            bucket=dst.container,
            key=dst.key,
        )
        try:
            client = self._client_for(src.container)
            client.copy_object(
                Bucket=dst.container,
                Key=dst.key,
                CopySource={"Bucket": src.container, "Key": src.key},
                **self.config.copy_source_sse_params(),
                **self.config.sse_params(),
            )
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, source) from exc
        self.delete(source)

    def touch(self, path: str) -> None:
        p = decompose(path)
        if p.is_root or not p.key:
            raise InvalidPathError(path)

        try:
            client = self._client_for(p.container)
            client.put_object(
                Bucket=p.container,
                Key=p.key,
                Body=b"",
                ContentLength=0,
                **self.config.sse_params(),
            )
        except (ClientError, BotoCoreError) as exc:
            raise _store_error(exc, path) from exc

    def write(self, path: str, stream: BinaryIO) -> None:
        p = decompose(path)
        if p.is_root or not p.key:
            raise InvalidPathError(path)

        log_event(logger, "s3.write", bucket=p.container, key=p.key)
        try:
            client = self._client_for(p.container)
            client.upload_fileobj(
                stream,
                p.container,
                p.key,
                ExtraArgs=self.config.sse_params() or None,
                Config=self._transfer_config,
            )
        except (ClientError, BotoCoreError, Boto3Error) as exc:
            raise _store_error(exc, path) from exc
