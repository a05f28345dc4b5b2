"""Backend configuration helpers (env-first, YAML file as an alternative)."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

DEFAULT_REGION = "us-east-2"
# Region assumed for a container whose location cannot be looked up.
LOOKUP_FALLBACK_REGION = "us-east-1"

DEFAULT_CACHE_MAX_ENTRIES = 256
DEFAULT_CACHE_TTL_SECONDS = 120.0


@dataclass(frozen=True)
class CacheSettings:
    max_entries: int = DEFAULT_CACHE_MAX_ENTRIES
    ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS


def _first(env: Mapping[str, str], *names: str) -> str:
    for name in names:
        value = env.get(name)
        if value is not None and value.strip():
            return value.strip()
    return ""


def _load_s3_env(env: Mapping[str, str]) -> dict[str, str]:
    access_key = _first(env, "S3_ACCESS_KEY_ID", "AWS_ACCESS_KEY_ID")
    secret_key = _first(env, "S3_SECRET_ACCESS_KEY", "AWS_SECRET_ACCESS_KEY")
    if not access_key or not secret_key:
        raise ValueError("S3_ACCESS_KEY_ID and S3_SECRET_ACCESS_KEY must both be set")

    params = {
        "type": "s3",
        "access_key_id": access_key,
        "secret_access_key": secret_key,
        "session_token": _first(env, "S3_SESSION_TOKEN", "AWS_SESSION_TOKEN"),
        "region": _first(env, "S3_REGION", "AWS_DEFAULT_REGION"),
        "endpoint": _first(env, "S3_ENDPOINT_URL", "AWS_ENDPOINT_URL"),
        "encryption_key": _first(env, "S3_ENCRYPTION_KEY"),
        "path": _first(env, "S3_PATH"),
    }
    return {key: value for key, value in params.items() if value}


def _load_workspaces_env(env: Mapping[str, str]) -> dict[str, str]:
    endpoint = _first(env, "WORKSPACES_ENDPOINT")
    username = _first(env, "WORKSPACES_USERNAME")
    password = _first(env, "WORKSPACES_PASSWORD")
    if not endpoint or not username or not password:
        raise ValueError(
            "WORKSPACES_ENDPOINT, WORKSPACES_USERNAME, and WORKSPACES_PASSWORD must all be set"
        )
    return {"type": "workspaces", "endpoint": endpoint, "username": username, "password": password}


def build_backend_params_from_env(env: Mapping[str, str] | None = None) -> dict[str, str]:
    """Resolve backend params from environment variables.

    ``BUCKETFS_BACKEND`` picks the backend type (default ``s3``).
    """

    env = dict(os.environ) if env is None else env
    backend_type = _first(env, "BUCKETFS_BACKEND") or "s3"
    if backend_type == "s3":
        return _load_s3_env(env)
    if backend_type == "workspaces":
        return _load_workspaces_env(env)
    raise ValueError(f"Unsupported BUCKETFS_BACKEND: {backend_type}")


def load_backend_params(path: str | Path) -> dict[str, str]:
    """Read backend params from a YAML mapping."""

    with Path(path).open("r", encoding="utf-8") as handle:
        payload: Any = yaml.safe_load(handle) or {}
    if not isinstance(payload, dict):
        raise ValueError(f"Backend config must be a mapping: {path}")
    return {str(key): str(value) for key, value in payload.items() if value is not None}


def resolve_cache_settings(env: Mapping[str, str] | None = None) -> CacheSettings:
    env = dict(os.environ) if env is None else env
    raw_entries = _first(env, "BUCKETFS_CACHE_MAX_ENTRIES")
    raw_ttl = _first(env, "BUCKETFS_CACHE_TTL_SECONDS")
    try:
        max_entries = int(raw_entries) if raw_entries else DEFAULT_CACHE_MAX_ENTRIES
        ttl_seconds = float(raw_ttl) if raw_ttl else DEFAULT_CACHE_TTL_SECONDS
    except ValueError as exc:
        raise ValueError("BUCKETFS_CACHE_* settings must be numeric") from exc
    if max_entries < 1 or ttl_seconds <= 0:
        raise ValueError("BUCKETFS_CACHE_* settings must be positive")
    return CacheSettings(max_entries=max_entries, ttl_seconds=ttl_seconds)
