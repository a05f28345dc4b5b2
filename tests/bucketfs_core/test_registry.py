from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest

from bucketfs_core.errors import ValidationError
from bucketfs_core.registry import BackendRegistry, build_default_registry, get_registry, reset_registry
from bucketfs_core.store.s3 import S3Backend


def test_create_dispatches_on_type() -> None:
    registry = BackendRegistry()
    factory = MagicMock(return_value="backend")
    registry.register("fake", factory)

    assert registry.create({"type": "fake", "x": "1"}) == "backend"
    factory.assert_called_once_with({"type": "fake", "x": "1"})


def test_create_rejects_missing_or_unknown_type() -> None:
    registry = BackendRegistry()

    with pytest.raises(ValidationError, match="missing 'type'"):
        registry.create({})
    with pytest.raises(ValidationError, match=r"Unknown backend type: ftp \(available: none\)"):
        registry.create({"type": "ftp"})


def test_register_rejects_duplicates() -> None:
    registry = BackendRegistry()
    registry.register("fake", MagicMock())

    with pytest.raises(RuntimeError, match="already registered"):
        registry.register("fake", MagicMock())


def test_frozen_registry_rejects_new_backends() -> None:
    registry = BackendRegistry()
    registry.freeze()

    with pytest.raises(RuntimeError, match="frozen"):
        registry.register("late", MagicMock())


def test_default_registry_knows_both_backends() -> None:
    registry = build_default_registry()

    assert registry.names() == ["s3", "workspaces"]
    with pytest.raises(RuntimeError, match="frozen"):
        registry.register("late", MagicMock())
    assert registry.get("s3") == S3Backend.from_params
    with pytest.raises(ValidationError, match="available: s3, workspaces"):
        registry.get("ftp")


def test_get_registry_is_cached_until_reset() -> None:
    reset_registry()
    first = get_registry()

    assert get_registry() is first

    reset_registry()
    assert get_registry() is not first


def test_create_logs_redacted_params(caplog: pytest.LogCaptureFixture) -> None:
    registry = BackendRegistry()
    registry.register("fake", MagicMock())

    with caplog.at_level(logging.DEBUG, logger="bucketfs_core.registry"):
        registry.create({"type": "fake", "secret_access_key": "topsecret"})

    assert "registry.create" in caplog.text
    assert "topsecret" not in caplog.text
