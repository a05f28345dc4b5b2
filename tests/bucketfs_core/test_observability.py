from __future__ import annotations

import logging

from bucketfs_core.observability import log_event, redact_params


def test_log_event_renders_key_value_pairs(caplog) -> None:
    caplog.set_level(logging.INFO)
    logger = logging.getLogger("bucketfs_core.tests")

    log_event(logger, "s3.delete", bucket="b", key="docs/", empty="", missing=None)

    messages = [r.getMessage() for r in caplog.records]
    assert messages == ["s3.delete bucket=b key=docs/"]


def test_log_event_respects_level(caplog) -> None:
    caplog.set_level(logging.INFO)
    logger = logging.getLogger("bucketfs_core.tests")

    log_event(logger, "s3.region_lookup_failed", level=logging.DEBUG, bucket="b")

    assert caplog.records == []


def test_redact_params_masks_secrets() -> None:
    params = {"type": "s3", "access_key_id": "AKIA", "secret_access_key": "s3cr3t", "session_token": ""}

    assert redact_params(params) == {
        "type": "s3",
        "access_key_id": "AKIA",
        "secret_access_key": "***",
        "session_token": "",
    }
