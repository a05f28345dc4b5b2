from __future__ import annotations

import logging
from collections.abc import Mapping

SECRET_PARAMS = frozenset(
    {"secret_access_key", "session_token", "encryption_key", "password", "access_token"}
)


def _kv_pairs(fields: Mapping[str, object]) -> str:
    parts: list[str] = []
    for key, value in fields.items():
        if value is None:
            continue
        text = str(value).strip()
        if not text:
            continue
        parts.append(f"{key}={text}")
    return " ".join(parts)


def log_event(
    logger: logging.Logger, message: str, *, level: int = logging.INFO, **fields: object
) -> None:
    """Emit a single-line structured log record.

    Fields are rendered as ``k=v`` tokens after the message; empty values are dropped.
    """

    suffix = _kv_pairs(fields)
    if suffix:
        logger.log(level, "%s %s", message, suffix)
    else:
        logger.log(level, "%s", message)


def redact_params(params: Mapping[str, str]) -> dict[str, str]:
    """Copy of a backend config with secret values masked."""

    redacted: dict[str, str] = {}
    for key, value in params.items():
        if key in SECRET_PARAMS and value:
            redacted[key] = "***"
        else:
            redacted[key] = value
    return redacted
