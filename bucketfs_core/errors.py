from __future__ import annotations

from typing import Any


class BucketFsError(Exception):
    """Base error for bucketfs_core.

    ``status_code`` is the HTTP-like status the upstream application reports
    to its client.
    """

    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(BucketFsError):
    """Raised when a backend configuration is rejected."""

    status_code = 400
    default_message = "Invalid configuration"


class NotFoundError(BucketFsError):
    status_code = 404
    default_message = "Not found"


class InvalidPathError(BucketFsError):
    """Raised when an operation targets a path it cannot act on (e.g. the root)."""

    status_code = 405
    default_message = "Not valid"


class ForbiddenError(BucketFsError):
    status_code = 403
    default_message = "Not allowed"


class EncryptionKeyMismatchError(BucketFsError):
    status_code = 400
    default_message = "This file is encrypted file, you need the correct key!"


class UnimplementedError(BucketFsError):
    status_code = 501
    default_message = "Not implemented"


class UpstreamError(BucketFsError):
    """Opaque failure of the object store or the management service."""

    status_code = 502
    default_message = "Upstream service error"


_NOT_FOUND_CODES = {"404", "NoSuchKey", "NoSuchBucket", "NotFound"}
_FORBIDDEN_CODES = {"403", "AccessDenied", "AllAccessDisabled", "Forbidden"}


def client_error_details(exc: BaseException) -> tuple[str, str]:
    """Return the ``(code, message)`` pair carried by a botocore ``ClientError``."""

    response: Any = getattr(exc, "response", None) or {}
    error = response.get("Error") or {}
    return str(error.get("Code") or ""), str(error.get("Message") or "")


def classify_client_error(exc: BaseException, *, target: str = "") -> BucketFsError:
    code, message = client_error_details(exc)
    detail = f"{target}: {message or code or exc}" if target else (message or code or str(exc))
    if code in _NOT_FOUND_CODES:
        return NotFoundError(detail)
    if code in _FORBIDDEN_CODES:
        return ForbiddenError(detail)
    return UpstreamError(detail)
