"""S3-compatible blob store (Cloudflare R2, MinIO, AWS S3) backed by boto3.

All botocore failures are translated into the ``StorageError`` hierarchy
here so the engine never sees a ``ClientError``.  Retries are left to the
engine (``call_with_retry``), so the client is built with botocore's own
retries disabled.
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
)

from ..config import Config
from ..errors import (
    NotFoundError,
    SnapshotVersionConflict,
    StorageError,
    TransientStorageError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}
_UNAUTHORIZED_CODES = {
    "AccessDenied",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "Unauthorized",
    "403",
    "401",
}
_PRECONDITION_CODES = {
    "PreconditionFailed",
    "ConditionalRequestConflict",
    "412",
}
_TRANSIENT_CODES = {
    "SlowDown",
    "Throttling",
    "ThrottlingException",
    "RequestTimeout",
    "InternalError",
    "ServiceUnavailable",
    "503",
    "500",
}


def translate_client_error(exc: ClientError, key: str | None) -> StorageError:
    """Map a botocore ``ClientError`` onto the storage error taxonomy."""
    error = exc.response.get("Error", {})
    code = str(error.get("Code", ""))
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    message = error.get("Message") or str(exc)
    label = f"{code or status}: {message}"

    if code in _NOT_FOUND_CODES or status == 404:
        return NotFoundError(f"No such key: {key} ({label})", key=key)
    if code in _PRECONDITION_CODES or status in (409, 412):
        return SnapshotVersionConflict(
            f"Conditional write on {key} rejected ({label})", key=key
        )
    if code in _UNAUTHORIZED_CODES or status in (401, 403):
        return UnauthorizedError(f"Access denied for {key} ({label})", key=key)
    if code in _TRANSIENT_CODES or (status is not None and status >= 500):
        return TransientStorageError(
            f"Transient failure on {key} ({label})", key=key
        )
    return StorageError(f"Storage failure on {key} ({label})", key=key)


class S3BlobStore:
    """``BlobStore`` over one bucket of an S3-compatible service.

    Args:
        config: Validated connection settings.
        client: Pre-built boto3 S3 client (tests inject a stubbed one).
        connect_timeout: Socket connect timeout in seconds.
        read_timeout: Socket read timeout in seconds.
    """

    def __init__(
        self,
        config: Config,
        client: Any | None = None,
        connect_timeout: float = 10,
        read_timeout: float = 60,
    ) -> None:
        self.bucket = config.bucket
        self.client = client or boto3.client(
            "s3",
            endpoint_url=config.endpoint,
            region_name=config.region,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            config=BotoConfig(
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
                retries={"max_attempts": 1, "mode": "standard"},
            ),
        )

    def _call(self, operation: str, key: str | None, **params: Any) -> Any:
        """Invoke a client operation, translating every failure."""
        try:
            return getattr(self.client, operation)(
                Bucket=self.bucket, **params
            )
        except ClientError as exc:
            raise translate_client_error(exc, key) from exc
        except NoCredentialsError as exc:
            raise UnauthorizedError(
                f"No credentials configured for {operation}", key=key
            ) from exc
        except BotoCoreError as exc:
            raise TransientStorageError(
                f"{operation} {key or self.bucket} failed: {exc}", key=key
            ) from exc

    def get(self, key: str) -> bytes:
        return self.get_versioned(key)[0]

    def get_versioned(self, key: str) -> tuple[bytes, str | None]:
        response = self._call("get_object", key, Key=key)
        body = response.get("Body")
        if body is None:
            raise NotFoundError(f"Empty response body for {key}", key=key)
        try:
            data = body.read()
        except BotoCoreError as exc:
            raise TransientStorageError(
                f"Reading {key} failed: {exc}", key=key
            ) from exc
        finally:
            body.close()
        return data, response.get("ETag")

    def put(
        self,
        key: str,
        data: bytes,
        *,
        if_match: str | None = None,
        if_none_match: bool = False,
    ) -> str | None:
        params: dict[str, Any] = {"Key": key, "Body": data}
        if if_match is not None:
            params["IfMatch"] = if_match
        elif if_none_match:
            params["IfNoneMatch"] = "*"
        response = self._call("put_object", key, **params)
        logger.debug("Stored %s (%d bytes)", key, len(data))
        return response.get("ETag")

    def delete(self, key: str) -> None:
        try:
            self._call("delete_object", key, Key=key)
        except NotFoundError:
            logger.debug("Delete of absent key %s ignored", key)

    def check_access(self) -> None:
        self._call("head_bucket", None)
