"""
S3 Object Store

Thin async wrapper over one long-lived aioboto3 S3 client. The client is
entered once by the worker runtime and shared by every stage, so nothing
here opens or closes connections.

Errors:
  - Missing objects (NoSuchKey / 404) raise FileNotFoundError.
  - Every other ClientError / BotoCoreError propagates unchanged; the stage
    adapters decide how to classify it.
"""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from typing import Any

from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class S3Object:
    """Represents a stored object, returned by put_object."""
    bucket:       str
    key:          str
    size_bytes:   int
    content_type: str
    etag:         str
    version_id:   str | None = None


@dataclass(frozen=True)
class PresignedUrl:
    url:        str
    expires_in: int   # seconds
    method:     str   # GET


# ---------------------------------------------------------------------------
# Object store
# ---------------------------------------------------------------------------

class ObjectStore:
    """
    Usage::

        async with session.client("s3") as client:
            store = ObjectStore(client)
            data  = await store.get_object("bucket", "doc.jpg")
    """

    def __init__(self, client: Any) -> None:
        self._s3 = client

    async def get_object(self, bucket: str, key: str) -> bytes:
        try:
            resp = await self._s3.get_object(Bucket=bucket, Key=key)
            return await resp["Body"].read()
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                raise FileNotFoundError(f"Object not found: s3://{bucket}/{key}") from exc
            raise

    async def put_object(
        self,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str | None = None,
    ) -> S3Object:
        """
        Upload ``body`` to ``s3://bucket/key``.

        Writes are full overwrites, so re-running with the same key converges.
        """
        ct = content_type or mimetypes.guess_type(key)[0] or "application/octet-stream"
        resp = await self._s3.put_object(
            Bucket=bucket,
            Key=key,
            Body=body,
            ContentType=ct,
        )
        logger.info("S3 upload ok | bucket=%s key=%s size=%d", bucket, key, len(body))
        return S3Object(
            bucket=bucket,
            key=key,
            size_bytes=len(body),
            content_type=ct,
            etag=resp.get("ETag", "").strip('"'),
            version_id=resp.get("VersionId"),
        )

    async def generate_presigned_get(
        self,
        bucket: str,
        key: str,
        expires_in: int = 900,
    ) -> PresignedUrl:
        """Presigned GET URL scoped to the exact object key."""
        url = await self._s3.generate_presigned_url(
            "get_object",
            Params={"Bucket": bucket, "Key": key},
            ExpiresIn=expires_in,
        )
        return PresignedUrl(url=url, expires_in=expires_in, method="GET")
