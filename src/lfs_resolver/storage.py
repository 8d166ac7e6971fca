"""S3-backed object store used for the copy-forward probe and copies."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import boto3
from botocore.exceptions import ClientError

from lfs_resolver.errors import SourceObjectMissing

MISSING_OBJECT_ERROR_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
logger = logging.getLogger(__name__)


class ObjectStore(Protocol):
    """Operations the resolver needs from the artifact store."""

    def prefix_exists(self, bucket: str, prefix: str) -> bool:
        """Return True when at least one key starts with ``prefix``."""
        raise NotImplementedError

    def copy_object(self, bucket: str, source_key: str, dest_key: str) -> None:
        """Copy a key in place, raising ``SourceObjectMissing`` if the source is absent."""
        raise NotImplementedError


class S3ObjectStore:
    """``ObjectStore`` over a boto3 S3 client."""

    def __init__(self, client: Any | None = None, *, region_name: str | None = None) -> None:
        self._client = client or boto3.client("s3", region_name=region_name)

    def prefix_exists(self, bucket: str, prefix: str) -> bool:
        response = self._client.list_objects_v2(Bucket=bucket, Prefix=prefix, MaxKeys=1)
        return response.get("KeyCount", len(response.get("Contents", []))) > 0

    def copy_object(self, bucket: str, source_key: str, dest_key: str) -> None:
        try:
            self._client.copy_object(
                Bucket=bucket,
                Key=dest_key,
                CopySource={"Bucket": bucket, "Key": source_key},
            )
        except ClientError as error:
            if _error_code(error) in MISSING_OBJECT_ERROR_CODES:
                raise SourceObjectMissing(bucket=bucket, key=source_key) from error
            raise


def build_key(namespace: str, version: str, variant: str, file_name: str) -> str:
    """Compose ``{namespace}/{version}/{variant}/{file_name}``, skipping an empty version."""

    parts = [namespace.strip("/")]
    if version:
        parts.append(version.strip("/"))
    parts.append(variant)
    parts.append(file_name.lstrip("/"))
    return "/".join(parts)


def version_prefix(namespace: str, version: str) -> str:
    return f"{namespace.strip('/')}/{version.strip('/')}/"


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))
