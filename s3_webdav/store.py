from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from functools import partial
from typing import TYPE_CHECKING, Any, Protocol

from anyio import to_thread
from boto3.session import Session
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from .errors import PreconditionFailed
from .ranges import ByteRange, Conditions, parse_content_range
from .settings import StoreSettings, load_store_settings_from_env

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping

LOG = logging.getLogger("s3_webdav.store")

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})
PRECONDITION_CODES = frozenset({"304", "412", "NotModified", "PreconditionFailed"})

_READ_CHUNK_SIZE = 64 * 1024


async def _run_sync(func: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
    return await to_thread.run_sync(func, *args, **kwargs)


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


@dataclass(frozen=True)
class HttpMetadata:
    """Transport metadata stored alongside an object."""

    content_type: str | None = None
    content_language: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    cache_control: str | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> HttpMetadata:
        return cls(
            content_type=headers.get("content-type"),
            content_language=headers.get("content-language"),
            content_disposition=headers.get("content-disposition"),
            content_encoding=headers.get("content-encoding"),
            cache_control=headers.get("cache-control"),
        )


_S3_HTTP_FIELDS = {
    "content_type": "ContentType",
    "content_language": "ContentLanguage",
    "content_disposition": "ContentDisposition",
    "content_encoding": "ContentEncoding",
    "cache_control": "CacheControl",
}


class ObjectBody(Protocol):
    """Payload of a fetched object, consumed once."""

    def iter_chunks(self) -> AsyncIterator[bytes]: ...

    async def read(self) -> bytes: ...

    async def close(self) -> None: ...


@dataclass
class StoredObject:
    """An object (or its metadata only) as returned by the store.

    ``body`` is ``None`` for metadata-only results and for reads the store
    refused because a precondition failed. ``range`` is the span the store
    actually applied, with a concrete offset and length.
    """

    key: str
    size: int = 0
    etag: str | None = None
    uploaded: datetime | None = None
    http_metadata: HttpMetadata = field(default_factory=HttpMetadata)
    custom_metadata: dict[str, str] = field(default_factory=dict)
    body: ObjectBody | None = None
    range: ByteRange | None = None


@dataclass
class ListingPage:
    objects: list[StoredObject] = field(default_factory=list)
    prefixes: list[str] = field(default_factory=list)
    truncated: bool = False
    cursor: str | None = None


class ObjectStore(Protocol):
    """Capabilities the DAV handlers need from a flat object store."""

    async def startup(self) -> None: ...

    async def shutdown(self) -> None: ...

    async def list(
        self,
        prefix: str,
        delimiter: str | None = None,
        cursor: str | None = None,
    ) -> ListingPage: ...

    async def get(
        self,
        key: str,
        conditions: Conditions | None = None,
        byte_range: ByteRange | None = None,
    ) -> StoredObject | None: ...

    async def head(self, key: str) -> StoredObject | None: ...

    async def put(
        self,
        key: str,
        body: bytes,
        http_metadata: HttpMetadata | None = None,
        custom_metadata: Mapping[str, str] | None = None,
        conditions: Conditions | None = None,
    ) -> StoredObject: ...

    async def delete(self, key: str) -> None: ...


class S3Body:
    """Wraps a botocore ``StreamingBody`` so it can be read without blocking."""

    def __init__(self, stream: Any):
        self._stream = stream

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        try:
            while True:
                chunk = await _run_sync(self._stream.read, _READ_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
        finally:
            await self.close()

    async def read(self) -> bytes:
        try:
            return await _run_sync(self._stream.read)
        finally:
            await self.close()

    async def close(self) -> None:
        await _run_sync(self._stream.close)


class S3ObjectStore:
    """Object store backed by a single S3 bucket through boto3."""

    def __init__(self, settings: StoreSettings, client: Any | None = None):
        self._settings = settings
        self._client = client if client is not None else self._build_client()

    @classmethod
    def from_env(cls) -> S3ObjectStore:
        """Create an S3ObjectStore from environment variables.

        Returns:
            S3ObjectStore configured from environment variables.
        """
        return cls(load_store_settings_from_env())

    @property
    def bucket(self) -> str:
        return self._settings.bucket

    async def startup(self) -> None:
        if self._settings.create_bucket:
            await self._ensure_bucket()
        LOG.info(
            "S3 store ready (endpoint=%s, bucket=%s)",
            self._settings.endpoint or "aws",
            self.bucket,
        )

    async def shutdown(self) -> None:
        await _run_sync(self._client.close)

    def _build_client(self):
        session = Session(
            aws_access_key_id=self._settings.access_key,
            aws_secret_access_key=self._settings.secret_key,
            aws_session_token=self._settings.session_token,
            region_name=self._settings.region,
        )
        return session.client(
            "s3",
            endpoint_url=self._settings.endpoint,
            config=BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 3},
                s3={"addressing_style": self._settings.addressing_style},
            ),
        )

    async def _ensure_bucket(self) -> None:
        try:
            await _run_sync(partial(self._client.head_bucket, Bucket=self.bucket))
        except ClientError as error:
            if _error_code(error) not in {"404", "NoSuchBucket", "NotFound"}:
                raise
            create_kwargs: dict[str, Any] = {"Bucket": self.bucket}
            location = self._settings.bucket_location
            if location and location != "us-east-1":
                create_kwargs["CreateBucketConfiguration"] = {
                    "LocationConstraint": location
                }
            await _run_sync(partial(self._client.create_bucket, **create_kwargs))
            LOG.info("created bucket %s", self.bucket)

    async def list(
        self,
        prefix: str,
        delimiter: str | None = None,
        cursor: str | None = None,
    ) -> ListingPage:
        list_kwargs: dict[str, Any] = {
            "Bucket": self.bucket,
            "Prefix": prefix,
            "MaxKeys": self._settings.page_size,
        }
        if delimiter:
            list_kwargs["Delimiter"] = delimiter
        if cursor:
            list_kwargs["ContinuationToken"] = cursor
        result = await _run_sync(partial(self._client.list_objects_v2, **list_kwargs))

        objects: list[StoredObject] = []
        for item in result.get("Contents", []):
            # ListObjectsV2 carries no user or HTTP metadata
            if self._settings.list_metadata:
                detailed = await self.head(item["Key"])
                if detailed is None:
                    LOG.debug("key %s vanished while listing", item["Key"])
                    continue
                objects.append(detailed)
            else:
                objects.append(
                    StoredObject(
                        key=item["Key"],
                        size=item.get("Size", 0),
                        etag=item.get("ETag"),
                        uploaded=item.get("LastModified"),
                    )
                )

        prefixes = [entry["Prefix"] for entry in result.get("CommonPrefixes", [])]
        truncated = bool(result.get("IsTruncated"))
        LOG.debug(
            "listed s3://%s/%s objects=%d prefixes=%d truncated=%s",
            self.bucket,
            prefix,
            len(objects),
            len(prefixes),
            truncated,
        )
        return ListingPage(
            objects=objects,
            prefixes=prefixes,
            truncated=truncated,
            cursor=result.get("NextContinuationToken"),
        )

    async def get(
        self,
        key: str,
        conditions: Conditions | None = None,
        byte_range: ByteRange | None = None,
    ) -> StoredObject | None:
        get_kwargs: dict[str, Any] = {"Bucket": self.bucket, "Key": key}
        if conditions:
            get_kwargs.update(conditions.to_s3_kwargs())
        if byte_range is not None:
            get_kwargs["Range"] = byte_range.header_value()
        try:
            result = await _run_sync(partial(self._client.get_object, **get_kwargs))
        except ClientError as error:
            code = _error_code(error)
            if code in NOT_FOUND_CODES:
                return None
            if code in PRECONDITION_CODES:
                LOG.debug("precondition failed for s3://%s/%s", self.bucket, key)
                return StoredObject(key=key)
            raise

        stored = self._to_stored_object(key, result)
        stored.body = S3Body(result["Body"])
        echoed = parse_content_range(result.get("ContentRange"))
        if echoed is not None:
            stored.range, stored.size = echoed
        return stored

    async def head(self, key: str) -> StoredObject | None:
        try:
            result = await _run_sync(
                partial(self._client.head_object, Bucket=self.bucket, Key=key)
            )
        except ClientError as error:
            if _error_code(error) in NOT_FOUND_CODES:
                return None
            raise
        return self._to_stored_object(key, result)

    async def put(
        self,
        key: str,
        body: bytes,
        http_metadata: HttpMetadata | None = None,
        custom_metadata: Mapping[str, str] | None = None,
        conditions: Conditions | None = None,
    ) -> StoredObject:
        http_metadata = http_metadata or HttpMetadata()
        put_kwargs: dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": body,
            "Metadata": dict(custom_metadata or {}),
        }
        for attribute, s3_field in _S3_HTTP_FIELDS.items():
            value = getattr(http_metadata, attribute)
            if value:
                put_kwargs[s3_field] = value

        if conditions:
            # PutObject only understands entity-tag preconditions
            if conditions.if_match is not None:
                put_kwargs["IfMatch"] = conditions.if_match
            if conditions.if_none_match is not None:
                put_kwargs["IfNoneMatch"] = conditions.if_none_match
            if conditions.if_modified_since or conditions.if_unmodified_since:
                LOG.debug("ignoring date preconditions on write of %s", key)

        try:
            result = await _run_sync(partial(self._client.put_object, **put_kwargs))
        except ClientError as error:
            if _error_code(error) in PRECONDITION_CODES:
                msg = f"precondition failed writing {key!r}"
                raise PreconditionFailed(msg) from error
            raise

        LOG.debug("stored s3://%s/%s (%d bytes)", self.bucket, key, len(body))
        return StoredObject(
            key=key,
            size=len(body),
            etag=result.get("ETag"),
            uploaded=datetime.now(UTC),
            http_metadata=http_metadata,
            custom_metadata=dict(custom_metadata or {}),
        )

    async def delete(self, key: str) -> None:
        await _run_sync(
            partial(self._client.delete_object, Bucket=self.bucket, Key=key)
        )
        LOG.debug("deleted s3://%s/%s", self.bucket, key)

    @staticmethod
    def _to_stored_object(key: str, result: Mapping[str, Any]) -> StoredObject:
        http_metadata = HttpMetadata(
            **{
                attribute: result.get(s3_field)
                for attribute, s3_field in _S3_HTTP_FIELDS.items()
            }
        )
        return StoredObject(
            key=key,
            size=int(result.get("ContentLength", 0)),
            etag=result.get("ETag"),
            uploaded=result.get("LastModified"),
            http_metadata=http_metadata,
            custom_metadata=dict(result.get("Metadata") or {}),
        )


def without_body(stored: StoredObject) -> StoredObject:
    """Return a metadata-only copy of ``stored``."""
    return replace(stored, body=None, range=None)
