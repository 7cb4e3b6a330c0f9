"""In-memory object store.

Implements the ``ObjectStore`` protocol with a dictionary keyed by object key.
Listing order, pagination, delimiter grouping and precondition evaluation
follow S3 so the DAV handlers behave the same against either backend.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .errors import PreconditionFailed, RangeNotSatisfiable
from .ranges import ByteRange
from .store import HttpMetadata, ListingPage, StoredObject, without_body

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Mapping

    from .ranges import Conditions

LOG = logging.getLogger("s3_webdav.memory")

_CHUNK_SIZE = 64 * 1024


class BytesBody:
    def __init__(self, data: bytes):
        self._data = data

    async def iter_chunks(self) -> AsyncIterator[bytes]:
        for start in range(0, len(self._data), _CHUNK_SIZE):
            yield self._data[start : start + _CHUNK_SIZE]

    async def read(self) -> bytes:
        return self._data

    async def close(self) -> None:
        return None


class MemoryObjectStore:
    """Object store holding every object in process memory.

    Attributes:
        page_size: Maximum number of entries (objects plus common prefixes)
            returned by one ``list`` call.
    """

    def __init__(self, page_size: int = 1000):
        self.page_size = page_size
        self._objects: dict[str, tuple[bytes, StoredObject]] = {}

    async def startup(self) -> None:
        LOG.info("memory store ready (page_size=%d)", self.page_size)

    async def shutdown(self) -> None:
        LOG.info("memory store closed (%d objects)", len(self._objects))

    async def list(
        self,
        prefix: str,
        delimiter: str | None = None,
        cursor: str | None = None,
    ) -> ListingPage:
        items: list[StoredObject | str] = []
        seen_prefixes: set[str] = set()
        for key in sorted(self._objects):
            if not key.startswith(prefix):
                continue
            rest = key[len(prefix) :]
            if delimiter and delimiter in rest:
                common = prefix + rest[: rest.index(delimiter) + len(delimiter)]
                if common not in seen_prefixes:
                    seen_prefixes.add(common)
                    items.append(common)
                continue
            items.append(without_body(self._objects[key][1]))

        start = int(cursor) if cursor else 0
        end = start + self.page_size
        page_items = items[start:end]
        truncated = end < len(items)
        return ListingPage(
            objects=[item for item in page_items if isinstance(item, StoredObject)],
            prefixes=[item for item in page_items if isinstance(item, str)],
            truncated=truncated,
            cursor=str(end) if truncated else None,
        )

    async def get(
        self,
        key: str,
        conditions: Conditions | None = None,
        byte_range: ByteRange | None = None,
    ) -> StoredObject | None:
        found = self._objects.get(key)
        if found is None:
            return None
        data, stored = found
        if conditions and not conditions.allows(stored.etag, stored.uploaded):
            LOG.debug("precondition failed for %s", key)
            return without_body(stored)

        applied = None
        if byte_range is not None and stored.size > 0:
            span = byte_range.resolve(stored.size)
            if span is None:
                msg = f"range {byte_range.header_value()} outside {key!r}"
                raise RangeNotSatisfiable(msg)
            offset, length = span
            applied = ByteRange(offset=offset, length=length)
            data = data[offset : offset + length]
        return replace(stored, body=BytesBody(data), range=applied)

    async def head(self, key: str) -> StoredObject | None:
        found = self._objects.get(key)
        return None if found is None else without_body(found[1])

    async def put(
        self,
        key: str,
        body: bytes,
        http_metadata: HttpMetadata | None = None,
        custom_metadata: Mapping[str, str] | None = None,
        conditions: Conditions | None = None,
    ) -> StoredObject:
        if conditions:
            current = self._objects.get(key)
            etag = current[1].etag if current else None
            uploaded = current[1].uploaded if current else None
            if not conditions.allows(etag, uploaded):
                msg = f"precondition failed writing {key!r}"
                raise PreconditionFailed(msg)

        stored = StoredObject(
            key=key,
            size=len(body),
            etag=f'"{hashlib.md5(body).hexdigest()}"',  # noqa: S324
            uploaded=datetime.now(UTC),
            http_metadata=http_metadata or HttpMetadata(),
            custom_metadata=dict(custom_metadata or {}),
        )
        self._objects[key] = (bytes(body), stored)
        LOG.debug("stored %s (%d bytes)", key, len(body))
        return without_body(stored)

    async def delete(self, key: str) -> None:
        self._objects.pop(key, None)
