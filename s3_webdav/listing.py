from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .paths import SEPARATOR
from .properties import DavProperties, EntryKind, from_entry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from .store import ObjectStore, StoredObject

LOG = logging.getLogger("s3_webdav.listing")


@dataclass(frozen=True)
class ListedEntry:
    """One key found under a listing prefix.

    ``object`` is ``None`` for a collection implied by a common prefix with no
    marker object of its own.
    """

    key: str
    object: StoredObject | None = None

    @property
    def kind(self) -> EntryKind:
        if self.object is None:
            return EntryKind.COLLECTION
        return EntryKind.from_metadata(self.object.custom_metadata)

    def properties(self) -> DavProperties:
        return from_entry(self.object)


async def list_all(
    store: ObjectStore, prefix: str, *, recursive: bool = False
) -> AsyncIterator[ListedEntry]:
    """Yield every entry under ``prefix``, following continuation cursors.

    Without ``recursive`` the store groups deeper keys by the separator, so
    only one level is returned and each group shows up as an implicit
    collection entry.
    """
    delimiter = None if recursive else SEPARATOR
    cursor: str | None = None
    pages = 0
    while True:
        page = await store.list(prefix, delimiter=delimiter, cursor=cursor)
        pages += 1
        for stored in page.objects:
            yield ListedEntry(key=stored.key, object=stored)
        for common in page.prefixes:
            yield ListedEntry(key=common.removesuffix(SEPARATOR))
        if not page.truncated:
            break
        if not page.cursor:
            LOG.warning("truncated listing of %r without a cursor", prefix)
            break
        cursor = page.cursor
    LOG.debug("listed prefix=%r recursive=%s pages=%d", prefix, recursive, pages)
