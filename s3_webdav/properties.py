"""Mapping of stored objects onto the fixed set of DAV properties."""

from __future__ import annotations

import enum
from dataclasses import dataclass, fields
from datetime import UTC, datetime
from email.utils import format_datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator, Mapping

    from .store import StoredObject

RESOURCETYPE_ATTRIBUTE = "resourcetype"
COLLECTION_MARKER = "<collection />"


class EntryKind(enum.Enum):
    FILE = "file"
    COLLECTION = "collection"

    @classmethod
    def from_metadata(cls, custom_metadata: Mapping[str, str]) -> EntryKind:
        """Read the kind from an object's custom metadata."""
        if custom_metadata.get(RESOURCETYPE_ATTRIBUTE) == COLLECTION_MARKER:
            return cls.COLLECTION
        return cls.FILE

    def to_metadata(self) -> dict[str, str]:
        """Custom metadata that marks an object as this kind."""
        if self is EntryKind.COLLECTION:
            return {RESOURCETYPE_ATTRIBUTE: COLLECTION_MARKER}
        return {}

    @property
    def is_collection(self) -> bool:
        return self is EntryKind.COLLECTION


def http_date(value: datetime) -> str:
    aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return format_datetime(aware.astimezone(UTC), usegmt=True)


@dataclass(frozen=True)
class DavProperties:
    creationdate: str
    displayname: str | None
    getcontentlanguage: str | None
    getcontentlength: str
    getcontenttype: str | None
    getetag: str | None
    getlastmodified: str
    resourcetype: EntryKind

    def present(self) -> Iterator[tuple[str, str | EntryKind]]:
        """Yield ``(name, value)`` for every property that has a value."""
        for item in fields(self):
            value = getattr(self, item.name)
            if value is not None:
                yield item.name, value


def from_entry(
    entry: StoredObject | None, now: datetime | None = None
) -> DavProperties:
    """Build the DAV properties of ``entry``.

    ``None`` stands for a collection that exists only implicitly, as the
    common prefix of other keys.
    """
    now_text = http_date(now or datetime.now(UTC))
    if entry is None:
        return DavProperties(
            creationdate=now_text,
            displayname=None,
            getcontentlanguage=None,
            getcontentlength="0",
            getcontenttype=None,
            getetag=None,
            getlastmodified=now_text,
            resourcetype=EntryKind.COLLECTION,
        )

    uploaded = http_date(entry.uploaded) if entry.uploaded else now_text
    return DavProperties(
        creationdate=uploaded,
        displayname=entry.http_metadata.content_disposition,
        getcontentlanguage=entry.http_metadata.content_language,
        getcontentlength=str(entry.size) if entry.size is not None else "0",
        getcontenttype=entry.http_metadata.content_type,
        getetag=entry.etag,
        getlastmodified=uploaded,
        resourcetype=EntryKind.from_metadata(entry.custom_metadata),
    )
