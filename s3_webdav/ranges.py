"""Byte ranges and conditional request predicates forwarded to the store."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

from litestar import status_codes

if TYPE_CHECKING:
    from collections.abc import Mapping


@dataclass(frozen=True)
class ByteRange:
    """A requested byte span: ``offset``/``length`` or the last ``suffix`` bytes."""

    offset: int | None = None
    length: int | None = None
    suffix: int | None = None

    def header_value(self) -> str:
        if self.suffix is not None:
            return f"bytes=-{self.suffix}"
        offset = self.offset or 0
        if self.length is None:
            return f"bytes={offset}-"
        return f"bytes={offset}-{offset + self.length - 1}"

    def resolve(self, size: int) -> tuple[int, int] | None:
        """Return the concrete ``(offset, length)`` applied to an object of ``size``.

        ``None`` means the range cannot be satisfied.
        """
        if self.suffix is not None:
            offset = max(size - self.suffix, 0)
            return offset, size - offset
        offset = self.offset or 0
        if offset >= size:
            return None
        available = size - offset
        length = available if self.length is None else min(self.length, available)
        return offset, length


@dataclass(frozen=True)
class ContentRange:
    offset: int
    end: int
    size: int
    applied: bool = False

    @property
    def content_length(self) -> int:
        return self.end - self.offset + 1

    @property
    def status_code(self) -> int:
        if self.applied and self.content_length != self.size:
            return status_codes.HTTP_206_PARTIAL_CONTENT
        return status_codes.HTTP_200_OK

    @property
    def header_value(self) -> str:
        return f"bytes {self.offset}-{self.end}/{self.size}"


def parse_range_header(value: str | None) -> ByteRange | None:
    """Parse a ``Range`` header into a :class:`ByteRange`.

    Only a single ``bytes`` range is understood; anything else is ignored and
    the full object is served.
    """
    if not value:
        return None
    unit, _, range_set = value.partition("=")
    if unit.strip().lower() != "bytes" or "," in range_set or "-" not in range_set:
        return None
    start_str, end_str = (part.strip() for part in range_set.split("-", 1))
    try:
        if not start_str:
            suffix = int(end_str)
            return ByteRange(suffix=suffix) if suffix > 0 else None
        start = int(start_str)
        if not end_str:
            return ByteRange(offset=start)
        end = int(end_str)
    except ValueError:
        return None
    if start < 0 or end < start:
        return None
    return ByteRange(offset=start, length=end - start + 1)


def parse_content_range(value: str | None) -> tuple[ByteRange, int] | None:
    """Parse a ``Content-Range: bytes a-b/size`` value echoed by a store."""
    if not value:
        return None
    unit, _, rest = value.strip().partition(" ")
    if unit.lower() != "bytes":
        return None
    span, _, total = rest.partition("/")
    start_str, _, end_str = span.partition("-")
    try:
        start, end, size = int(start_str), int(end_str), int(total)
    except ValueError:
        return None
    return ByteRange(offset=start, length=end - start + 1), size


def compute_content_range(size: int, requested: ByteRange | None) -> ContentRange:
    """Compute the span actually returned for an object of ``size`` bytes.

    ``requested`` is the range echoed by the store after it applied it.
    """
    offset = 0
    length = None
    if requested is not None:
        offset = requested.offset or 0
        length = requested.length
    if length is None:
        length = size - offset
    end = min(offset + length - 1, size - 1)
    return ContentRange(
        offset=offset, end=end, size=size, applied=requested is not None
    )


def _parse_http_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return parsed if parsed.tzinfo is not None else parsed.replace(tzinfo=UTC)


def _etag_matches(header: str, etag: str) -> bool:
    wanted = etag.removeprefix("W/").strip('"')
    for candidate in header.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.removeprefix("W/").strip('"') == wanted:
            return True
    return False


def _seconds(value: datetime) -> datetime:
    aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
    return aware.astimezone(UTC).replace(microsecond=0)


@dataclass(frozen=True)
class Conditions:
    """Conditional request predicates evaluated by the object store."""

    if_match: str | None = None
    if_none_match: str | None = None
    if_modified_since: datetime | None = None
    if_unmodified_since: datetime | None = None

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> Conditions:
        return cls(
            if_match=headers.get("if-match"),
            if_none_match=headers.get("if-none-match"),
            if_modified_since=_parse_http_date(headers.get("if-modified-since")),
            if_unmodified_since=_parse_http_date(headers.get("if-unmodified-since")),
        )

    def __bool__(self) -> bool:
        return any(
            value is not None
            for value in (
                self.if_match,
                self.if_none_match,
                self.if_modified_since,
                self.if_unmodified_since,
            )
        )

    def allows(self, etag: str | None, last_modified: datetime | None) -> bool:
        """Evaluate the predicates against the current state of a key.

        ``etag`` is ``None`` when the key does not exist.
        """
        if self.if_match is not None:
            if etag is None or not _etag_matches(self.if_match, etag):
                return False
        elif self.if_unmodified_since is not None and last_modified is not None:
            if _seconds(last_modified) > _seconds(self.if_unmodified_since):
                return False

        if self.if_none_match is not None:
            if etag is not None and _etag_matches(self.if_none_match, etag):
                return False
        elif self.if_modified_since is not None and last_modified is not None:
            if _seconds(last_modified) <= _seconds(self.if_modified_since):
                return False
        return True

    def to_s3_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {}
        if self.if_match is not None:
            kwargs["IfMatch"] = self.if_match
        if self.if_none_match is not None:
            kwargs["IfNoneMatch"] = self.if_none_match
        if self.if_modified_since is not None:
            kwargs["IfModifiedSince"] = self.if_modified_since
        if self.if_unmodified_since is not None:
            kwargs["IfUnmodifiedSince"] = self.if_unmodified_since
        return kwargs
