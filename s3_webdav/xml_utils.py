"""WebDAV XML response rendering helpers."""

from __future__ import annotations

from typing import TYPE_CHECKING
from xml.sax.saxutils import escape as _sax_escape

from .paths import href
from .properties import EntryKind

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .properties import DavProperties


def _escape_xml(value: str) -> str:
    return _sax_escape(str(value))


def render_property(name: str, value: str | EntryKind) -> str:
    if isinstance(value, EntryKind):
        if value.is_collection:
            return f"<D:{name}><D:collection/></D:{name}>"
        return f"<D:{name}/>"
    return f"<D:{name}>{_escape_xml(value)}</D:{name}>"


def render_response(key: str, properties: DavProperties) -> str:
    """Render one ``D:response`` element for the resource at ``key``."""
    collection = properties.resourcetype.is_collection
    parts = [
        "<D:response>",
        f"<D:href>{_escape_xml(href(key, collection=collection))}</D:href>",
        "<D:propstat><D:prop>",
    ]
    parts.extend(render_property(name, value) for name, value in properties.present())
    parts.append("</D:prop><D:status>HTTP/1.1 200 OK</D:status></D:propstat>")
    parts.append("</D:response>")
    return "".join(parts)


def render_multistatus(resources: Iterable[tuple[str, DavProperties]]) -> str:
    """Render a PROPFIND ``207 Multi-Status`` body.

    Args:
        resources: ``(key, properties)`` pairs in response order.

    Returns:
        The XML document as a string.
    """
    parts = [
        '<?xml version="1.0" encoding="utf-8"?>',
        '<D:multistatus xmlns:D="DAV:">',
    ]
    parts.extend(render_response(key, properties) for key, properties in resources)
    parts.append("</D:multistatus>")
    return "".join(parts)
