from __future__ import annotations

from typing import TYPE_CHECKING, Any
from urllib.parse import quote, quote_from_bytes

import httpx

if TYPE_CHECKING:
    from collections.abc import Mapping

SEPARATOR = "/"

# existing %XX escapes and URL sub-delimiters pass through unchanged
_PATH_SAFE = "/%:@!$&'()*+,;=[]"


def encode_path(path: str) -> str:
    """Percent-encode ``path`` as it travels in a URL, keeping escapes intact.

    Encoding is idempotent, so an already encoded path is returned unchanged.
    """
    return quote(path, safe=_PATH_SAFE)


def request_path(scope: Mapping[str, Any]) -> str:
    """Return the request path as the client sent it, relative to ``root_path``.

    ``raw_path`` is preferred because routing may rewrite ``path`` and drop
    the trailing separator that marks a collection request. The result stays
    percent-encoded, so an escaped ``%2F`` never turns into a separator.
    """
    raw_path = scope.get("raw_path")
    if raw_path:
        path = quote_from_bytes(raw_path.split(b"?", 1)[0], safe=_PATH_SAFE)
    else:
        path = encode_path(scope.get("path", SEPARATOR))
    root_path = encode_path(scope.get("root_path", ""))
    if root_path and path.startswith(root_path):
        path = path[len(root_path) :]
    if not path.startswith(SEPARATOR):
        path = f"{SEPARATOR}{path}"
    return path


def resolve_key(path: str) -> str:
    """Map a request path to a store key.

    The leading separator is dropped and exactly one trailing separator is
    stripped, so ``/docs/`` and ``/docs`` both resolve to ``docs`` and ``/``
    resolves to the root key ``""``.
    """
    return path.removeprefix(SEPARATOR).removesuffix(SEPARATOR)


def is_collection_path(path: str) -> bool:
    return path.endswith(SEPARATOR)


def destination_key(header: str) -> str:
    """Resolve a ``Destination`` header (absolute URL or path) to a key.

    The path keeps its percent-encoding, matching :func:`request_path`.

    Raises:
        httpx.InvalidURL: If the header cannot be parsed as a URL.
    """
    raw_path = httpx.URL(header).raw_path.split(b"?", 1)[0]
    return resolve_key(quote_from_bytes(raw_path, safe=_PATH_SAFE))


def child_prefix(key: str) -> str:
    """Listing prefix for the children of the collection at ``key``."""
    return f"{key}{SEPARATOR}" if key else ""


def href(key: str, *, collection: bool = False) -> str:
    path = SEPARATOR + encode_path(key)
    if collection and key:
        path += SEPARATOR
    return path
