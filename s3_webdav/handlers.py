from __future__ import annotations

import logging
from html import escape
from typing import TYPE_CHECKING, Any

import httpx
from botocore.exceptions import BotoCoreError, ClientError
from litestar import status_codes
from litestar.enums import MediaType
from litestar.response import Response, Stream

from .errors import (
    BadRequest,
    DavError,
    Forbidden,
    MethodNotAllowed,
    NotFound,
    PartialMoveError,
    PreconditionFailed,
)
from .listing import ListedEntry, list_all
from .paths import (
    SEPARATOR,
    child_prefix,
    destination_key,
    href,
    is_collection_path,
    resolve_key,
)
from .properties import EntryKind, http_date
from .ranges import Conditions, compute_content_range, parse_range_header
from .store import HttpMetadata
from .xml_utils import render_multistatus

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from litestar import Request

    from .store import ObjectStore, StoredObject

LOG = logging.getLogger("s3_webdav.handlers")

SUPPORTED_METHODS = (
    "OPTIONS",
    "GET",
    "HEAD",
    "PUT",
    "DELETE",
    "MKCOL",
    "COPY",
    "MOVE",
    "PROPFIND",
)
ALLOW = ", ".join(SUPPORTED_METHODS)
DEPTHS = frozenset({"0", "1", "infinity"})
DEFAULT_CONTENT_TYPE = "application/octet-stream"


async def _empty() -> AsyncIterator[bytes]:
    return
    yield  # pragma: no cover


class DavHandler:
    """Translates WebDAV verbs into calls against an :class:`ObjectStore`."""

    def __init__(self, store: ObjectStore):
        self._store = store
        self._verbs: dict[str, Callable[[Request, str], Awaitable[Response]]] = {
            "OPTIONS": self.options,
            "GET": self.get,
            "HEAD": self.head,
            "PUT": self.put,
            "DELETE": self.delete,
            "MKCOL": self.mkcol,
            "COPY": self.copy,
            "MOVE": self.move,
            "PROPFIND": self.propfind,
        }

    @property
    def store(self) -> ObjectStore:
        return self._store

    async def startup(self) -> None:
        await self._store.startup()

    async def shutdown(self) -> None:
        await self._store.shutdown()

    async def handle(self, request: Request, path: str) -> Response:
        method = request.method.upper()
        LOG.debug("handle method=%s path=%s", method, path)
        verb = self._verbs.get(method)
        try:
            if verb is None:
                msg = f"{method} is not supported"
                raise MethodNotAllowed(msg, headers={"Allow": ALLOW})
            return await verb(request, path)
        except DavError as error:
            LOG.info(
                "%s %s failed with %d: %s",
                method,
                path,
                error.status_code,
                error,
            )
            return self._from_dav_error(error, method)
        except ClientError as error:
            LOG.warning("store error for %s %s: %s", method, path, error)
            return self._from_client_error(error, method)

    async def options(self, request: Request, path: str) -> Response:
        return Response(
            content=b"",
            status_code=status_codes.HTTP_200_OK,
            headers={"DAV": "1", "Allow": ALLOW, "MS-Author-Via": "DAV"},
        )

    async def get(self, request: Request, path: str) -> Response:
        return await self._read(request, path, head=False)

    async def head(self, request: Request, path: str) -> Response:
        return await self._read(request, path, head=True)

    async def _read(self, request: Request, path: str, *, head: bool) -> Response:
        key = resolve_key(path)
        if is_collection_path(path):
            return await self._render_listing(key, head=head)

        stored = await self._store.get(
            key,
            Conditions.from_headers(request.headers),
            parse_range_header(request.headers.get("range")),
        )
        if stored is None:
            msg = f"no object at {key!r}"
            raise NotFound(msg)
        if stored.body is None:
            msg = f"precondition failed reading {key!r}"
            raise PreconditionFailed(msg)

        content_range = compute_content_range(stored.size, stored.range)
        headers = self._object_headers(stored)
        headers["Content-Length"] = str(content_range.content_length)
        if stored.range is not None:
            headers["Content-Range"] = content_range.header_value
        media_type = stored.http_metadata.content_type or DEFAULT_CONTENT_TYPE

        if head:
            await stored.body.close()
            content: Callable[[], AsyncIterator[bytes]] = _empty
        else:
            content = stored.body.iter_chunks
        LOG.debug(
            "read %s status=%d length=%d",
            key,
            content_range.status_code,
            content_range.content_length,
        )
        return Stream(
            content=content,
            status_code=content_range.status_code,
            media_type=media_type,
            headers=headers,
        )

    @staticmethod
    def _object_headers(stored: StoredObject) -> dict[str, str]:
        headers: dict[str, str] = {"Accept-Ranges": "bytes"}
        if stored.http_metadata.content_disposition:
            headers["Content-Disposition"] = stored.http_metadata.content_disposition
        if stored.http_metadata.content_language:
            headers["Content-Language"] = stored.http_metadata.content_language
        if stored.etag:
            headers["ETag"] = stored.etag
        if stored.uploaded is not None:
            headers["Last-Modified"] = http_date(stored.uploaded)
        return headers

    async def _render_listing(self, key: str, *, head: bool) -> Response:
        parts = ['<a href="../">..</a><br>'] if key else []
        # a folder marker stored under the listing prefix is the collection itself
        seen: set[str] = {child_prefix(key)} if key else set()
        async for entry in list_all(self._store, child_prefix(key)):
            # a marker object and the common prefix of its children share a key
            if entry.key in seen:
                continue
            seen.add(entry.key)
            target = href(entry.key, collection=entry.kind.is_collection)
            label = entry.properties().displayname or entry.key
            parts.append(f'<a href="{escape(target)}">{escape(label)}</a><br>')
        LOG.debug("rendered listing of %r with %d entries", key, len(parts))
        return Response(
            content="" if head else "".join(parts),
            status_code=status_codes.HTTP_200_OK,
            media_type=MediaType.HTML,
        )

    async def put(self, request: Request, path: str) -> Response:
        key = resolve_key(path)
        body = await self._read_body(request)
        await self._store.put(
            key,
            body,
            http_metadata=HttpMetadata.from_headers(request.headers),
            conditions=Conditions.from_headers(request.headers),
        )
        return self._created()

    async def _read_body(self, request: Request) -> bytes:
        """Read the entire request body as bytes directly from ASGI scope."""
        body_parts = []
        receive = request.receive

        while True:
            message = await receive()
            if message["type"] == "http.request":
                body = message.get("body", b"")
                if body:
                    body_parts.append(body)
                if not message.get("more_body", False):
                    break
            elif message["type"] == "http.disconnect":
                break

        return b"".join(body_parts)

    async def delete(self, request: Request, path: str) -> Response:
        await self._remove(resolve_key(path))
        return Response(content=b"", status_code=status_codes.HTTP_204_NO_CONTENT)

    async def _remove(self, key: str) -> None:
        if await self._store.head(key) is None:
            msg = f"no object at {key!r}"
            raise NotFound(msg)
        await self._store.delete(key)

    async def mkcol(self, request: Request, path: str) -> Response:
        key = resolve_key(path)
        if not key or await self._store.head(key) is not None:
            msg = f"{key!r} already exists"
            raise MethodNotAllowed(msg)
        await self._store.put(
            key,
            b"",
            http_metadata=HttpMetadata.from_headers(request.headers),
            custom_metadata=EntryKind.COLLECTION.to_metadata(),
        )
        LOG.info("created collection %s", key)
        return self._created()

    async def copy(self, request: Request, path: str) -> Response:
        """Duplicate the object at ``path`` onto the ``Destination`` key.

        A destination equal to the source is refused with 403 Forbidden.
        """
        source = resolve_key(path)
        destination = self._destination(request, source)
        await self._copy(source, destination)
        return self._created()

    async def move(self, request: Request, path: str) -> Response:
        """Copy to ``Destination``, then remove the source.

        A destination equal to the source is refused with 403 Forbidden, since
        removing the source would destroy the only copy. A failure to remove
        the source after copying answers 424 and leaves both keys in place.
        """
        source = resolve_key(path)
        destination = self._destination(request, source)
        await self._copy(source, destination)
        try:
            await self._remove(source)
        except (DavError, ClientError, BotoCoreError) as error:
            LOG.error(
                "move of %s left a copy at %s: %s",
                source,
                destination,
                error,
            )
            raise PartialMoveError(source, destination) from error
        LOG.info("moved %s to %s", source, destination)
        return self._created()

    def _destination(self, request: Request, source: str) -> str:
        header = request.headers.get("destination")
        if not header:
            msg = "missing Destination header"
            raise BadRequest(msg)
        try:
            destination = destination_key(header)
        except httpx.InvalidURL as error:
            msg = f"invalid Destination header {header!r}"
            raise BadRequest(msg) from error
        if destination == source:
            msg = f"source and destination are both {source!r}"
            raise Forbidden(msg)
        return destination

    async def _copy(self, source: str, destination: str) -> None:
        if await self._store.head(source) is None:
            msg = f"no object at {source!r}"
            raise NotFound(msg)
        stored = await self._store.get(source)
        if stored is None or stored.body is None:
            msg = f"{source!r} disappeared during copy"
            raise NotFound(msg)
        body = await stored.body.read()
        await self._store.put(
            destination,
            body,
            http_metadata=stored.http_metadata,
            custom_metadata=dict(stored.custom_metadata),
        )
        LOG.debug("copied %s to %s (%d bytes)", source, destination, len(body))

    async def propfind(self, request: Request, path: str) -> Response:
        key = resolve_key(path)
        depth = (request.headers.get("depth") or "1").strip().lower()
        if depth not in DEPTHS:
            msg = f"invalid Depth header {depth!r}"
            raise BadRequest(msg)

        target = await self._store.head(key) if key else None
        if target is None and key and not await self._has_children(key):
            msg = f"no resource at {key!r}"
            raise NotFound(msg)

        root = ListedEntry(key=key, object=target)
        resources = [(root.key, root.properties())]
        if depth != "0" and root.kind.is_collection:
            seen = {key, child_prefix(key)}
            async for entry in list_all(
                self._store, child_prefix(key), recursive=depth == "infinity"
            ):
                if entry.key in seen:
                    continue
                seen.add(entry.key)
                resources.append((entry.key, entry.properties()))

        return Response(
            content=render_multistatus(resources),
            status_code=status_codes.HTTP_207_MULTI_STATUS,
            media_type=MediaType.XML,
        )

    async def _has_children(self, key: str) -> bool:
        page = await self._store.list(child_prefix(key), delimiter=SEPARATOR)
        return bool(page.objects or page.prefixes)

    @staticmethod
    def _created() -> Response:
        return Response(
            content=b"",
            status_code=status_codes.HTTP_201_CREATED,
            media_type=MediaType.TEXT,
        )

    @staticmethod
    def _from_dav_error(error: DavError, method: str) -> Response:
        content = error.detail if error.expose_detail and method != "HEAD" else b""
        return Response(
            content=content,
            status_code=error.status_code,
            media_type=MediaType.TEXT,
            headers=error.headers,
        )

    @staticmethod
    def _from_client_error(error: ClientError, method: str) -> Response:
        response: dict[str, Any] = error.response
        status_code = int(
            response.get("ResponseMetadata", {}).get("HTTPStatusCode", 500)
        )
        message = response.get("Error", {}).get("Message", "Internal Server Error")
        return Response(
            content=b"" if method == "HEAD" else message,
            status_code=status_code,
            media_type=MediaType.TEXT,
        )
