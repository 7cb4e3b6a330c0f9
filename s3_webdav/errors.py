"""Error kinds raised by the DAV verb handlers."""

from __future__ import annotations

from litestar import status_codes


class DavError(Exception):
    """A recognized protocol failure that maps to one HTTP status code.

    Attributes:
        status_code: HTTP status returned to the client.
        detail: Human-readable description, logged and optionally sent.
        expose_detail: Whether ``detail`` is written to the response body.
    """

    status_code: int = status_codes.HTTP_500_INTERNAL_SERVER_ERROR
    expose_detail: bool = False

    def __init__(self, detail: str = "", headers: dict[str, str] | None = None):
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail
        self.headers = headers or {}


class NotFound(DavError):
    status_code = status_codes.HTTP_404_NOT_FOUND


class PreconditionFailed(DavError):
    status_code = status_codes.HTTP_412_PRECONDITION_FAILED


class MethodNotAllowed(DavError):
    status_code = status_codes.HTTP_405_METHOD_NOT_ALLOWED


class BadRequest(DavError):
    status_code = status_codes.HTTP_400_BAD_REQUEST


class PartialMoveError(DavError):
    """MOVE copied the source but could not remove it afterwards.

    Both keys exist once this is raised; nothing is rolled back.
    """

    status_code = status_codes.HTTP_424_FAILED_DEPENDENCY
    expose_detail = True

    def __init__(self, source: str, destination: str):
        super().__init__(
            f"copied {source!r} to {destination!r} but could not remove the source"
        )
        self.source = source
        self.destination = destination


class RangeNotSatisfiable(DavError):
    status_code = status_codes.HTTP_416_REQUESTED_RANGE_NOT_SATISFIABLE


class Forbidden(DavError):
    status_code = status_codes.HTTP_403_FORBIDDEN
