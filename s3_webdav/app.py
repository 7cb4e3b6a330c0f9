from __future__ import annotations

from typing import TYPE_CHECKING

from litestar import Litestar, Request, get
from litestar.config.cors import CORSConfig
from litestar.handlers import asgi
from litestar.logging.config import LoggingConfig
from litestar.plugins.prometheus import PrometheusConfig, PrometheusController

from .handlers import DavHandler
from .paths import request_path
from .settings import ServerSettings, load_server_settings_from_env
from .store import S3ObjectStore

if TYPE_CHECKING:
    from litestar.types import Receive, Scope, Send

    from .store import ObjectStore


prometheus_config = PrometheusConfig(app_name="s3_webdav", prefix="s3_webdav")


def create_app(
    store: ObjectStore | None = None,
    settings: ServerSettings | None = None,
) -> Litestar:
    """Create the WebDAV ASGI application.

    Args:
        store: Backing object store; an S3 store configured from the
            environment is used when omitted.
        settings: Application settings; read from the environment when omitted.
    """
    settings = settings or load_server_settings_from_env()
    handler = DavHandler(store if store is not None else S3ObjectStore.from_env())

    @get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @asgi(path="/", is_mount=True, copy_scope=True)
    async def dav_handler(scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope=scope, receive=receive)
        response = await handler.handle(request, request_path(scope))
        asgi_response = response.to_asgi_response(None, request)
        await asgi_response(scope, receive, send)

    async def startup(app: Litestar) -> None:
        await handler.startup()

    async def shutdown(app: Litestar) -> None:
        await handler.shutdown()

    cors_config = CORSConfig(
        allow_origins=settings.allowed_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "Allow",
            "Content-Length",
            "Content-Range",
            "DAV",
            "ETag",
        ],
    )

    logging_config = LoggingConfig(
        loggers={"s3_webdav": {"level": settings.log_level, "propagate": True}},
    )

    app = Litestar(
        route_handlers=[health, dav_handler, PrometheusController],
        on_startup=[startup],
        on_shutdown=[shutdown],
        cors_config=cors_config,
        logging_config=logging_config,
        middleware=[prometheus_config.middleware],
    )
    app.state.dav_handler = handler
    return app


app = create_app()
