"""WebDAV adapter exposing an S3 bucket as a hierarchical file tree."""

from .app import create_app
from .handlers import DavHandler
from .memory import MemoryObjectStore
from .settings import ServerSettings, StoreSettings
from .store import ObjectStore, S3ObjectStore

__all__ = [
    "DavHandler",
    "MemoryObjectStore",
    "ObjectStore",
    "S3ObjectStore",
    "ServerSettings",
    "StoreSettings",
    "create_app",
]
