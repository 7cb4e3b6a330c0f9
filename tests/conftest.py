from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import pytest
from _pytest.fixtures import FixtureLookupError
from litestar.testing import TestClient
from s3_webdav import MemoryObjectStore, ServerSettings, create_app

if TYPE_CHECKING:
    from collections.abc import Generator

    from botocore.client import BaseClient
    from litestar import Litestar
    from pytest_databases.types import ServiceContainer


@dataclass
class MinioService:
    endpoint: str
    access_key: str
    secret_key: str
    secure: bool


def _docker_available() -> bool:
    try:
        import docker
        from docker.errors import DockerException
    except ImportError:
        return False
    try:
        docker.from_env().ping()
    except DockerException:
        return False
    return True


@pytest.fixture(scope="session")
def minio_access_key() -> str:
    return os.getenv("MINIO_ACCESS_KEY", "minio")


@pytest.fixture(scope="session")
def minio_secret_key() -> str:
    return os.getenv("MINIO_SECRET_KEY", "minio123")


@pytest.fixture(scope="session")
def minio_secure() -> bool:
    return os.getenv("MINIO_SECURE", "false").lower() in {
        "true",
        "1",
        "yes",
        "y",
        "t",
        "on",
    }


@pytest.fixture(scope="session")
def minio_service_name() -> str:
    """Override to use a custom name for the MinIO service."""
    return "minio-webdav"


@pytest.fixture(scope="session")
def minio_service(
    request: pytest.FixtureRequest,
    minio_access_key: str,
    minio_secret_key: str,
    minio_secure: bool,
    minio_service_name: str,
) -> Generator[MinioService]:
    from urllib.error import URLError
    from urllib.request import Request, urlopen

    if not _docker_available():
        pytest.skip("Docker is not available for MinIO integration tests")

    try:
        docker_service = request.getfixturevalue("docker_service")
    except FixtureLookupError:
        pytest.skip("pytest-databases docker_service fixture is not registered")

    def check(_service: ServiceContainer) -> bool:
        scheme = "https" if minio_secure else "http"
        url = f"{scheme}://{_service.host}:{_service.port}/minio/health/ready"
        if not url.startswith(("http:", "https:")):
            msg = "URL must start with 'http:' or 'https:'"
            raise ValueError(msg)
        try:
            with urlopen(url=Request(url, method="GET"), timeout=10) as response:
                return response.status == 200
        except (URLError, ConnectionError):
            return False

    env = {
        "MINIO_ROOT_USER": minio_access_key,
        "MINIO_ROOT_PASSWORD": minio_secret_key,
    }

    with docker_service.run(
        image="quay.io/minio/minio",
        name=minio_service_name,
        command="server /data",
        container_port=9000,
        timeout=20,
        pause=0.5,
        env=env,
        check=check,
    ) as service:
        yield MinioService(
            endpoint=f"{service.host}:{service.port}",
            access_key=minio_access_key,
            secret_key=minio_secret_key,
            secure=minio_secure,
        )


def _minio_url(minio_service: MinioService) -> str:
    scheme = "https" if minio_service.secure else "http"
    return f"{scheme}://{minio_service.endpoint}"


@pytest.fixture
def s3_client(minio_service: MinioService) -> BaseClient:
    """Create a plain boto3 S3 client for the MinIO service."""
    import boto3
    from botocore.config import Config

    return boto3.client(
        "s3",
        endpoint_url=_minio_url(minio_service),
        aws_access_key_id=minio_service.access_key,
        aws_secret_access_key=minio_service.secret_key,
        region_name="us-east-1",
        config=Config(s3={"addressing_style": "path"}),
    )


@pytest.fixture
def store_env_vars(
    minio_service: MinioService,
) -> Generator[dict[str, str]]:
    """Set up environment variables pointing the S3 store at MinIO."""
    env_vars = {
        "S3_WEBDAV_ENDPOINT": _minio_url(minio_service),
        "S3_WEBDAV_ACCESS_KEY": minio_service.access_key,
        "S3_WEBDAV_SECRET_KEY": minio_service.secret_key,
        "S3_WEBDAV_REGION": "us-east-1",
        "S3_WEBDAV_BUCKET": "webdav-integration",
        "S3_WEBDAV_CREATE_BUCKET": "true",
    }

    original_values = {}
    for key, value in env_vars.items():
        original_values[key] = os.environ.get(key)
        os.environ[key] = value

    yield env_vars

    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


@pytest.fixture
def memory_store() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def app(memory_store: MemoryObjectStore) -> Litestar:
    return create_app(store=memory_store, settings=ServerSettings())


@pytest.fixture
def client(app: Litestar) -> Generator[TestClient]:
    with TestClient(app=app) as test_client:
        yield test_client
