"""Provision a PostgreSQL testcontainer and compare its major version to the expected one."""

import contextlib
import logging
from dataclasses import dataclass
from typing import Iterator

from docker.errors import DockerException
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection
from testcontainers.postgres import PostgresContainer

from src.core.config import Settings, get_config
from src.core.docker_env import DockerEngineInfo, DockerUnavailableError, get_docker_engine_info

_log = logging.getLogger(__name__)


class ContainerStartupError(RuntimeError):
    """Raised when the PostgreSQL container cannot be started or never becomes ready."""

    pass


class ServerVersionUnavailableError(RuntimeError):
    """Raised when the driver connected but did not report the server version."""

    pass


class VersionMismatchError(AssertionError):
    """Raised when the server reports a different major version than expected."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"expected PostgreSQL major version {expected}, server reports {actual}")
        self.expected = expected
        self.actual = actual


@dataclass(frozen=True)
class VerificationResult:
    image: str
    expected_major_version: int
    actual_major_version: int
    server_version: str
    docker: DockerEngineInfo | None = None

    @property
    def ok(self) -> bool:
        return self.actual_major_version == self.expected_major_version


@contextlib.contextmanager
def postgres_container(settings: Settings | None = None) -> Iterator[PostgresContainer]:
    """
    Start a PostgreSQL container for settings.postgres_image and yield it once it accepts
    connections. The container is stopped on every exit path, including a failed start.
    """
    cfg = settings or get_config()
    image = cfg.postgres_image
    try:
        container = PostgresContainer(image)
    except DockerException as e:
        raise DockerUnavailableError(f"Cannot create container {image}: {e}") from e
    _log.info("Starting PostgreSQL container %s", image)
    try:
        container.start()
    except Exception as e:
        _stop_after_failure(container, image)
        raise ContainerStartupError(f"PostgreSQL container {image} failed to start: {e}") from e
    try:
        _log.info("PostgreSQL container %s ready at %s", image, _endpoint(container))
        yield container
    except BaseException:
        _stop_after_failure(container, image)
        raise
    _log.info("Stopping PostgreSQL container %s", image)
    container.stop()


def _stop_after_failure(container: PostgresContainer, image: str) -> None:
    """Stop while another error is propagating; a Docker error here is logged, not raised."""
    _log.info("Stopping PostgreSQL container %s after failure", image)
    try:
        container.stop()
    except DockerException:
        _log.warning("Could not stop PostgreSQL container %s", image, exc_info=True)


def _endpoint(container: PostgresContainer) -> str:
    host = container.get_container_host_ip()
    port = container.get_exposed_port(container.port)
    return f"{host}:{port}/{container.dbname}"


@contextlib.contextmanager
def connect(connection_url: str) -> Iterator[Connection]:
    """Open a single connection on a throwaway engine; the engine is disposed on exit."""
    engine = create_engine(connection_url, pool_pre_ping=True)
    try:
        with engine.connect() as conn:
            yield conn
    finally:
        engine.dispose()


def server_major_version(conn: Connection) -> int:
    """Major version from the dialect's connection metadata (e.g. (16, 4) -> 16)."""
    info = conn.dialect.server_version_info
    if not info:
        raise ServerVersionUnavailableError("Database driver did not report a server version")
    return int(info[0])


def server_version(conn: Connection) -> str:
    """Full version string as reported by the server, e.g. '16.4'."""
    return str(conn.execute(text("SHOW server_version")).scalar_one())


def get_server_major_version(connection_url: str) -> int:
    with connect(connection_url) as conn:
        return server_major_version(conn)


def check_major_version(actual: int, expected: int) -> None:
    """Raise VersionMismatchError unless actual == expected."""
    if actual != expected:
        raise VersionMismatchError(expected=expected, actual=actual)


def run_verification(settings: Settings | None = None) -> VerificationResult:
    """
    Full check outside pytest: reach Docker, start the container, read the server version.

    Environment problems (DockerUnavailableError, ContainerStartupError, ServerVersionUnavailableError,
    SQLAlchemy and docker errors) propagate;
    a version mismatch does not raise and is reported through VerificationResult.ok.
    """
    cfg = settings or get_config()
    docker_info = get_docker_engine_info()
    _log.info("Using Docker engine %s (API %s)", docker_info.version, docker_info.api_version)

    with postgres_container(cfg) as postgres:
        with connect(postgres.get_connection_url()) as conn:
            actual = server_major_version(conn)
            full_version = server_version(conn)

    result = VerificationResult(
        image=cfg.postgres_image,
        expected_major_version=cfg.postgres_major_version,
        actual_major_version=actual,
        server_version=full_version,
        docker=docker_info,
    )
    if result.ok:
        _log.info("PostgreSQL %s matches expected major version %d", full_version, cfg.postgres_major_version)
    else:
        _log.error(
            "PostgreSQL %s does not match expected major version %d",
            full_version,
            cfg.postgres_major_version,
        )
    return result
