"""Locate the Docker engine testcontainers will use and report what it is."""

import logging
import os
from dataclasses import dataclass

import docker
from docker.errors import DockerException
from requests.exceptions import ConnectionError as RequestsConnectionError

_log = logging.getLogger(__name__)


class DockerUnavailableError(RuntimeError):
    """Raised when no usable Docker engine can be reached from this environment."""

    pass


@dataclass(frozen=True)
class DockerEngineInfo:
    version: str
    api_version: str
    os: str
    arch: str
    docker_host: str | None


def get_docker_engine_info() -> DockerEngineInfo:
    """
    Connect to the Docker engine resolved from the environment (DOCKER_HOST, DOCKER_TLS_VERIFY,
    DOCKER_CERT_PATH, or the default socket), ping it and read its version.

    Raises DockerUnavailableError when the engine cannot be reached.
    """
    docker_host = os.environ.get("DOCKER_HOST") or None
    try:
        client = docker.from_env()
    except DockerException as e:
        raise DockerUnavailableError(f"Cannot connect to a Docker engine: {e}") from e
    try:
        client.ping()
        version = client.version()
    except (DockerException, RequestsConnectionError) as e:
        raise DockerUnavailableError(f"Docker engine did not respond: {e}") from e
    finally:
        client.close()

    info = DockerEngineInfo(
        version=str(version.get("Version", "unknown")),
        api_version=str(version.get("ApiVersion", "unknown")),
        os=str(version.get("Os", "unknown")),
        arch=str(version.get("Arch", "unknown")),
        docker_host=docker_host,
    )
    _log.debug("Docker engine %s (API %s) on %s/%s", info.version, info.api_version, info.os, info.arch)
    return info
