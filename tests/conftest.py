"""Pytest fixtures. Use testcontainers-python for PostgreSQL in tests."""

import pytest

from src.core import config as config_module
from src.core.config import Settings
from src.verification.postgres import postgres_container as start_postgres_container

POSTGRES_MAJOR_VERSION = 16


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    """Keep env overrides and a cached Settings from leaking between tests."""
    for name in ("VERIFICATION_CONFIG", "POSTGRES_IMAGE", "POSTGRES_MAJOR_VERSION"):
        monkeypatch.delenv(name, raising=False)
    config_module._config = None  # type: ignore[attr-defined]
    yield
    config_module._config = None  # type: ignore[attr-defined]


@pytest.fixture(scope="module")
def postgres_container():
    """Module-scoped PostgreSQL 16 container (testcontainers), stopped when the module finishes."""
    settings = Settings(postgres_major_version=POSTGRES_MAJOR_VERSION)
    with start_postgres_container(settings) as postgres:
        yield postgres
