"""PostgreSQL testcontainer verification."""

from src.verification.postgres import (
    ContainerStartupError,
    ServerVersionUnavailableError,
    VerificationResult,
    VersionMismatchError,
    check_major_version,
    postgres_container,
    run_verification,
)

__all__ = [
    "ContainerStartupError",
    "ServerVersionUnavailableError",
    "VerificationResult",
    "VersionMismatchError",
    "check_major_version",
    "postgres_container",
    "run_verification",
]
