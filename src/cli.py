"""Typer CLI: run the testcontainers PostgreSQL verification outside pytest."""

import json
import logging
import socket
import uuid
from pathlib import Path

import typer
from docker.errors import DockerException
from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from src.core.config import Settings, get_config
from src.core.docker_env import DockerUnavailableError, get_docker_engine_info
from src.core.logging import get_flight_logger, setup_logging
from src.verification.postgres import (
    ContainerStartupError,
    ServerVersionUnavailableError,
    VerificationResult,
    run_verification,
)

EXIT_MISMATCH = 1
EXIT_ENVIRONMENT = 2

# Anything that stops the check from producing a version; a mismatch is not among them.
ENVIRONMENT_ERRORS = (
    DockerUnavailableError,
    ContainerStartupError,
    ServerVersionUnavailableError,
    DockerException,
    SQLAlchemyError,
)

_log = logging.getLogger(__name__)

app = typer.Typer(no_args_is_help=True)


def _load_settings(
    config_path: Path | None,
    image: str | None = None,
    expected_major: int | None = None,
) -> Settings:
    updates: dict[str, object] = {}
    if image is not None:
        updates["image"] = image
    if expected_major is not None:
        updates["postgres_major_version"] = expected_major
    try:
        cfg = get_config(config_path) if config_path is not None else get_config()
        if updates:
            cfg = Settings.model_validate({**cfg.model_dump(), **updates})
    except (FileNotFoundError, ValueError) as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_ENVIRONMENT)
    return cfg


def _dump_forensics(cfg: Settings, **context: object) -> None:
    """Write the in-memory log buffer to the forensics dir and tell the user where it went."""
    flight = get_flight_logger()
    if flight is None:
        return
    run_id = f"verify-{socket.gethostname()}-{uuid.uuid4().hex[:6]}"
    header = {
        "image": cfg.postgres_image,
        "expected_major_version": cfg.postgres_major_version,
        **context,
    }
    try:
        path = flight.dump(run_id, context=header)
    except OSError as e:
        typer.secho(f"Could not write forensic log: {e}", fg=typer.colors.YELLOW, err=True)
        return
    typer.echo(f"Forensic log written to {path}", err=True)


def _print_result(result: VerificationResult) -> None:
    table = Table(title=None)
    table.add_column("Check")
    table.add_column("Value")
    if result.docker is not None:
        table.add_row("Docker engine", f"{result.docker.version} (API {result.docker.api_version})")
        table.add_row("Docker host", result.docker.docker_host or "(default socket)")
    table.add_row("Image", result.image)
    table.add_row("Server version", result.server_version)
    table.add_row("Expected major", str(result.expected_major_version))
    table.add_row("Actual major", str(result.actual_major_version))
    table.add_row("Result", "[green]PASS[/green]" if result.ok else "[red]FAIL[/red]")
    Console().print(table)


@app.command()
def verify(
    config_path: Path | None = typer.Option(
        None, "--config", help="Path to a verification_config.yml."
    ),
    image: str | None = typer.Option(
        None, "--image", help="Override the PostgreSQL image (e.g. postgres:16-alpine)."
    ),
    expected_major: int | None = typer.Option(
        None, "--expected-major", help="Override the expected server major version."
    ),
) -> None:
    """
    Start a PostgreSQL testcontainer and check its major version.

    Exit 1 on a version mismatch, 2 when Docker, the container or the connection fails.
    """
    cfg = _load_settings(config_path, image=image, expected_major=expected_major)
    setup_logging(cfg)

    try:
        result = run_verification(cfg)
    except ENVIRONMENT_ERRORS as e:
        _log.error("Verification could not run: %s", e, exc_info=True)
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        _dump_forensics(cfg, error=f"{type(e).__name__}: {e}")
        raise typer.Exit(EXIT_ENVIRONMENT)

    _print_result(result)
    if not result.ok:
        typer.secho(
            f"Expected PostgreSQL {result.expected_major_version}, got {result.actual_major_version}.",
            fg=typer.colors.RED,
            err=True,
        )
        _dump_forensics(
            cfg,
            actual_major_version=result.actual_major_version,
            server_version=result.server_version,
        )
        raise typer.Exit(EXIT_MISMATCH)
    typer.echo("testcontainers verification passed.")


@app.command("docker-info")
def docker_info() -> None:
    """Show the Docker engine testcontainers will use."""
    try:
        info = get_docker_engine_info()
    except DockerUnavailableError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(EXIT_ENVIRONMENT)
    typer.echo(f"Docker engine: {info.version} (API {info.api_version}) {info.os}/{info.arch}")
    typer.echo(f"Docker host: {info.docker_host or '(default socket)'}")


@app.command("config")
def show_config(
    config_path: Path | None = typer.Option(
        None, "--config", help="Path to a verification_config.yml."
    ),
) -> None:
    """Print the effective settings as JSON."""
    cfg = _load_settings(config_path)
    payload = cfg.model_dump()
    payload["postgres_image"] = cfg.postgres_image
    typer.echo(json.dumps(payload, indent=2))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
