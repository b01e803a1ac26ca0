"""CLI smoke tests: verify / docker-info / config exit codes and output, with Docker mocked out."""

import json
from unittest.mock import patch

import pytest
from docker.errors import DockerException, NotFound
from sqlalchemy.exc import OperationalError
from typer.testing import CliRunner

from src.cli import EXIT_ENVIRONMENT, EXIT_MISMATCH, app
from src.core.docker_env import DockerEngineInfo, DockerUnavailableError
from src.core.logging import FlightLogger
from src.verification.postgres import (
    ContainerStartupError,
    ServerVersionUnavailableError,
    VerificationResult,
)

pytestmark = [pytest.mark.fast]

runner = CliRunner()

DOCKER_INFO = DockerEngineInfo(
    version="27.1.1",
    api_version="1.46",
    os="linux",
    arch="amd64",
    docker_host="unix:///var/run/docker.sock",
)


def _result(actual: int, expected: int = 16) -> VerificationResult:
    return VerificationResult(
        image=f"postgres:{expected}-alpine",
        expected_major_version=expected,
        actual_major_version=actual,
        server_version=f"{actual}.4",
        docker=DOCKER_INFO,
    )


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    """Run CLI commands from an empty dir with logging setup stubbed and a flight buffer under tmp_path."""
    monkeypatch.chdir(tmp_path)
    flight = FlightLogger(tmp_path / "forensics", capacity=100)
    with (
        patch("src.cli.setup_logging"),
        patch("src.cli.get_flight_logger", return_value=flight),
    ):
        yield tmp_path


def test_verify_passes(cli_env):
    with patch("src.cli.run_verification", return_value=_result(16)) as run:
        result = runner.invoke(app, ["verify"])
    assert result.exit_code == 0, result.output
    assert "passed" in result.output
    assert "postgres:16-alpine" in result.output
    cfg = run.call_args.args[0]
    assert cfg.postgres_image == "postgres:16-alpine"
    assert not (cli_env / "forensics").exists()


def test_verify_mismatch_exits_1_and_dumps_forensics(cli_env):
    with patch("src.cli.run_verification", return_value=_result(15)):
        result = runner.invoke(app, ["verify"])
    assert result.exit_code == EXIT_MISMATCH
    assert "Expected PostgreSQL 16, got 15" in result.output
    assert "Forensic log written to" in result.output
    (dump,) = (cli_env / "forensics").iterdir()
    header = dump.read_text()
    assert "# image: postgres:16-alpine" in header
    assert "# expected_major_version: 16" in header
    assert "# actual_major_version: 15" in header


def test_verify_overrides_image_and_expected_major(cli_env):
    with patch("src.cli.run_verification", return_value=_result(15, expected=15)) as run:
        result = runner.invoke(app, ["verify", "--expected-major", "15"])
    assert result.exit_code == 0, result.output
    assert run.call_args.args[0].postgres_image == "postgres:15-alpine"

    with patch("src.cli.run_verification", return_value=_result(16)) as run:
        result = runner.invoke(app, ["verify", "--image", "postgres:16.4"])
    assert result.exit_code == 0, result.output
    assert run.call_args.args[0].postgres_image == "postgres:16.4"


@pytest.mark.parametrize(
    "error",
    [
        DockerUnavailableError("Cannot connect to a Docker engine"),
        ContainerStartupError("PostgreSQL container postgres:16-alpine failed to start"),
        ServerVersionUnavailableError("Database driver did not report a server version"),
        DockerException("engine gone during stop"),
        NotFound("No such container"),
        OperationalError("SELECT 1", {}, Exception("connection refused")),
    ],
)
def test_verify_environment_failure_exits_2(cli_env, error):
    with patch("src.cli.run_verification", side_effect=error):
        result = runner.invoke(app, ["verify"])
    assert result.exit_code == EXIT_ENVIRONMENT
    assert str(error) in result.output
    (dump,) = (cli_env / "forensics").iterdir()
    assert f"# error: {type(error).__name__}" in dump.read_text()


def test_verify_missing_config_exits_2(cli_env):
    result = runner.invoke(app, ["verify", "--config", str(cli_env / "missing.yml")])
    assert result.exit_code == EXIT_ENVIRONMENT
    assert "Config file not found" in result.output


def test_docker_info(cli_env):
    with patch("src.cli.get_docker_engine_info", return_value=DOCKER_INFO):
        result = runner.invoke(app, ["docker-info"])
    assert result.exit_code == 0, result.output
    assert "27.1.1" in result.output
    assert "unix:///var/run/docker.sock" in result.output


def test_docker_info_unavailable(cli_env):
    with patch("src.cli.get_docker_engine_info", side_effect=DockerUnavailableError("no engine")):
        result = runner.invoke(app, ["docker-info"])
    assert result.exit_code == EXIT_ENVIRONMENT
    assert "no engine" in result.output


def test_config_prints_effective_settings(cli_env):
    config_path = cli_env / "verification_config.yml"
    config_path.write_text("postgres_major_version: 15\n")
    result = runner.invoke(app, ["config", "--config", str(config_path)])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["postgres_major_version"] == 15
    assert payload["postgres_image"] == "postgres:15-alpine"


def test_verify_malformed_yaml_exits_2(cli_env):
    """A config file that is not valid YAML is an environment failure, not a version mismatch."""
    config_path = cli_env / "bad.yml"
    config_path.write_text("postgres_major_version: [16\n")
    with patch("src.cli.run_verification") as run:
        result = runner.invoke(app, ["verify", "--config", str(config_path)])
    assert result.exit_code == EXIT_ENVIRONMENT
    assert "Invalid YAML" in result.output
    assert str(config_path) in result.output
    run.assert_not_called()


def test_verify_logging_uses_overridden_settings(cli_env):
    """setup_logging receives the settings after --image / --expected-major are applied."""
    with (
        patch("src.cli.setup_logging") as setup,
        patch("src.cli.run_verification", return_value=_result(15, expected=15)),
    ):
        result = runner.invoke(app, ["verify", "--expected-major", "15"])
    assert result.exit_code == 0, result.output
    (cfg,) = setup.call_args.args
    assert cfg.postgres_major_version == 15
    assert cfg.postgres_image == "postgres:15-alpine"
