"""Verification configuration (Pydantic v2). Load from verification_config.yml with optional env override."""

import os
from pathlib import Path
from typing import Any, Mapping

import yaml
from pydantic import BaseModel, field_validator


DEFAULT_POSTGRES_MAJOR_VERSION = 16
DEFAULT_POSTGRES_IMAGE_VARIANT = "alpine"
DEFAULT_CONFIG_ENV_VAR = "VERIFICATION_CONFIG"
DEFAULT_CONFIG_FILENAME = "verification_config.yml"

IMAGE_ENV_VAR = "POSTGRES_IMAGE"
MAJOR_VERSION_ENV_VAR = "POSTGRES_MAJOR_VERSION"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    """
    Verification config loaded from YAML.

    The container image defaults to postgres:{postgres_major_version}-{postgres_image_variant};
    set `image` to pin something else (e.g. a mirror). POSTGRES_IMAGE / POSTGRES_MAJOR_VERSION
    override the YAML when the default config is loaded (not with an explicit config_path).
    """

    model_config = {"extra": "ignore"}

    postgres_major_version: int = DEFAULT_POSTGRES_MAJOR_VERSION
    postgres_image_variant: str = DEFAULT_POSTGRES_IMAGE_VARIANT
    image: str | None = None
    log_level: str = "INFO"
    forensics_dir: str = "logs/forensics"

    @field_validator("postgres_major_version")
    @classmethod
    def positive_major_version(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"postgres_major_version must be positive, got {v}")
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def known_log_level(cls, v: Any) -> str:
        level = str(v).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {v!r}")
        return level

    @field_validator("image", mode="before")
    @classmethod
    def empty_image_is_none(cls, v: Any) -> str | None:
        if v is not None and v != "":
            return str(v)
        return None

    @property
    def postgres_image(self) -> str:
        """Docker image to provision, e.g. postgres:16-alpine."""
        if self.image:
            return self.image
        if self.postgres_image_variant:
            return f"postgres:{self.postgres_major_version}-{self.postgres_image_variant}"
        return f"postgres:{self.postgres_major_version}"


_config: Settings | None = None


class ConfigLoader:
    """
    Helper responsible for loading Settings from YAML and environment.

    - load_from_yaml(path, apply_env_override): read a YAML file and optionally apply env overrides.
    - load_default(): resolve the default config path from VERIFICATION_CONFIG / verification_config.yml
      and apply POSTGRES_IMAGE / POSTGRES_MAJOR_VERSION overrides when present.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env: Mapping[str, str] = env if env is not None else os.environ

    def _env_overrides(self) -> dict[str, str]:
        overrides: dict[str, str] = {}
        if self._env.get(IMAGE_ENV_VAR):
            overrides["image"] = self._env[IMAGE_ENV_VAR]
        if self._env.get(MAJOR_VERSION_ENV_VAR):
            overrides["postgres_major_version"] = self._env[MAJOR_VERSION_ENV_VAR]
        return overrides

    def load_from_yaml(self, path: Path, apply_env_override: bool) -> Settings:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in config file {path}: {e}") from e
        if not data:
            data = {}
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must contain a mapping, got {type(data).__name__}")
        if apply_env_override:
            data.update(self._env_overrides())
        return Settings.model_validate(data)

    def load_default(self) -> Settings:
        """
        Load the default Settings, using VERIFICATION_CONFIG or verification_config.yml.

        Without a config file the built-in defaults apply (postgres:16-alpine, expect 16),
        still subject to the environment overrides.
        """
        path_str = self._env.get(DEFAULT_CONFIG_ENV_VAR) or DEFAULT_CONFIG_FILENAME
        path = Path(path_str)
        if path.exists():
            return self.load_from_yaml(path, apply_env_override=True)
        return Settings.model_validate(self._env_overrides())


_loader = ConfigLoader()


def get_config(config_path: str | Path | None = None) -> Settings:
    """
    Return singleton config.

    - If config_path is given, load from it (without env overrides) and update the cache.
    - Otherwise, return the cached config if available, or load via ConfigLoader.load_default().
    """
    global _config
    if config_path is not None:
        _config = _loader.load_from_yaml(Path(config_path), apply_env_override=False)
        return _config
    if _config is not None:
        return _config
    _config = _loader.load_default()
    return _config


def reset_config() -> None:
    """Clear cached config (for tests)."""
    global _config
    _config = None
