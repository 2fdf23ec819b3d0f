"""Run configuration."""

import json
import logging
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

logger = logging.getLogger(__name__)

RangeMode = Literal["default", "major", "minor", "patch", "latest", "newest", "next", "ignore"]
LogLevel = Literal["silent", "error", "warn", "info", "debug"]

CONFIG_FILES = ("freshen.config.json", ".freshenrc.json", ".freshenrc")


class CheckOptions(BaseModel):
    """Options for one check/update run."""

    cwd: str = "."
    mode: RangeMode = "default"
    package_mode: dict[str, RangeMode] = Field(default_factory=dict)
    write: bool = False

    include_locked: bool = False
    include_workspace: bool = False
    include: list[str] = Field(default_factory=list)
    exclude: list[str] = Field(default_factory=list)
    dep_fields: dict[str, bool] = Field(default_factory=dict)
    peer: bool = False

    concurrency: int = Field(16, ge=1)
    timeout: float = Field(10.0, gt=0)
    retries: int = Field(2, ge=0)
    cache_ttl: int = Field(1800, ge=0)
    refresh_cache: bool = False
    cooldown: int = Field(0, ge=0)
    force: bool = False

    verify_command: str | None = None
    execute: str | None = None
    install: bool = False
    update: bool = False

    global_packages: bool = False
    global_all: bool = False
    global_manager: Literal["npm", "pnpm", "bun"] | None = None

    fail_on_outdated: bool = False
    loglevel: LogLevel = "info"

    @classmethod
    def create(cls, **values) -> "CheckOptions":
        """Build options, turning validation failures into ConfigError."""
        try:
            return cls(**values)
        except ValidationError as e:
            raise ConfigError(f"Invalid options: {e}") from e


def read_config_file(cwd: str | Path) -> dict:
    """First config found in ``cwd``: a config file or the ``freshen`` key of package.json."""
    directory = Path(cwd)
    for name in CONFIG_FILES:
        path = directory / name
        if path.is_file():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except ValueError as e:
                raise ConfigError(f"Invalid config file {path}: {e}") from e
            if not isinstance(data, dict):
                raise ConfigError(f"Config file {path} must contain an object")
            logger.debug("Loaded config from %s", path)
            return data

    package_json = directory / "package.json"
    if package_json.is_file():
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except ValueError:
            return {}
        section = data.get("freshen") if isinstance(data, dict) else None
        if isinstance(section, dict):
            logger.debug("Loaded config from %s#freshen", package_json)
            return section
    return {}


def load_config(cwd: str | Path = ".", overrides: dict | None = None) -> CheckOptions:
    """Defaults, then the config file, then explicit overrides.

    Overrides whose value is None are ignored so CLI flags left unset do
    not mask the config file.
    """
    values = {**read_config_file(cwd)}
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})
    values["cwd"] = str(cwd)
    return CheckOptions.create(**values)
