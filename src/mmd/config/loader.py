"""YAML configuration loading for mermaid-serve.

Loads mmd-serve.yaml. Every key is optional; command line flags override
values read from the file.

Example mmd-serve.yaml:

    version: 1

    exec: mmdc --puppeteerConfigFile puppeteer.json
    width: 980
    height: 1080

    port: 8100
    http_root: /mermaid/
    file_root: ../docs      # resolved relative to this file

    timeout: 10
    staleness: daily        # mtime | daily
    source_mode: auto       # auto | markdown | mermaid
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

# Directory and file names searched when no config path is given
PROJECT_DIR_NAME = ".mermaid-serve"
CONFIG_FILE_NAME = "mmd-serve.yaml"
CONFIG_ENV_VAR = "MMD_SERVE_CONFIG"

# Current config schema version
CURRENT_CONFIG_VERSION = 1


class StalenessPolicy(str, Enum):
    """When a cached rendering must be rebuilt."""

    # Rebuild when the artifact is missing or older than its source
    MTIME = "mtime"
    # Also rebuild anything rendered before the start of the local day
    DAILY = "daily"


class SourceMode(str, Enum):
    """Where the diagram definition for a logical name lives."""

    # name.md if present (composite), otherwise name.mmd
    AUTO = "auto"
    # name.md, diagram extracted into name.mmd before rendering
    MARKDOWN = "markdown"
    # name.mmd, fed to the renderer as-is
    MERMAID = "mermaid"


def parse_command(command: str) -> tuple[str, list[str]]:
    """Split a renderer command line into executable and extra arguments.

    Args:
        command: Command line, split on whitespace

    Returns:
        Tuple of (executable, extra args)

    Raises:
        ValueError: If the command is empty
    """
    parts = command.split()
    if not parts:
        raise ValueError("exec cannot be empty")
    return parts[0], parts[1:]


class ServeConfig(BaseModel):
    """Process-wide settings, fixed once the server starts."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    version: int = Field(
        default=CURRENT_CONFIG_VERSION,
        description="Config schema version",
    )
    exec: str = Field(
        default="mmdc",
        description="Renderer executable and extra args, split on spaces",
    )
    width: int = Field(
        default=980,
        ge=1,
        le=100_000,
        description="Default graph width in pixels",
    )
    height: int = Field(
        default=1080,
        ge=1,
        le=100_000,
        description="Default graph height in pixels",
    )
    port: int = Field(
        default=8100,
        ge=0,
        le=65535,
        description="HTTP server port",
    )
    host: str = Field(default="0.0.0.0", description="HTTP listen address")
    http_root: str = Field(
        default="/mermaid/",
        description="URL prefix the diagrams are served under",
    )
    file_root: str = Field(
        default="./",
        description="Directory holding sources and rendered artifacts",
    )
    timeout: float = Field(
        default=10.0,
        gt=0.0,
        le=600.0,
        description="Renderer deadline in seconds",
    )
    staleness: StalenessPolicy = Field(
        default=StalenessPolicy.MTIME,
        description="Cache invalidation policy",
    )
    source_mode: SourceMode = Field(
        default=SourceMode.AUTO,
        description="How the source document is located",
    )
    diagram_tag: str = Field(
        default="mermaid",
        min_length=1,
        description="Fence info string marking the diagram block in Markdown",
    )
    extract_fallback: bool = Field(
        default=True,
        description="Render the whole document when it has no diagram block",
    )
    atomic_write: bool = Field(
        default=True,
        description="Render to a temp file and rename it into place",
    )
    log_level: str = Field(default="INFO", description="Log level")

    _config_dir: Path | None = PrivateAttr(default=None)

    @field_validator("exec")
    @classmethod
    def check_exec(cls, value: str) -> str:
        parse_command(value)
        return value.strip()

    @field_validator("http_root")
    @classmethod
    def check_http_root(cls, value: str) -> str:
        if not (value.startswith("/") and value.endswith("/")):
            raise ValueError("http_root must start and end with '/'")
        return value

    @field_validator("log_level")
    @classmethod
    def check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "WARNING", "ERROR"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @property
    def executable(self) -> str:
        return parse_command(self.exec)[0]

    @property
    def exec_args(self) -> list[str]:
        return parse_command(self.exec)[1]

    def resolve_file_root(self) -> Path:
        """Get the absolute directory sources and artifacts are served from.

        Relative paths resolve against the directory of the config file the
        settings came from, or the working directory when none was used.

        Returns:
            Absolute Path to the file root
        """
        path = Path(self.file_root).expanduser()
        if path.is_absolute():
            return path.resolve()
        base = self._config_dir if self._config_dir is not None else Path.cwd()
        return (base / path).resolve()

    def with_overrides(self, **overrides: Any) -> ServeConfig:
        """Return a copy with the non-None overrides applied and validated.

        Args:
            **overrides: Field values, None meaning "keep the current value"

        Returns:
            New validated ServeConfig

        Raises:
            ValueError: If an override fails validation
        """
        values = self.model_dump()
        values.update({k: v for k, v in overrides.items() if v is not None})
        try:
            config = ServeConfig.model_validate(values)
        except Exception as e:
            raise ValueError(f"Invalid configuration: {e}") from e
        config._config_dir = self._config_dir
        return config


def _resolve_config_path(config_path: Path | str | None) -> Path | None:
    """Resolve config path from explicit path, env var, or default location.

    Resolution order:
    1. Explicit config_path if provided
    2. MMD_SERVE_CONFIG env var
    3. cwd/.mermaid-serve/mmd-serve.yaml
    4. None (use defaults)

    Args:
        config_path: Explicit path to config file (may be None).

    Returns:
        Resolved Path or None if no config file found.
    """
    if config_path is not None:
        return Path(config_path)

    env_config = os.getenv(CONFIG_ENV_VAR)
    if env_config:
        return Path(env_config)

    project_config = Path.cwd() / PROJECT_DIR_NAME / CONFIG_FILE_NAME
    if project_config.exists():
        return project_config

    return None


def _load_yaml_file(config_path: Path) -> dict[str, Any]:
    """Load and parse YAML file with error handling.

    Args:
        config_path: Path to YAML file.

    Returns:
        Parsed YAML data as dict.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If YAML is invalid or file can't be read.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with config_path.open() as f:
            raw_data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {config_path}: {e}") from e
    except OSError as e:
        raise ValueError(f"Error reading {config_path}: {e}") from e

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        raise ValueError(f"Config root must be a mapping in {config_path}")
    return raw_data


def _validate_version(data: dict[str, Any], config_path: Path) -> None:
    """Validate config version and set default if missing.

    Args:
        data: Config data dict (modified in place).
        config_path: Path to config file (for error messages).

    Raises:
        ValueError: If version is unsupported.
    """
    config_version = data.get("version")
    if config_version is None:
        logger.warning(
            f"Config file missing 'version' field, assuming version 1. "
            f"Add 'version: {CURRENT_CONFIG_VERSION}' to {config_path}"
        )
        data["version"] = 1
    elif not isinstance(config_version, int) or config_version > CURRENT_CONFIG_VERSION:
        raise ValueError(
            f"Config version {config_version} is not supported. "
            f"Maximum supported version is {CURRENT_CONFIG_VERSION}."
        )


def load_config(config_path: Path | str | None = None) -> ServeConfig:
    """Load mermaid-serve configuration from YAML file.

    Resolution order (when config_path is None):
    1. MMD_SERVE_CONFIG env var
    2. cwd/.mermaid-serve/mmd-serve.yaml
    3. Built-in defaults

    Args:
        config_path: Path to config file (overrides resolution)

    Returns:
        Validated ServeConfig

    Raises:
        FileNotFoundError: If explicit config path doesn't exist
        ValueError: If YAML is invalid or validation fails
    """
    resolved_path = _resolve_config_path(config_path)

    if resolved_path is None:
        logger.debug("No config file found, using defaults")
        return ServeConfig()

    logger.debug(f"Loading config from {resolved_path}")

    raw_data = _load_yaml_file(resolved_path)
    _validate_version(raw_data, resolved_path)

    try:
        config = ServeConfig.model_validate(raw_data)
    except Exception as e:
        raise ValueError(f"Invalid configuration in {resolved_path}: {e}") from e

    config._config_dir = resolved_path.parent.resolve()

    logger.info(f"Config loaded: version {config.version}")

    return config
