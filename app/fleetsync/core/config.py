"""Client configuration file I/O.

The client reads a single TOML file describing which catalog server and
distribution points to use and how to talk to the local system.
"""

import socket
import tomllib
from pathlib import Path
from typing import Annotated, Any

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from fleetsync.core.paths import get_config_path
from fleetsync.core.store import write_atomic

DEFAULT_INSTALL_COMMAND = ["/usr/sbin/installer", "-pkg", "{path}", "-target", "/"]


class ConfigError(Exception):
    """Base exception for configuration errors."""


class ConfigNotFoundError(ConfigError):
    """Raised when the config file does not exist."""


class ConfigParseError(ConfigError):
    """Raised when the config file is not valid TOML."""


class ConfigValidationError(ConfigError):
    """Raised when the config content does not match the schema."""


class ClientConfig(BaseModel):
    """Settings for one managed machine.

    Attributes:
        server_url: Base URL of the catalog API.
        machine_id: Identifier of this machine on the server.
        connect_timeout: Seconds to wait for a connection.
        read_timeout: Seconds to wait for a response or download chunk.
        distribution_point_url: Primary base URL for package downloads.
        cloud_distribution_url: Fallback base URL, used only when allowed.
        try_cloud_distribution_point: Allow the cloud fallback.
        default_admin: Admin name recorded for unattended installs.
        auto_install_admin: Admin name recorded for auto-installs.
        expiration_notify_command: Run once per pass when titles expired.
        puppy_notify_command: Run once per pass when installs were queued.
        install_command: Installer argv; ``{path}`` is the package file.
    """

    model_config = ConfigDict(extra="forbid")

    server_url: Annotated[str, Field(description="Base URL of the catalog API")]
    machine_id: Annotated[str, Field(default_factory=socket.gethostname)]
    connect_timeout: Annotated[float, Field(gt=0)] = 10.0
    read_timeout: Annotated[float, Field(gt=0)] = 60.0
    distribution_point_url: Annotated[str, Field(description="Primary download URL")]
    cloud_distribution_url: str | None = None
    try_cloud_distribution_point: bool = False
    default_admin: str = "fleetsync"
    auto_install_admin: str = "auto-install"
    expiration_notify_command: list[str] = Field(default_factory=list)
    puppy_notify_command: list[str] = Field(default_factory=list)
    install_command: list[str] = Field(default_factory=lambda: list(DEFAULT_INSTALL_COMMAND))

    @field_validator("server_url", "distribution_point_url", "cloud_distribution_url")
    @classmethod
    def validate_url(cls, value: str | None) -> str | None:
        """Require http(s) URLs and drop trailing slashes."""
        if value is None:
            return None
        if not value.startswith(("http://", "https://")):
            msg = f"URL must start with http:// or https://: {value}"
            raise ValueError(msg)
        return value.rstrip("/")

    @field_validator("install_command")
    @classmethod
    def validate_install_command(cls, value: list[str]) -> list[str]:
        """The install command must reference the package file."""
        if not value or not any("{path}" in part for part in value):
            msg = "install_command must contain a '{path}' placeholder"
            raise ValueError(msg)
        return value

    @property
    def cloud_enabled(self) -> bool:
        """Check if the cloud distribution point may be used."""
        return self.try_cloud_distribution_point and self.cloud_distribution_url is not None


def load_config(path: Path | None = None) -> ClientConfig:
    """Load and validate the client configuration.

    Args:
        path: Config file path. If None, uses the default location.

    Returns:
        Validated ClientConfig.

    Raises:
        ConfigNotFoundError: If the file doesn't exist.
        ConfigParseError: If the TOML syntax is invalid.
        ConfigValidationError: If the content doesn't match the schema.
    """
    config_path = path or get_config_path()

    if not config_path.exists():
        raise ConfigNotFoundError(f"Config not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigParseError(f"Invalid TOML syntax: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read config: {e}") from e

    try:
        return ClientConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(f"Invalid config content: {e}") from e


def save_config(config: ClientConfig, path: Path | None = None) -> Path:
    """Write the configuration as TOML, atomically.

    Returns:
        Path where the config was saved.

    Raises:
        ConfigError: If the file cannot be written.
    """
    config_path = path or get_config_path()
    data = _config_to_dict(config)
    try:
        write_atomic(config_path, tomli_w.dumps(data).encode("utf-8"))
    except OSError as e:
        raise ConfigError(f"Failed to write config: {e}") from e
    return config_path


def require_config(config_path: Path | None = None) -> ClientConfig:
    """Load the config or exit with a helpful error message.

    Raises:
        typer.Exit: If the config cannot be loaded.
    """
    import typer

    from fleetsync.utils.formatting import print_error, print_info

    path = config_path or get_config_path()
    try:
        return load_config(path)
    except ConfigNotFoundError as e:
        print_error(f"Config not found: {path}")
        print_info("Run 'fleetsync config init --server URL --dist-point URL' first.")
        raise typer.Exit(code=1) from e
    except ConfigError as e:
        print_error(f"Failed to load config: {e}")
        raise typer.Exit(code=1) from e


def _config_to_dict(config: ClientConfig) -> dict[str, Any]:
    """Convert to a TOML-ready dict; TOML has no null so None values are dropped."""
    return {key: value for key, value in config.model_dump().items() if value is not None}
