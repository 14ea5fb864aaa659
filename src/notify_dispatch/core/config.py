"""Configuration system for notify-dispatch.

This module implements the main configuration schema using Pydantic for
validation, with support for environment variable resolution and fail-fast
validation with actionable error messages.
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final, Literal, Self
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from notify_dispatch.core.errors import ConfigurationError
from notify_dispatch.core.fallback import validate_provider_chain
from notify_dispatch.types import Channel, ProviderChain, TimezoneMode

__all__ = [
    "ApplicationConfig",
    "BatchSettings",
    "ConfigFileError",
    "DirectorySettings",
    "DispatchSettings",
    "EnvironmentVariableError",
    "MainConfig",
    "ProviderChainConfig",
    "format_validation_error",
    "TimezoneSettings",
    "load_main_config",
    "load_request_file",
    "resolve_env_var",
    "resolve_env_vars_in_dict",
]

# Matches ${VARIABLE_NAME} where VARIABLE_NAME contains upper-case letters, digits, and underscores
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")


class ProviderChainConfig(BaseModel):
    """Primary provider plus ordered fallbacks for one channel."""

    primary: Annotated[str, Field(description="Provider tried first")]
    fallbacks: Annotated[
        list[str],
        Field(description="Providers tried in order after the primary fails"),
    ] = []

    @model_validator(mode="after")
    def validate_chain(self) -> Self:
        """Reject empty primaries and duplicate provider names."""
        if not validate_provider_chain(self.to_chain()):
            msg = (
                "Provider chain must have a non-empty primary and no duplicate "
                f"provider names, got: {[self.primary, *self.fallbacks]}"
            )
            raise ValueError(msg)
        return self

    def to_chain(self) -> ProviderChain:
        return ProviderChain(primary=self.primary, fallbacks=tuple(self.fallbacks))


class DispatchSettings(BaseModel):
    """Configuration for channel routing and default provider chains.

    Every channel must be routed to a queue; the processor refuses to start
    with an incomplete routing table.
    """

    queues: Annotated[
        dict[Channel, str],
        Field(description="Queue name per channel"),
    ] = {channel: channel.value for channel in Channel}
    provider_chains: Annotated[
        dict[Channel, ProviderChainConfig],
        Field(description="Default provider chain per channel"),
    ] = {}
    parallel_recipients: Annotated[
        bool,
        Field(description="Process multi-send recipients concurrently"),
    ] = True
    delivery_mode: Annotated[
        Literal["queued", "direct"],
        Field(
            description=(
                "queued: persist and enqueue for delivery workers; "
                "direct: run provider chains inline"
            ),
        ),
    ] = "queued"

    @field_validator("queues", mode="after")
    @classmethod
    def validate_queue_coverage(cls, v: dict[Channel, str]) -> dict[Channel, str]:
        """Validate that every channel has a queue.

        Raises:
            ValueError: If a channel is missing or a queue name is blank
        """
        missing = [channel.value for channel in Channel if channel not in v]
        if missing:
            msg = f"Queue routing is missing channel(s): {', '.join(missing)}"
            raise ValueError(msg)
        blank = [channel.value for channel, name in v.items() if not name.strip()]
        if blank:
            msg = f"Queue name must not be empty for channel(s): {', '.join(blank)}"
            raise ValueError(msg)
        return v

    def chains(self) -> dict[Channel, ProviderChain]:
        """Return configured provider chains as domain objects."""
        return {channel: chain.to_chain() for channel, chain in self.provider_chains.items()}


class TimezoneSettings(BaseModel):
    """Defaults applied when a scheduled multi-send names no timezone policy."""

    default_mode: Annotated[
        TimezoneMode,
        Field(description="Timezone resolution mode"),
    ] = TimezoneMode.USER
    default_timezone: Annotated[
        str | None,
        Field(description="IANA zone used by client and mixed modes"),
    ] = None

    @field_validator("default_timezone", mode="after")
    @classmethod
    def validate_zone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            _ = ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            msg = f"Unknown IANA timezone: {v}"
            raise ValueError(msg) from exc
        return v

    @model_validator(mode="after")
    def validate_client_mode(self) -> Self:
        if self.default_mode is TimezoneMode.CLIENT and self.default_timezone is None:
            msg = "default_timezone is required when default_mode is 'client'"
            raise ValueError(msg)
        return self


class BatchSettings(BaseModel):
    """Configuration for batch token issuance."""

    token_bytes: Annotated[
        int,
        Field(
            ge=16,
            description="Random bytes used to generate each batch token",
        ),
    ] = 32


class DirectorySettings(BaseModel):
    """Configuration for the HTTP user directory."""

    base_url: Annotated[
        str | None,
        Field(description="User directory base URL; unset uses an empty in-memory directory"),
    ] = None
    timeout_seconds: Annotated[
        float,
        Field(gt=0, description="Request timeout for directory lookups"),
    ] = 5.0


class ApplicationConfig(BaseModel):
    """Configuration for application-level settings."""

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    syslog_enabled: Annotated[
        bool,
        Field(description="Enable syslog integration"),
    ] = False


class MainConfig(BaseModel):
    """Main application configuration schema.

    Top-level configuration container aggregating all configuration sections:
    - dispatch: Channel routing and provider chains
    - timezone: Timezone resolution defaults
    - batch: Batch token settings
    - directory: User directory connection
    - application: Application-level settings
    """

    dispatch: Annotated[
        DispatchSettings,
        Field(description="Channel routing and provider chain configuration"),
    ] = DispatchSettings()
    timezone: Annotated[
        TimezoneSettings,
        Field(description="Timezone resolution configuration"),
    ] = TimezoneSettings()
    batch: Annotated[
        BatchSettings,
        Field(description="Batch configuration"),
    ] = BatchSettings()
    directory: Annotated[
        DirectorySettings,
        Field(description="User directory configuration"),
    ] = DirectorySettings()
    application: Annotated[
        ApplicationConfig,
        Field(description="Application-level configuration"),
    ] = ApplicationConfig()


class EnvironmentVariableError(ConfigurationError):
    """Raised when a referenced environment variable is not set.

    The message names the variable, never its value.
    """


class ConfigFileError(ConfigurationError):
    """Raised when a configuration or request file cannot be loaded or validated."""


def resolve_env_var(value: str) -> str:
    """Resolve ``${VARIABLE_NAME}`` references in a string value.

    Raises:
        EnvironmentVariableError: If a referenced environment variable is missing

    Examples:
        >>> os.environ["TEST_VAR"] = "secret_value"
        >>> resolve_env_var("prefix_${TEST_VAR}_suffix")
        'prefix_secret_value_suffix'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)

        if env_value is None:
            msg = (
                f"Required environment variable '{var_name}' is not set. "
                f"Please set this variable before starting the application."
            )
            raise EnvironmentVariableError(msg)

        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def _resolve_item(value: object) -> object:
    if isinstance(value, str):
        return resolve_env_var(value)
    if isinstance(value, dict):
        # YAML data is untyped at load time; validated by Pydantic after resolution
        return resolve_env_vars_in_dict(value)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    if isinstance(value, list):
        return [_resolve_item(item) for item in value]  # pyright: ignore[reportUnknownVariableType]  # YAML list items
    return value


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Recursively resolve environment variables in a dictionary.

    Traverses nested dictionaries and lists, resolving references in string
    values. Non-string values are preserved as-is.

    Raises:
        EnvironmentVariableError: If a referenced environment variable is missing
    """
    return {key: _resolve_item(value) for key, value in data.items()}


def _load_yaml_mapping(path: Path, *, label: str) -> dict[str, object]:
    if not path.exists():
        msg = (
            f"{label} file not found: {path}\n"
            f"Please create a {label.lower()} file at this location."
        )
        raise ConfigFileError(msg)

    try:
        with path.open("r") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse YAML {label.lower()} file: {path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigFileError(msg) from e
    except OSError as e:
        msg = f"Failed to read {label.lower()} file: {path}\nError: {e}\nPlease check file permissions."
        raise ConfigFileError(msg) from e

    if raw_data is None:
        return {}
    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid {label.lower()} file format: {path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}"
        )
        raise ConfigFileError(msg)

    try:
        return resolve_env_vars_in_dict(raw_data)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    except EnvironmentVariableError as e:
        msg = (
            f"Environment variable resolution failed in: {path}\n"
            f"{e.message}\n"
            f"Set the required environment variable before starting the application."
        )
        raise ConfigFileError(msg) from e


def format_validation_error(error: ValidationError, *, header: str, path: Path) -> str:
    """Format pydantic validation errors as field-level diagnostics."""
    error_lines = [header, ""]
    for item in error.errors():
        field_path = " → ".join(str(loc) for loc in item["loc"])
        error_lines.append(f"  Field: {field_path}")
        error_lines.append(f"  Error: {item['msg']}")
        error_lines.append(f"  Type: {item['type']}")
        error_lines.append("")

    error_lines.append(f"Configuration file: {path}")
    error_lines.append("Please fix the above errors and try again.")
    return "\n".join(error_lines)


def load_main_config(config_path: Path) -> MainConfig:
    """Load and validate the main configuration from a YAML file.

    Args:
        config_path: Path to main configuration YAML file

    Returns:
        Validated MainConfig instance

    Raises:
        ConfigFileError: If the file cannot be loaded, references a missing
            environment variable, or fails schema validation

    Examples:
        >>> config = load_main_config(Path("config/notify-dispatch.yaml"))
        >>> config.dispatch.delivery_mode
        'queued'
    """
    resolved_data = _load_yaml_mapping(config_path, label="Configuration")

    try:
        return MainConfig.model_validate(resolved_data)
    except ValidationError as e:
        msg = format_validation_error(e, header="Configuration validation failed:", path=config_path)
        raise ConfigFileError(msg) from e


def load_request_file(request_path: Path) -> dict[str, object]:
    """Load a YAML dispatch request with environment variables resolved.

    Shape validation is left to the request models in the CLI.
    """
    return _load_yaml_mapping(request_path, label="Request")
