"""Configuration for the Crowd authentication strategy."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import structlog
import yaml

from .errors import ConfigurationError

logger = structlog.get_logger()

DEFAULT_PROVIDER_NAME = "atlassian-crowd"
DEFAULT_TIMEOUT_SECONDS = 10.0

_BOOL_FIELDS = ("pass_request_to_callback", "retrieve_group_memberships")

# Option names as used by host frameworks, mapped onto CrowdConfig fields
_OPTION_ALIASES = {
    "providerUrl": "provider_url",
    "crowdServer": "provider_url",
    "applicationId": "application_id",
    "crowdApplication": "application_id",
    "applicationSecret": "application_secret",
    "crowdApplicationPassword": "application_secret",
    "usernameField": "username_field",
    "passwordField": "password_field",
    "passReqToCallback": "pass_request_to_callback",
    "retrieveGroupMemberships": "retrieve_group_memberships",
    "providerName": "provider_name",
}


@dataclass(frozen=True)
class CrowdConfig:
    """Crowd provider and credential extraction settings."""

    provider_url: str
    application_id: str = ""
    application_secret: str = ""
    username_field: str = "username"
    password_field: str = "password"
    pass_request_to_callback: bool = False
    retrieve_group_memberships: bool = False
    provider_name: str = DEFAULT_PROVIDER_NAME
    timeout: float = DEFAULT_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        if not self.provider_url:
            raise ConfigurationError(
                "atlassian-crowd strategy requires a crowd server url"
            )
        if self.timeout <= 0:
            raise ConfigurationError("timeout must be a positive number of seconds")

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> "CrowdConfig":
        """Build a config from a mapping of camelCase or snake_case option names."""
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}

        for key, value in options.items():
            name = _OPTION_ALIASES.get(key, key)
            if name not in known:
                logger.warning("Ignoring unknown Crowd option", option=key)
                continue
            if value is None:
                continue
            values[name] = value

        # Empty field names fall back to the defaults
        for name in ("username_field", "password_field"):
            if not values.get(name, True):
                values.pop(name)

        for name in _BOOL_FIELDS:
            if name in values:
                values[name] = _as_bool(name, values[name])

        if "timeout" in values:
            values["timeout"] = _as_seconds("timeout", values["timeout"])

        if not values.get("provider_url"):
            raise ConfigurationError(
                "atlassian-crowd strategy requires a crowd server url"
            )

        return cls(**values)


def _as_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


def _as_seconds(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return _as_bool(name, value)


def load_config_from_env() -> CrowdConfig:
    """Build a config from CROWD_* environment variables."""
    timeout = os.getenv("CROWD_TIMEOUT_SECONDS")
    timeout_seconds = (
        _as_seconds("CROWD_TIMEOUT_SECONDS", timeout)
        if timeout
        else DEFAULT_TIMEOUT_SECONDS
    )

    return CrowdConfig(
        provider_url=os.getenv("CROWD_URL", ""),
        application_id=os.getenv("CROWD_APPLICATION", ""),
        application_secret=os.getenv("CROWD_APPLICATION_PASSWORD", ""),
        username_field=os.getenv("CROWD_USERNAME_FIELD") or "username",
        password_field=os.getenv("CROWD_PASSWORD_FIELD") or "password",
        retrieve_group_memberships=_env_bool("CROWD_RETRIEVE_GROUPS"),
        provider_name=os.getenv("CROWD_PROVIDER_NAME") or DEFAULT_PROVIDER_NAME,
        timeout=timeout_seconds,
    )


class ConfigLoader:
    """Loads the Crowd strategy configuration from a YAML file."""

    def __init__(self, config_file: str = "/etc/crowd-auth/config.yaml"):
        self.config_file = Path(config_file)

    def load(self) -> CrowdConfig | None:
        """Load the ``crowd`` section of the YAML file.

        Returns:
            The parsed config, or None when the file does not exist

        Raises:
            ConfigurationError: If the file cannot be parsed or lacks a crowd section
        """
        if not self.config_file.exists():
            logger.warning("Crowd config file does not exist", file=str(self.config_file))
            return None

        try:
            with open(self.config_file) as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.error(
                "Failed to parse Crowd config file",
                file=str(self.config_file),
                error=str(e),
            )
            raise ConfigurationError(f"Invalid YAML in {self.config_file}") from e

        if not isinstance(content, dict) or not isinstance(content.get("crowd"), dict):
            raise ConfigurationError(
                f"{self.config_file} does not contain a 'crowd' mapping"
            )

        config = CrowdConfig.from_options(content["crowd"])
        logger.info(
            "Loaded Crowd config",
            file=str(self.config_file),
            provider_url=config.provider_url,
            retrieve_group_memberships=config.retrieve_group_memberships,
        )
        return config


def get_config_loader() -> ConfigLoader:
    """Get configured config loader instance."""
    config_file = os.getenv("CROWD_CONFIG_PATH", "/etc/crowd-auth/config.yaml")
    return ConfigLoader(config_file)
