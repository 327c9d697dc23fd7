"""Configuration loading from YAML files with environment variable support."""

import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import dotenv_values

from .core.exceptions import ConfigurationError

logger = logging.getLogger("turnproxy")

# Default path to the config file (relative to project root)
DEFAULT_CONFIG_PATH = "configs/config_default.yaml"

_ENV_PATTERN = re.compile(
    r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}|\$([A-Za-z_][A-Za-z0-9_]*)"
)


def resolve_config_path(path: str) -> Path:
    """Resolve config path relative to project root if needed."""
    if Path(path).is_absolute():
        return Path(path)
    project_root = Path(__file__).parent.parent
    return project_root / path


def resolve_env_path(config_path: Path, env_path: str | None = None) -> Path:
    """Resolve the env file path for a config file.

    ``configs/config_default.yaml`` pairs with ``configs/.env_default``.
    """
    if env_path:
        return resolve_config_path(env_path)
    stem = config_path.stem
    if stem.startswith("config_"):
        suffix = stem[len("config_"):]
        return config_path.with_name(f".env_{suffix}")
    return config_path.with_name(".env")


def load_env_values(env_path: Path) -> dict[str, str]:
    """Load environment values from a .env file without mutating os.environ."""
    if not env_path.exists():
        return {}
    raw_values = dotenv_values(env_path)
    return {key: value for key, value in raw_values.items() if value is not None}


def load_config(
    path: str | None = None,
    env_path: str | None = None,
    substitute_env: bool = True,
) -> dict:
    """Load configuration from a YAML file.

    Args:
        path: Path to the config file. Defaults to TURNPROXY_CONFIG,
              or configs/config_default.yaml in the project root.
        env_path: Optional .env path override for env substitution.
        substitute_env: Whether to substitute environment variables in the config.

    Returns:
        Parsed configuration dictionary.

    Raises:
        ConfigurationError: If the file is missing or is not a YAML mapping.
    """
    if path is None:
        path = os.getenv("TURNPROXY_CONFIG") or DEFAULT_CONFIG_PATH

    config_path = resolve_config_path(path)
    logger.info("Loading configuration from %s", config_path)

    if not config_path.exists():
        logger.error("Config file not found: %s", config_path)
        raise ConfigurationError(f"Config file not found: {config_path}", code="config_not_found")

    env_values: dict[str, str] = {}
    if substitute_env:
        env_file = resolve_env_path(config_path, env_path)
        if env_file.exists():
            logger.info("Loading environment variables from %s", env_file)
            env_values = load_env_values(env_file)

    with config_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"Invalid YAML in {config_path}: {exc}", code="invalid_config"
            ) from exc

    if not isinstance(data, Mapping):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping", code="invalid_config"
        )

    if substitute_env:
        data = _substitute_env_vars(data, env_values)

    logger.info("Configuration loaded successfully from %s", config_path)
    return dict(data)


def _lookup(name: str, env_values: Mapping[str, str]) -> str | None:
    value = env_values.get(name)
    if value is None:
        value = os.getenv(name)
    return value


def _substitute_env_vars(
    obj: Any, env_values: Mapping[str, str] | None = None, key_path: str = ""
) -> Any:
    """Recursively substitute environment variables in configuration values.

    Placeholders are ``${VAR}``, ``${VAR:-fallback}`` or ``$VAR``. Values from
    ``env_values`` win over the process environment. A variable that is unset
    and has no fallback keeps its placeholder, so settings can treat the value
    as missing; the warning names the config key it appeared under.
    """
    env_values = env_values or {}

    if isinstance(obj, dict):
        return {
            key: _substitute_env_vars(value, env_values, f"{key_path}.{key}" if key_path else str(key))
            for key, value in obj.items()
        }
    if isinstance(obj, list):
        return [
            _substitute_env_vars(item, env_values, f"{key_path}[{position}]")
            for position, item in enumerate(obj)
        ]
    if not isinstance(obj, str):
        return obj

    def replace_var(match: re.Match) -> str:
        name = match.group(1) or match.group(3)
        value = _lookup(name, env_values)
        if value is not None:
            return value
        fallback = match.group(2)
        if fallback is not None:
            return fallback
        logger.warning(
            "Config key '%s' references unset environment variable '%s'; "
            "keeping the placeholder",
            key_path or "<root>",
            name,
        )
        return match.group(0)

    return _ENV_PATTERN.sub(replace_var, obj)
