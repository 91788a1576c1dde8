"""
Configuration loading utilities.

This module reads the YAML deployment file, resolves relative paths against
the directory of that file, merges the container environment and builds the
immutable DeploymentSpec.

Environment Merge Order:
    1. environmentFile (.env) - base values, parsed with python-dotenv
    2. environmentVariables (YAML map) - override .env entries by key

Usage:
    from cloudship.core.config_loader import load_deployment_spec

    spec = load_deployment_spec(Path("deploy/aws.yaml"), backend="aws-fargate")
"""

import logging
import re
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import dotenv_values

from .. import constants as CONSTANTS
from .context import DeploymentSpec
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_SENSITIVE_WORDS = ("password", "secret", "token", "key")
_HEX_PATTERN = re.compile(r"[0-9a-f]{32,}")
_BASE64_PATTERN = re.compile(r"[a-z0-9+/]{40,}={0,2}")
_RANDOM_PATTERN = re.compile(r"[A-Za-z0-9+/]{64,}")


def _load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """
    Load a YAML file and return its contents as a dictionary.

    Raises:
        ConfigurationError: If the file is missing, unparsable or not a mapping
    """
    if not file_path.exists():
        raise ConfigurationError("Config file not found", config_file=str(file_path))

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file: {e}", config_file=str(file_path))

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Config file must contain a mapping at the top level",
            config_file=str(file_path)
        )
    return data


def _resolve_path(value: str, base_dir: Path) -> Path:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path.resolve()


def _as_int(raw: Dict[str, Any], key: str, default: int, config_file: Path) -> int:
    value = raw.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Field '{key}' must be an integer, got {value!r}",
            config_file=str(config_file)
        )


def _as_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def load_environment(
    env_file: Optional[Path],
    overrides: Optional[Mapping[str, Any]] = None
) -> Dict[str, str]:
    """
    Merge the container environment.

    Values from the .env file form the base; entries of the explicit map
    override them by key. A missing .env file is logged and ignored.

    Args:
        env_file: Optional path to a .env-style file
        overrides: Optional explicit environment map

    Returns:
        Merged environment with string values
    """
    merged: Dict[str, str] = {}

    if env_file is not None:
        if env_file.is_file():
            file_values = dotenv_values(env_file)
            merged.update({k: v for k, v in file_values.items() if v is not None})
            logger.info(f"Loaded {len(merged)} environment variables from {env_file}")
        else:
            logger.warning(f"Environment file not found: {env_file}")

    for key, value in (overrides or {}).items():
        merged[str(key)] = "" if value is None else str(value)

    return merged


def is_sensitive_value(value: str) -> bool:
    """Heuristic for values that look like credentials."""
    if value is None or len(value) < 8:
        return False
    lower = value.lower()
    return (
        _HEX_PATTERN.search(lower) is not None
        or _BASE64_PATTERN.search(lower) is not None
        or _RANDOM_PATTERN.search(value) is not None
        or any(word in lower for word in _SENSITIVE_WORDS)
    )


def mask_value(value: Optional[str]) -> str:
    """
    Render an environment value for logging.

    Sensitive-looking values show the first and last four characters only;
    other values are truncated to 30 characters.

    Example:
        >>> mask_value("my-secret-password")
        "my-s***word"
        >>> mask_value("info")
        "info"
    """
    if value is None:
        return "null"
    if is_sensitive_value(value):
        if len(value) <= 8:
            return "***"
        return f"{value[:4]}***{value[-4:]}"
    if len(value) <= 30:
        return value
    return f"{value[:30]}..."


def log_environment(environment: Mapping[str, str]) -> None:
    if not environment:
        return
    logger.info(f"Container environment ({len(environment)} variables):")
    for key in sorted(environment):
        logger.info(f"  {key}={mask_value(environment[key])}")


def load_deployment_spec(config_path: Path, backend: Optional[str] = None) -> DeploymentSpec:
    """
    Load the YAML deployment file into a DeploymentSpec.

    Args:
        config_path: Path to the YAML file
        backend: Backend selected on the command line; wins over the file

    Returns:
        Immutable DeploymentSpec

    Raises:
        ConfigurationError: If the file is missing or invalid
    """
    config_path = Path(config_path).expanduser().resolve()
    raw = _load_yaml_file(config_path)
    base_dir = config_path.parent

    for field_name in CONSTANTS.REQUIRED_CONFIG_FIELDS:
        if not raw.get(field_name):
            raise ConfigurationError(
                f"Missing required field '{field_name}'",
                config_file=str(config_path)
            )

    file_backend = raw.get("backend")
    if backend and file_backend and file_backend != backend:
        logger.warning(
            f"Config declares backend '{file_backend}' but '{backend}' was requested; using '{backend}'"
        )
    resolved_backend = backend or file_backend
    if not resolved_backend:
        raise ConfigurationError("No backend given on the command line or in the config", config_file=str(config_path))

    service_name = str(raw["serviceName"])
    if not re.match(CONSTANTS.SERVICE_NAME_PATTERN, service_name):
        raise ConfigurationError(
            f"Invalid serviceName '{service_name}': use 2-48 lowercase letters, digits or hyphens, "
            f"starting with a letter",
            config_file=str(config_path)
        )

    env_file = raw.get("environmentFile")
    env_overrides = raw.get("environmentVariables") or {}
    if not isinstance(env_overrides, dict):
        raise ConfigurationError("Field 'environmentVariables' must be a mapping", config_file=str(config_path))

    environment = load_environment(
        _resolve_path(env_file, base_dir) if env_file else None,
        env_overrides
    )

    options = {k: v for k, v in raw.items() if k not in CONSTANTS.COMMON_CONFIG_FIELDS}

    spec = DeploymentSpec(
        backend=resolved_backend,
        service_name=service_name,
        region=str(raw["region"]),
        dockerfile_path=_resolve_path(raw.get("dockerfilePath", CONSTANTS.DEFAULT_DOCKERFILE), base_dir),
        build_context=_resolve_path(raw.get("buildContext", CONSTANTS.DEFAULT_BUILD_CONTEXT), base_dir),
        container_port=_as_int(raw, "containerPort", CONSTANTS.DEFAULT_CONTAINER_PORT, config_path),
        cpu=_as_optional_str(raw.get("cpu")),
        memory=_as_optional_str(raw.get("memory")),
        desired_count=_as_int(raw, "desiredCount", CONSTANTS.DEFAULT_DESIRED_COUNT, config_path),
        health_check_path=str(raw.get("healthCheckPath", CONSTANTS.DEFAULT_HEALTH_CHECK_PATH)),
        health_check_interval_seconds=_as_int(
            raw, "healthCheckIntervalSeconds", CONSTANTS.DEFAULT_HEALTH_CHECK_INTERVAL_SECONDS, config_path
        ),
        enable_https=bool(raw.get("enableHttps", False)),
        environment=environment,
        options=options,
        config_path=config_path,
    )

    logger.debug(f"Loaded deployment spec for '{spec.service_name}' ({spec.backend}, {spec.region})")
    log_environment(spec.environment)
    return spec
