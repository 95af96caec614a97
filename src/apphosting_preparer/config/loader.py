"""Configuration loading for the preparer.

Covers the two configuration sources of a run: apphosting.yaml files in
the user's workspace, and PREPARER_* environment variables that stand in
for invocation flags.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from apphosting_preparer.config.envvars import merge_env_vars, validate_user_env_vars
from apphosting_preparer.config.models import AppHostingConfig, PreparerArgs
from apphosting_preparer.core.errors import FahError, Reason
from apphosting_preparer.core.logging import get_logger

logger = get_logger(__name__)

ENV_PREFIX = "PREPARER_"


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge two dictionaries one level deep, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = {**result[key], **value}
        else:
            result[key] = value
    return result


def environment_yaml_path(base_path: Path, environment_name: str) -> Path:
    """Get the path of the environment specific file next to apphosting.yaml.

    Example:
        /workspace/apphosting.yaml + "staging" -> /workspace/apphosting.staging.yaml
    """
    return base_path.with_name(f"apphosting.{environment_name}.yaml")


def load_apphosting_yaml(path: Path) -> AppHostingConfig:
    """Load and validate a single apphosting.yaml file.

    A missing or empty file is an empty configuration.

    Args:
        path: Path to the file

    Returns:
        Parsed configuration

    Raises:
        FahError: If the file is not valid YAML or doesn't match the schema
    """
    if not path.exists():
        logger.info("No apphosting.yaml found, using defaults", path=str(path))
        return AppHostingConfig()

    logger.info("Loading apphosting.yaml", path=str(path))

    try:
        with path.open("r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise FahError(
            Reason.INVALID_APPHOSTING_YAML, f"Invalid YAML in {path.name}: {e}"
        ) from e

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise FahError(Reason.INVALID_APPHOSTING_YAML, f"{path.name} must contain a YAML mapping")

    try:
        config = AppHostingConfig.model_validate(data)
    except ValidationError as e:
        raise FahError(
            Reason.INVALID_APPHOSTING_YAML, f"Invalid {path.name}: {_format_validation_error(e)}"
        ) from e

    validate_user_env_vars(config.env, path.name)
    return config


def merge_configs(base: AppHostingConfig, override: AppHostingConfig) -> AppHostingConfig:
    """Overlay an environment specific configuration onto the base one.

    Fields of runConfig, scripts and outputFiles set in override replace
    those in base; env is merged by variable name with override winning.
    """
    data = _merge_dicts(_dump(base), _dump(override))
    data["env"] = [
        var.model_dump(mode="json", by_alias=True, exclude_none=True)
        for var in merge_env_vars(base.env, override.env)
    ]
    try:
        return AppHostingConfig.model_validate(data)
    except ValidationError as e:
        raise FahError(
            Reason.INVALID_APPHOSTING_YAML,
            f"Invalid merged configuration: {_format_validation_error(e)}",
        ) from e


def load_config(apphosting_yaml_path: str, environment_name: str = "") -> AppHostingConfig:
    """Load the user's configuration, including the environment specific overlay.

    Args:
        apphosting_yaml_path: Path to apphosting.yaml, or "" if there is none
        environment_name: Name of the environment tied to the build (optional)

    Returns:
        Merged and validated configuration

    Raises:
        FahError: If any file is invalid
    """
    if not apphosting_yaml_path:
        return AppHostingConfig()

    base_path = Path(apphosting_yaml_path)
    config = load_apphosting_yaml(base_path)

    if environment_name:
        env_path = environment_yaml_path(base_path, environment_name)
        if env_path.exists():
            logger.info("Applying environment specific configuration", environment=environment_name)
            config = merge_configs(config, load_apphosting_yaml(env_path))

    return config


def dump_apphosting_yaml(config: AppHostingConfig) -> str:
    """Serialize a configuration back to apphosting.yaml form."""
    return yaml.safe_dump(_dump(config), default_flow_style=False, sort_keys=False)


def _dump(config: AppHostingConfig) -> dict[str, Any]:
    data = config.model_dump(mode="json", by_alias=True, exclude_none=True)
    if not data.get("env"):
        data.pop("env", None)
    return data


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for error in e.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg', '')}" if location else error.get("msg", ""))
    return "; ".join(parts)


def get_env_overrides() -> PreparerArgs:
    """Get invocation flag values from environment variables.

    Environment variables are prefixed with PREPARER_ and named after the
    flag in upper case (e.g., PREPARER_PROJECT_ID).

    Returns:
        PreparerArgs populated from environment variables
    """

    def get_str(key: str, default: str = "") -> str:
        return os.getenv(f"{ENV_PREFIX}{key.upper()}", default)

    return PreparerArgs(
        apphosting_yaml_filepath=get_str("apphostingyaml_filepath"),
        workspace_path=get_str("workspace_path", "/workspace"),
        project_id=get_str("project_id"),
        environment_name=get_str("environment_name"),
        apphosting_yaml_output_filepath=get_str("apphostingyaml_output_filepath"),
        dot_env_output_filepath=get_str("dot_env_output_filepath"),
        backend_root_directory=get_str("backend_root_directory"),
        buildpack_config_output_filepath=get_str("buildpack_config_output_filepath"),
        firebase_config=get_str("firebase_config"),
        firebase_webapp_config=get_str("firebase_webapp_config"),
        server_side_env_vars=get_str("server_side_env_vars"),
    )
