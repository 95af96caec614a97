"""Preparation routine for App Hosting backend builds.

Turns the user's apphosting.yaml plus platform inputs into the files the
rest of the build consumes:

* the validated apphosting.yaml, with secret references pinned;
* a .env file holding every build-time variable with secrets dereferenced;
* a JSON buildpack config with the build and run command overrides.
"""

import json
from typing import Any

from apphosting_preparer.config.envvars import (
    firebase_env_vars,
    merge_env_vars,
    parse_server_side_env_vars,
    render_dotenv,
)
from apphosting_preparer.config.loader import dump_apphosting_yaml, load_config
from apphosting_preparer.config.models import AppHostingConfig, EnvVar, PreparationOptions
from apphosting_preparer.core.logging import get_logger
from apphosting_preparer.system.filesystem import write_output_file
from apphosting_preparer.system.secrets import (
    SecretClient,
    access_secret_value,
    normalize_secret_reference,
    pin_secret_version,
)

logger = get_logger(__name__)


async def prepare(options: PreparationOptions) -> None:
    """Run all preparation steps for one build.

    Args:
        options: Inputs of the run

    Raises:
        FahError: If user configuration is invalid or a secret can't be read
        Exception: For any unexpected failure
    """
    config = load_config(options.apphosting_yaml_path, options.environment_name)

    env = config.env
    if options.server_side_env_vars_enabled:
        server_env = parse_server_side_env_vars(options.server_side_env_vars)
        logger.info("Using server side environment variables", count=len(server_env))
        env = merge_env_vars(env, server_env)

    env = merge_env_vars(
        env, firebase_env_vars(options.firebase_config, options.firebase_webapp_config)
    )
    env = await _pin_secrets(options.secret_client, env, options.project_id)
    config = config.model_copy(update={"env": env})

    dotenv_values = await _build_time_values(options.secret_client, env)

    write_output_file(options.apphosting_yaml_output_file_path, dump_apphosting_yaml(config))
    write_output_file(options.env_dereferenced_output_file_path, render_dotenv(dotenv_values))
    write_output_file(
        options.buildpack_config_output_file_path,
        json.dumps(buildpack_config(config), indent=2),
    )

    logger.info(
        "Prepared build configuration",
        env_vars=len(env),
        build_env_vars=len(dotenv_values),
        environment=options.environment_name or "-",
    )


async def _pin_secrets(client: SecretClient, env: list[EnvVar], project_id: str) -> list[EnvVar]:
    pinned = []
    for var in env:
        if var.secret is not None:
            name = normalize_secret_reference(var.secret, project_id)
            name = await pin_secret_version(client, name)
            var = var.model_copy(update={"secret": name})
        pinned.append(var)
    return pinned


async def _build_time_values(client: SecretClient, env: list[EnvVar]) -> dict[str, str]:
    values: dict[str, str] = {}
    for var in env:
        if not var.available_at_build():
            continue
        if var.secret is not None:
            values[var.variable] = await access_secret_value(client, var.secret)
        else:
            values[var.variable] = var.value or ""
    return values


def buildpack_config(config: AppHostingConfig) -> dict[str, Any]:
    """Build the buildpack config from the scripts and outputFiles sections."""
    result: dict[str, Any] = {}
    if config.scripts is not None:
        if config.scripts.build_command:
            result["buildCommand"] = config.scripts.build_command
        if config.scripts.run_command:
            result["runCommand"] = config.scripts.run_command
    if config.output_files is not None and config.output_files.server_app is not None:
        result["outputFiles"] = list(config.output_files.server_app.include)
    return result
