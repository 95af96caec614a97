"""Prepare command implementation."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, NoReturn

import typer

from apphosting_preparer.config.models import PreparationOptions, PreparerArgs
from apphosting_preparer.core.context import BuildContext
from apphosting_preparer.core.errors import handle_error
from apphosting_preparer.core.logging import get_logger
from apphosting_preparer.core.preparer import prepare
from apphosting_preparer.system.filesystem import detect_apphosting_yaml_path
from apphosting_preparer.system.secrets import create_secret_client

logger = get_logger(__name__)

PathResolver = Callable[[str, str], str]
PrepareFunc = Callable[[PreparationOptions], Awaitable[None]]

# Checked in order; the first missing flag stops the run.
REQUIRED_FLAGS = (
    ("project_id", "project_id"),
    ("apphosting_yaml_output_filepath", "apphostingyaml_output_filepath"),
    ("dot_env_output_filepath", "dot_env_output_filepath"),
    ("backend_root_directory", "backend_root_directory"),
    ("buildpack_config_output_filepath", "buildpack_config_output_filepath"),
)


def fatal(message: str) -> NoReturn:
    """Log a fatal diagnostic and terminate the run with exit code 1."""
    logger.critical(message)
    raise typer.Exit(code=1)


def validate_args(args: PreparerArgs) -> None:
    """Terminate the run if a required flag is missing.

    backend_root_directory only has to be present; an empty value is fine.
    """
    for field, flag in REQUIRED_FLAGS:
        value = getattr(args, field)
        missing = value is None if field == "backend_root_directory" else not value
        if missing:
            fatal(f"--{flag} flag not specified.")


def build_options(args: PreparerArgs, secret_client: Any) -> PreparationOptions:
    """Assemble the preparation options from validated flags."""
    return PreparationOptions(
        secret_client=secret_client,
        apphosting_yaml_path=args.apphosting_yaml_filepath,
        project_id=args.project_id,
        environment_name=args.environment_name,
        apphosting_yaml_output_file_path=args.apphosting_yaml_output_filepath,
        env_dereferenced_output_file_path=args.dot_env_output_filepath,
        backend_root_directory=args.backend_root_directory or "",
        buildpack_config_output_file_path=args.buildpack_config_output_filepath,
        firebase_config=args.firebase_config,
        firebase_webapp_config=args.firebase_webapp_config,
        server_side_env_vars=args.server_side_env_vars,
    )


def run_prepare(
    args: PreparerArgs,
    *,
    client_factory: Callable[[], Any] = create_secret_client,
    resolver: PathResolver = detect_apphosting_yaml_path,
    prepare_func: PrepareFunc = prepare,
    context: BuildContext | None = None,
) -> NoReturn:
    """Execute the prepare command and exit with its outcome.

    Args:
        args: Invocation flags
        client_factory: Creates the Secret Manager client
        resolver: Finds apphosting.yaml when no path was given
        prepare_func: Preparation routine
        context: Reporter for the run outcome

    Raises:
        typer.Exit: Always; code 0 on success and 1 on any failure
    """
    validate_args(args)

    try:
        secret_client = client_factory()
    except Exception as e:
        logger.critical(f"failed to create secretmanager client: {e}")
        raise typer.Exit(code=1) from e

    ctx = context or BuildContext()

    with secret_client:
        apphosting_yaml_path = args.apphosting_yaml_filepath

        # Without an explicit apphosting.yaml path, look for one from the backend root.
        if not apphosting_yaml_path and args.backend_root_directory:
            try:
                apphosting_yaml_path = resolver(args.workspace_path, args.backend_root_directory)
            except Exception as e:
                ctx.exit(1, handle_error(e))

        options = build_options(
            args.model_copy(update={"apphosting_yaml_filepath": apphosting_yaml_path}),
            secret_client,
        )
        logger.info(
            "Starting build preparation",
            project=options.project_id,
            apphosting_yaml=options.apphosting_yaml_path or "-",
        )

        try:
            asyncio.run(prepare_func(options))
        except Exception as e:
            ctx.exit(1, handle_error(e))

        ctx.exit(0, None)
