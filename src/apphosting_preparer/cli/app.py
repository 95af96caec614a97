"""Main CLI application for the App Hosting preparer."""

from typing import Annotated

import typer

from apphosting_preparer.cli.commands.prepare import run_prepare
from apphosting_preparer.config.loader import get_env_overrides
from apphosting_preparer.config.models import PreparerArgs
from apphosting_preparer.core.logging import setup_logging

app = typer.Typer(
    name="apphosting-preparer",
    help="Run preprocessing steps for App Hosting backend builds",
    add_completion=False,
)


@app.command()
def main(
    apphostingyaml_filepath: Annotated[
        str | None,
        typer.Option("--apphostingyaml_filepath", help="File path to user defined apphosting.yaml"),
    ] = None,
    workspace_path: Annotated[
        str | None,
        typer.Option("--workspace_path", help="File path to the workspace directory"),
    ] = None,
    project_id: Annotated[
        str | None,
        typer.Option("--project_id", help="User's GCP project ID"),
    ] = None,
    environment_name: Annotated[
        str | None,
        typer.Option(
            "--environment_name", help="Environment name tied to the build, if applicable"
        ),
    ] = None,
    apphostingyaml_output_filepath: Annotated[
        str | None,
        typer.Option(
            "--apphostingyaml_output_filepath",
            help="File path to write the validated and formatted apphosting.yaml to",
        ),
    ] = None,
    dot_env_output_filepath: Annotated[
        str | None,
        typer.Option("--dot_env_output_filepath", help="File path to write the output .env file to"),
    ] = None,
    backend_root_directory: Annotated[
        str | None,
        typer.Option(
            "--backend_root_directory",
            help="File path to the application directory specified by the user",
        ),
    ] = None,
    buildpack_config_output_filepath: Annotated[
        str | None,
        typer.Option(
            "--buildpack_config_output_filepath",
            help="File path to write the buildpack config to",
        ),
    ] = None,
    firebase_config: Annotated[
        str | None,
        typer.Option(
            "--firebase_config", help="JSON serialized Firebase config used by Firebase Admin SDK"
        ),
    ] = None,
    firebase_webapp_config: Annotated[
        str | None,
        typer.Option(
            "--firebase_webapp_config",
            help="JSON serialized Firebase config used by Firebase Client SDK",
        ),
    ] = None,
    server_side_env_vars: Annotated[
        str | None,
        typer.Option(
            "--server_side_env_vars",
            help=(
                "List of server side env vars to set. An empty string indicates server side "
                "environment variables are disabled. Any other value indicates enablement and "
                "to use these vars over yaml defined env vars."
            ),
        ),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging")] = False,
    trace: Annotated[
        bool, typer.Option("--trace", help="Enable trace logging (most verbose)")
    ] = False,
) -> None:
    """Validate apphosting.yaml and write the derived build configuration."""
    setup_logging(verbose=verbose, trace=trace)

    # Flags win over PREPARER_* environment variables. An explicitly empty
    # flag is a value too: --server_side_env_vars "" keeps them disabled.
    env_overrides = get_env_overrides()

    def pick(flag: str | None, env_value: str) -> str:
        return env_value if flag is None else flag

    args = PreparerArgs(
        apphosting_yaml_filepath=pick(
            apphostingyaml_filepath, env_overrides.apphosting_yaml_filepath
        ),
        workspace_path=pick(workspace_path, env_overrides.workspace_path),
        project_id=pick(project_id, env_overrides.project_id),
        environment_name=pick(environment_name, env_overrides.environment_name),
        apphosting_yaml_output_filepath=pick(
            apphostingyaml_output_filepath, env_overrides.apphosting_yaml_output_filepath
        ),
        dot_env_output_filepath=pick(
            dot_env_output_filepath, env_overrides.dot_env_output_filepath
        ),
        backend_root_directory=pick(
            backend_root_directory, env_overrides.backend_root_directory or ""
        ),
        buildpack_config_output_filepath=pick(
            buildpack_config_output_filepath, env_overrides.buildpack_config_output_filepath
        ),
        firebase_config=pick(firebase_config, env_overrides.firebase_config),
        firebase_webapp_config=pick(firebase_webapp_config, env_overrides.firebase_webapp_config),
        server_side_env_vars=pick(server_side_env_vars, env_overrides.server_side_env_vars),
    )

    run_prepare(args)


if __name__ == "__main__":
    app()
