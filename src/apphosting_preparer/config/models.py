"""Configuration models for the preparer using Pydantic."""

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

ENV_VAR_NAME_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class PreparerArgs(BaseModel):
    """Invocation flags of the preparer, parsed once at startup."""

    model_config = ConfigDict(frozen=True)

    apphosting_yaml_filepath: str = ""
    workspace_path: str = "/workspace"
    project_id: str = ""
    environment_name: str = ""
    apphosting_yaml_output_filepath: str = ""
    dot_env_output_filepath: str = ""
    # None means the flag is structurally absent; "" is a valid value.
    backend_root_directory: str | None = ""
    buildpack_config_output_filepath: str = ""
    firebase_config: str = ""
    firebase_webapp_config: str = ""
    server_side_env_vars: str = ""


class PreparationOptions(BaseModel):
    """Everything the preparation routine needs for one run.

    server_side_env_vars is significant beyond truthiness: an empty string
    disables server side environment variables, any other value enables them
    and carries the variables to use over the yaml defined ones.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    secret_client: Any
    apphosting_yaml_path: str = ""
    project_id: str
    environment_name: str = ""
    apphosting_yaml_output_file_path: str
    env_dereferenced_output_file_path: str
    backend_root_directory: str = ""
    buildpack_config_output_file_path: str
    firebase_config: str = ""
    firebase_webapp_config: str = ""
    server_side_env_vars: str = ""

    @property
    def server_side_env_vars_enabled(self) -> bool:
        return self.server_side_env_vars != ""


class Availability(str, Enum):
    """Phases in which an environment variable is available."""

    BUILD = "BUILD"
    RUNTIME = "RUNTIME"


class EnvVar(BaseModel):
    """An environment variable entry of apphosting.yaml."""

    model_config = ConfigDict(populate_by_name=True)

    variable: str
    value: str | None = None
    secret: str | None = None
    availability: list[Availability] = Field(
        default_factory=lambda: [Availability.BUILD, Availability.RUNTIME]
    )

    @field_validator("variable")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not ENV_VAR_NAME_PATTERN.match(v):
            raise ValueError(f"invalid environment variable name {v!r}")
        return v

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, v: Any) -> Any:
        # YAML turns unquoted numbers and booleans into non-strings.
        if isinstance(v, bool):
            return "true" if v else "false"
        if isinstance(v, int | float):
            return str(v)
        return v

    @model_validator(mode="after")
    def _check_source(self) -> "EnvVar":
        if (self.value is None) == (self.secret is None):
            raise ValueError(
                f"environment variable {self.variable} must set exactly one of value or secret"
            )
        if not self.availability:
            raise ValueError(
                f"environment variable {self.variable} must be available in at least one phase"
            )
        return self

    def available_at_build(self) -> bool:
        return Availability.BUILD in self.availability


class RunConfig(BaseModel):
    """Cloud Run service settings of apphosting.yaml."""

    model_config = ConfigDict(populate_by_name=True)

    cpu: float | None = Field(None, gt=0, le=8)
    memory_mib: int | None = Field(None, alias="memoryMiB", ge=128, le=32768)
    concurrency: int | None = Field(None, ge=1, le=1000)
    max_instances: int | None = Field(None, alias="maxInstances", ge=1, le=100)
    min_instances: int | None = Field(None, alias="minInstances", ge=0)

    @model_validator(mode="after")
    def _check_instances(self) -> "RunConfig":
        if (
            self.min_instances is not None
            and self.max_instances is not None
            and self.min_instances > self.max_instances
        ):
            raise ValueError("minInstances must not exceed maxInstances")
        return self


class Scripts(BaseModel):
    """Build and run command overrides."""

    model_config = ConfigDict(populate_by_name=True)

    build_command: str | None = Field(None, alias="buildCommand")
    run_command: str | None = Field(None, alias="runCommand")


class ServerApp(BaseModel):
    """Files to include in the server app image."""

    include: list[str] = Field(default_factory=list)


class OutputFiles(BaseModel):
    """Output file selection for the built image."""

    model_config = ConfigDict(populate_by_name=True)

    server_app: ServerApp | None = Field(None, alias="serverApp")


class AppHostingConfig(BaseModel):
    """Contents of an apphosting.yaml file."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    run_config: RunConfig | None = Field(None, alias="runConfig")
    env: list[EnvVar] = Field(default_factory=list)
    scripts: Scripts | None = None
    output_files: OutputFiles | None = Field(None, alias="outputFiles")
