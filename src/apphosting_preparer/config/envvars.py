"""Environment variable handling for apphosting.yaml and platform inputs."""

import json

from pydantic import TypeAdapter, ValidationError

from apphosting_preparer.config.models import Availability, EnvVar
from apphosting_preparer.core.errors import FahError, Reason

FIREBASE_CONFIG_VAR = "FIREBASE_CONFIG"
FIREBASE_WEBAPP_CONFIG_VAR = "FIREBASE_WEBAPP_CONFIG"

RESERVED_NAMES = frozenset(
    {
        "PORT",
        "K_SERVICE",
        "K_REVISION",
        "K_CONFIGURATION",
        FIREBASE_CONFIG_VAR,
        FIREBASE_WEBAPP_CONFIG_VAR,
    }
)
RESERVED_PREFIXES = ("X_FIREBASE_", "X_GOOGLE_")

_env_list_adapter = TypeAdapter(list[EnvVar])


def validate_user_env_vars(env: list[EnvVar], source: str) -> None:
    """Check user supplied environment variables for reserved or repeated names.

    Args:
        env: Environment variables to check
        source: Where the variables came from, used in error messages

    Raises:
        FahError: If a name is reserved or defined more than once
    """
    seen: set[str] = set()
    for var in env:
        name = var.variable
        if name in RESERVED_NAMES or name.startswith(RESERVED_PREFIXES):
            raise FahError(
                Reason.INVALID_APPHOSTING_YAML,
                f"{source}: environment variable {name} is reserved and cannot be set",
            )
        if name in seen:
            raise FahError(
                Reason.INVALID_APPHOSTING_YAML,
                f"{source}: environment variable {name} is defined more than once",
            )
        seen.add(name)


def merge_env_vars(base: list[EnvVar], override: list[EnvVar]) -> list[EnvVar]:
    """Merge two environment variable lists by name, override taking precedence.

    Variables keep the position they have in base; new ones are appended in
    the order they appear in override.
    """
    overrides = {var.variable: var for var in override}
    merged = [overrides.pop(var.variable, var) for var in base]
    merged.extend(var for var in override if var.variable in overrides)
    return merged


def parse_server_side_env_vars(raw: str) -> list[EnvVar]:
    """Parse the server side environment variables flag.

    Args:
        raw: JSON list of environment variable objects

    Returns:
        Parsed environment variables

    Raises:
        FahError: If the value is not a valid list of environment variables
    """
    try:
        env = _env_list_adapter.validate_json(raw)
    except ValidationError as e:
        raise FahError(
            Reason.INVALID_ENV_VARS,
            f"Invalid server side environment variables: {_first_error(e)}",
        ) from e

    seen: set[str] = set()
    for var in env:
        if var.variable in seen:
            raise FahError(
                Reason.INVALID_ENV_VARS,
                f"Server side environment variable {var.variable} is defined more than once",
            )
        seen.add(var.variable)
    return env


def firebase_env_vars(firebase_config: str, firebase_webapp_config: str) -> list[EnvVar]:
    """Build the platform provided Firebase environment variables.

    FIREBASE_CONFIG feeds the Admin SDK at build and run time.
    FIREBASE_WEBAPP_CONFIG feeds the client SDK during the build only.

    Raises:
        FahError: If either value is set but is not a JSON object
    """
    env: list[EnvVar] = []
    if firebase_config:
        _check_json_object(FIREBASE_CONFIG_VAR, firebase_config)
        env.append(
            EnvVar(
                variable=FIREBASE_CONFIG_VAR,
                value=firebase_config,
                availability=[Availability.BUILD, Availability.RUNTIME],
            )
        )
    if firebase_webapp_config:
        _check_json_object(FIREBASE_WEBAPP_CONFIG_VAR, firebase_webapp_config)
        env.append(
            EnvVar(
                variable=FIREBASE_WEBAPP_CONFIG_VAR,
                value=firebase_webapp_config,
                availability=[Availability.BUILD],
            )
        )
    return env


# Characters that dotenv readers treat specially inside double quotes.
_DOTENV_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\r": "\\r",
    "$": "\\$",
    "`": "\\`",
    "!": "\\!",
}


def render_dotenv(values: dict[str, str]) -> str:
    """Render variables in .env format with double quoted, escaped values.

    Escaping follows godotenv's double quote rules, so variable expansion
    never rewrites a value when the file is read back.
    """
    lines = []
    for name, value in values.items():
        escaped = "".join(_DOTENV_ESCAPES.get(char, char) for char in value)
        lines.append(f'{name}="{escaped}"')
    return "".join(f"{line}\n" for line in lines)


def _check_json_object(name: str, raw: str) -> None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise FahError(Reason.INVALID_FIREBASE_CONFIG, f"{name} is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise FahError(Reason.INVALID_FIREBASE_CONFIG, f"{name} must be a JSON object")


def _first_error(e: ValidationError) -> str:
    errors = e.errors()
    if not errors:
        return str(e)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "")
    return f"{location}: {message}" if location else message
