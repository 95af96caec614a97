"""Secret Manager access for the preparer."""

import asyncio
import re
from typing import Any, Protocol, runtime_checkable

from google.api_core import exceptions as gexc
from google.cloud import secretmanager
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception_type,
    stop_after_delay,
    wait_exponential,
)

from apphosting_preparer.core.errors import FahError, Reason
from apphosting_preparer.core.logging import get_logger

logger = get_logger(__name__)

SECRET_NAME = r"[A-Za-z0-9_-]{1,255}"
SECRET_VERSION = r"latest|[1-9][0-9]*"

_SHORT_REF = re.compile(rf"^(?P<secret>{SECRET_NAME})(?:@(?P<version>{SECRET_VERSION}))?$")
_FULL_REF = re.compile(
    rf"^projects/(?P<project>[^/]+)/secrets/(?P<secret>{SECRET_NAME})"
    rf"(?:/versions/(?P<version>{SECRET_VERSION}))?$"
)

TRANSIENT_ERRORS = (
    gexc.ServiceUnavailable,
    gexc.DeadlineExceeded,
    gexc.InternalServerError,
)

MAX_RETRY_DURATION_SEC = 60.0
_retry_wait = wait_exponential(multiplier=0.5, min=0.5, max=10)


@runtime_checkable
class SecretClient(Protocol):
    """The subset of the Secret Manager client used by the preparer."""

    def access_secret_version(self, request: Any = None, **kwargs: Any) -> Any: ...

    def get_secret_version(self, request: Any = None, **kwargs: Any) -> Any: ...

    def __enter__(self) -> Any: ...

    def __exit__(self, *args: Any) -> None: ...


def create_secret_client() -> secretmanager.SecretManagerServiceClient:
    """Create a Secret Manager client from ambient credentials.

    The client is a context manager; leaving the block closes its transport.
    """
    return secretmanager.SecretManagerServiceClient()


def normalize_secret_reference(ref: str, project_id: str) -> str:
    """Expand a secret reference to a full secret version resource name.

    Accepted forms: "name", "name@version", "projects/p/secrets/name" and
    "projects/p/secrets/name/versions/version". The version defaults to
    "latest".

    Raises:
        FahError: If the reference is malformed
    """
    match = _SHORT_REF.match(ref)
    if match:
        project = project_id
    else:
        match = _FULL_REF.match(ref)
        if not match:
            raise FahError(Reason.INVALID_SECRET, f"Invalid secret reference {ref!r}")
        project = match.group("project")

    version = match.group("version") or "latest"
    return f"projects/{project}/secrets/{match.group('secret')}/versions/{version}"


async def _call(method: Any, name: str, max_duration_sec: float) -> Any:
    """Call a Secret Manager method, retrying transient failures."""
    try:
        async for attempt in AsyncRetrying(
            wait=_retry_wait,
            stop=stop_after_delay(max_duration_sec),
            reraise=True,
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
        ):
            with attempt:
                return await asyncio.to_thread(method, request={"name": name})
    except RetryError as e:
        exc = e.last_attempt.exception()
        if exc is not None:
            raise exc from e
        raise
    except (gexc.NotFound, gexc.PermissionDenied) as e:
        raise FahError(
            Reason.SECRET_ACCESS,
            f"Unable to access secret {name}. Ensure the secret exists and that the "
            "backend's service account has been granted access to it.",
        ) from e

    raise RuntimeError("Unexpected retry error")


async def pin_secret_version(
    client: SecretClient, name: str, max_duration_sec: float = MAX_RETRY_DURATION_SEC
) -> str:
    """Replace a "latest" version alias with the concrete version number.

    Args:
        client: Secret Manager client
        name: Full secret version resource name

    Returns:
        Resource name with a numeric version
    """
    if not name.endswith("/versions/latest"):
        return name

    version = await _call(client.get_secret_version, name, max_duration_sec)
    number = version.name.rsplit("/", 1)[-1]
    pinned = f"{name.rsplit('/', 1)[0]}/{number}"
    logger.debug("Pinned secret version", secret=name, version=number)
    return pinned


async def access_secret_value(
    client: SecretClient, name: str, max_duration_sec: float = MAX_RETRY_DURATION_SEC
) -> str:
    """Read the payload of a secret version as text.

    Raises:
        FahError: If the secret is inaccessible or its payload isn't UTF-8 text
    """
    response = await _call(client.access_secret_version, name, max_duration_sec)
    try:
        return response.payload.data.decode("utf-8")
    except UnicodeDecodeError as e:
        raise FahError(
            Reason.INVALID_SECRET,
            f"Secret {name} can't be used as an environment variable: "
            "its value is not valid UTF-8 text",
        ) from e
