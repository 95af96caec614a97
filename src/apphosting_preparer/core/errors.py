"""Error types and classification for the preparer.

Failures are split into two classes for the hosting build system:

* user errors, caused by invalid user configuration (apphosting.yaml,
  secrets the backend cannot read, a bad backend root directory); and
* internal errors, anything else.

Both exit the process with the same code. The class travels as a status
label on the reported error instead.
"""

from collections.abc import Iterator
from enum import Enum
from typing import Protocol, runtime_checkable


class Status(str, Enum):
    """Status label attached to a reported build error."""

    INVALID_ARGUMENT = "INVALID_ARGUMENT"
    INTERNAL = "INTERNAL"


class Reason(str, Enum):
    """Known categories of user-attributable failures."""

    INVALID_APPHOSTING_YAML = "invalid_apphosting_yaml"
    INVALID_BACKEND_ROOT = "invalid_backend_root"
    INVALID_ENV_VARS = "invalid_env_vars"
    INVALID_FIREBASE_CONFIG = "invalid_firebase_config"
    INVALID_SECRET = "invalid_secret"
    SECRET_ACCESS = "secret_access"


@runtime_checkable
class UserFacingError(Protocol):
    """Capability of errors that carry a message meant for the user."""

    def user_message(self) -> str:
        """Return the message to show the user."""
        ...


class PreparerError(Exception):
    """Base class for preparer errors."""


class FahError(PreparerError):
    """A known App Hosting failure attributable to the user.

    Attributes:
        reason: Category of the failure
        message: User-facing description
    """

    def __init__(self, reason: Reason, message: str) -> None:
        self.reason = reason
        self.message = message
        super().__init__(message)

    def user_message(self) -> str:
        return self.message


class BuildError(PreparerError):
    """A classified error ready to be reported to the build system.

    Attributes:
        status: Label telling downstream systems who caused the failure
        message: Message written to the build output
    """

    status: Status = Status.INTERNAL

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class UserError(BuildError):
    """A failure caused by user configuration."""

    status = Status.INVALID_ARGUMENT


class InternalError(BuildError):
    """An unexpected failure inside the platform."""

    status = Status.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(f"internal error: {message}")


def _iter_chain(err: BaseException) -> Iterator[BaseException]:
    """Yield an exception followed by its causes and contexts.

    ``raise ... from None`` cuts the chain, as traceback printing does.
    """
    seen: set[int] = set()
    current: BaseException | None = err
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        if current.__cause__ is not None:
            current = current.__cause__
        elif current.__suppress_context__:
            current = None
        else:
            current = current.__context__


def find_user_error(err: BaseException) -> UserFacingError | None:
    """Find the first user-facing error in an exception chain.

    Args:
        err: Exception to inspect

    Returns:
        The user-facing exception, or None if the chain has none
    """
    for candidate in _iter_chain(err):
        if isinstance(candidate, UserFacingError):
            return candidate
    return None


def handle_error(err: BaseException) -> BuildError:
    """Classify an error as a user error or an internal error.

    Known App Hosting user errors are reported as user errors so they are
    not labelled as internal status errors. Anything else is wrapped as an
    internal error.

    Args:
        err: Error raised by path resolution or preparation

    Returns:
        UserError carrying the user message verbatim, or InternalError
    """
    if isinstance(err, BuildError):
        return err

    user_error = find_user_error(err)
    if user_error is not None:
        return UserError(user_error.user_message())

    internal = InternalError(str(err) or type(err).__name__)
    internal.__cause__ = err
    return internal
