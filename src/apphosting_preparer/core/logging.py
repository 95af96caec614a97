"""Build log output for the preparer: stdlib logging rendered by rich."""

import logging
from collections.abc import MutableMapping
from typing import Any

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

_STDLIB_KWARGS = frozenset({"exc_info", "stack_info", "stacklevel", "extra"})


class StructuredLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that appends keyword context to build log lines.

    Values come from user workspaces (backend roots like ``app/[slug]``,
    secret names, env var names), so they are escaped before reaching the
    rich markup renderer.

    Example:
        logger = get_logger(__name__)
        logger.info("Detected apphosting.yaml", path="/workspace/app/apphosting.yaml")
        # Output: Detected apphosting.yaml [path=/workspace/app/apphosting.yaml]
    """

    def process(
        self, msg: Any, kwargs: MutableMapping[str, Any]
    ) -> tuple[Any, MutableMapping[str, Any]]:
        """Move context kwargs into the message suffix.

        Returns:
            Tuple of (message, kwargs understood by stdlib logging)
        """
        context = {k: v for k, v in kwargs.items() if k not in _STDLIB_KWARGS}
        clean_kwargs = {k: v for k, v in kwargs.items() if k in _STDLIB_KWARGS}

        if context:
            pairs = " ".join(f"{k}={escape(str(v))}" for k, v in sorted(context.items()))
            msg = f"{msg} [dim][[/dim]{pairs}[dim]][/dim]"

        return msg, clean_kwargs


def setup_logging(verbose: bool = False, trace: bool = False) -> None:
    """Send build logs to stderr, where the hosting build system collects them.

    Args:
        verbose: Enable debug logging
        trace: Also show source locations, locals in tracebacks, and
            debug output from the google client libraries
    """
    handler = RichHandler(
        console=Console(stderr=True, force_terminal=False, width=160),
        show_time=True,
        show_path=trace,
        markup=True,
        rich_tracebacks=True,
        tracebacks_show_locals=trace,
        log_time_format="[%Y-%m-%d %H:%M:%S]",
    )

    logging.basicConfig(
        level=logging.DEBUG if verbose or trace else logging.INFO,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )

    quiet_level = logging.NOTSET if trace else logging.WARNING
    for name in ("google", "urllib3", "grpc"):
        logging.getLogger(name).setLevel(quiet_level)


def get_logger(name: str = "") -> StructuredLoggerAdapter:
    """Get the structured logger for a module (typically ``__name__``)."""
    return StructuredLoggerAdapter(logging.getLogger(name or __name__), {})
