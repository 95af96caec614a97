"""Build context used to report the outcome of a preparer run."""

import json
import os
from pathlib import Path
from typing import NoReturn

import typer
from rich.markup import escape

from apphosting_preparer.core.errors import BuildError
from apphosting_preparer.core.logging import get_logger

logger = get_logger(__name__)

BUILDER_OUTPUT_ENV = "BUILDER_OUTPUT"
BUILDER_OUTPUT_FILE = "output"


class BuildContext:
    """Reports the run outcome to the hosting build system and exits.

    When the BUILDER_OUTPUT environment variable names a directory, the
    outcome is also written there as JSON so the build system can read the
    error status label.
    """

    def __init__(self, output_dir: str | None = None) -> None:
        """Initialize the BuildContext.

        Args:
            output_dir: Directory for the builder output file. Defaults to
                the BUILDER_OUTPUT environment variable.
        """
        if output_dir is None:
            output_dir = os.getenv(BUILDER_OUTPUT_ENV, "")
        self.output_dir = output_dir

    def exit(self, code: int, error: BuildError | None = None) -> NoReturn:
        """Report the outcome and terminate the run.

        Args:
            code: Process exit code
            error: Classified error, or None on success

        Raises:
            typer.Exit: Always, with the given exit code
        """
        if error is not None:
            logger.error(
                escape(error.message),
                status=error.status.value,
                exit_code=code,
            )
        else:
            logger.info("Preparation completed successfully")

        self._write_builder_output(error)
        raise typer.Exit(code=code)

    def _write_builder_output(self, error: BuildError | None) -> None:
        if not self.output_dir:
            return

        payload: dict[str, dict[str, str]] = {}
        if error is not None:
            payload["error"] = {
                "status": error.status.value,
                "errorMessage": error.message,
            }

        path = Path(self.output_dir) / BUILDER_OUTPUT_FILE
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload))
        except OSError as e:
            # The exit code still carries the outcome.
            logger.warning("Failed to write builder output", path=str(path), error=str(e))
