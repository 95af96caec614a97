"""File system helpers for the preparer."""

from pathlib import Path

from apphosting_preparer.core.errors import FahError, Reason
from apphosting_preparer.core.logging import get_logger

logger = get_logger(__name__)

APPHOSTING_YAML = "apphosting.yaml"


def detect_apphosting_yaml_path(workspace_root: str, backend_root: str) -> str:
    """Find the apphosting.yaml that applies to a backend.

    The search starts in the backend root directory and walks up parent
    directories until the workspace root, inclusive. The nearest file wins.

    Args:
        workspace_root: Root of the checked out source
        backend_root: Backend root directory, relative to the workspace root

    Returns:
        Path to apphosting.yaml, or "" if no directory in the search has one

    Raises:
        FahError: If the backend root is outside the workspace or is not a
            directory
    """
    workspace = Path(workspace_root).resolve()
    backend = (workspace / backend_root.lstrip("/")).resolve()

    if backend != workspace and workspace not in backend.parents:
        raise FahError(
            Reason.INVALID_BACKEND_ROOT,
            f"Backend root directory {backend_root!r} is outside of the workspace",
        )

    if not backend.is_dir():
        raise FahError(
            Reason.INVALID_BACKEND_ROOT,
            f"Backend root directory {backend_root!r} does not exist or is not a directory",
        )

    directory = backend
    while True:
        candidate = directory / APPHOSTING_YAML
        if candidate.is_file():
            logger.info("Detected apphosting.yaml", path=str(candidate))
            return str(candidate)
        if directory == workspace:
            break
        directory = directory.parent

    logger.info("No apphosting.yaml found", backend_root=backend_root)
    return ""


def write_output_file(path: str, contents: str) -> None:
    """Write a preparer output file, creating parent directories as needed.

    Raises:
        OSError: If the file cannot be written
    """
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(contents)
    logger.debug("Wrote output file", path=path, size=len(contents))
