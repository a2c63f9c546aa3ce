"""Per-run local working directory for migration artifacts."""

import shutil
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

from swm.core.output import console


WORKSPACE_PREFIX = "swm-"


@contextmanager
def run_workspace(base_dir: Path, cleanup: bool = True) -> Generator[Path, None, None]:
    """Create a unique directory for one migration run.

    The directory is removed on exit when ``cleanup`` is set; otherwise it
    is kept (with whatever artifacts are still in it) and its path printed.

    Args:
        base_dir: Parent directory, usually /tmp
        cleanup: Remove the directory when the run ends

    Yields:
        Path of the new directory (mode 0700)
    """
    base_dir.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=WORKSPACE_PREFIX, dir=base_dir))
    console.debug(f"Workspace: {path}")

    try:
        yield path
    finally:
        if cleanup:
            remove_workspace(path)
        elif path.exists() and any(path.iterdir()):
            console.info(f"Temporary files kept in {path}")
        elif path.exists():
            path.rmdir()


def remove_workspace(path: Path) -> None:
    """Remove a workspace directory, warning instead of failing."""
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as e:
        console.warn(f"Could not remove temporary directory {path}: {e}")


def remove_artifact(path: Path) -> bool:
    """Delete a single local artifact.

    Returns:
        True if the file is gone afterwards
    """
    try:
        path.unlink(missing_ok=True)
        return True
    except OSError as e:
        console.warn(f"Could not remove {path}: {e}")
        return False
