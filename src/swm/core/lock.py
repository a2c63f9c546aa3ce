"""Per-account migration lock.

Artifacts are scoped to per-run directories, but two runs against the
same source and domain would still interleave remote exports, imports
and database restores. The lock is an flock on a file named after the
source/domain pair, held for the whole run.
"""

import fcntl
import os
import re
from pathlib import Path
from types import TracebackType
from typing import Optional

from swm.core.exceptions import LockError


_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


def lock_name(source: str, domain: str) -> str:
    """File name of the lock for a source/domain pair."""
    return f"{_UNSAFE_CHARS.sub('_', source)}__{_UNSAFE_CHARS.sub('_', domain)}.lock"


class MigrationLock:
    """Exclusive, non-blocking lock for one source/domain pair.

    Usage:
        with MigrationLock(lock_dir, "src.example.net", "example.com"):
            run_migration()
    """

    def __init__(self, lock_dir: Path, source: str, domain: str) -> None:
        self.path = Path(lock_dir) / lock_name(source, domain)
        self.source = source
        self.domain = domain
        self._fd: Optional[int] = None

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            LockError: If the directory is unusable or another run holds the lock
        """
        try:
            self.path.parent.mkdir(mode=0o755, parents=True, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise LockError(
                f"Cannot create lock file: {self.path}",
                hint="Check paths.lock_dir in the configuration or run as root",
                details=[str(e)],
            ) from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            os.close(fd)
            holder = self._read_holder()
            raise LockError(
                f"Another migration of {self.domain} from {self.source} is running",
                hint="Wait for it to finish before starting a new one",
                details=[f"Lock file: {self.path}"] + ([f"Held by PID {holder}"] if holder else []),
            ) from e

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd

    def release(self) -> None:
        """Release the lock. The lock file itself is left in place."""
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None

    @property
    def held(self) -> bool:
        """Whether this instance currently holds the lock."""
        return self._fd is not None

    def _read_holder(self) -> Optional[str]:
        try:
            return self.path.read_text().strip() or None
        except OSError:
            return None

    def __enter__(self) -> "MigrationLock":
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.release()
