"""rsync of an account's home directory from the source server."""

from typing import Optional

from swm.core.config import SyncConfig
from swm.core.context import ExecutionContext
from swm.core.exceptions import ExecutionError, SyncError
from swm.core.executor import CommandExecutor
from swm.services.remote import RemoteShell


# Logs, caches, sessions and WordPress plugin scratch space are not migrated
DEFAULT_EXCLUDES: tuple[str, ...] = (
    "*/logs/*",
    "*/log/*",
    "*/cache/*",
    "*/tmp/*",
    "*/temp/*",
    "*.log",
    "*/error_log",
    "*/access_log",
    "*/session/*",
    "*/sessions/*",
    "*/.cache/*",
    "*/wp-content/cache/*",
    "*/wp-content/w3tc-config/*",
    "*/wp-content/wflogs/*",
)

# "Partial transfer due to vanished source files": the site was live while syncing
RSYNC_VANISHED = 24


class RsyncService:
    """One-way, additive mirror of /home/<user>/ from the source server.

    Files only present on this server are left alone (no --delete).
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        remote: RemoteShell,
        sync: Optional[SyncConfig] = None,
        home_root: str = "/home",
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.remote = remote
        self.sync = sync or SyncConfig()
        self.home_root = home_root.rstrip("/")

    @property
    def excludes(self) -> list[str]:
        """Built-in exclusions followed by configured extras."""
        return list(DEFAULT_EXCLUDES) + [
            e for e in self.sync.extra_excludes if e not in DEFAULT_EXCLUDES
        ]

    def build_command(self, username: str) -> list[str]:
        """rsync argv for one account."""
        home = f"{self.home_root}/{username}/"
        return [
            "rsync", "-az",
            *(f"--exclude={pattern}" for pattern in self.excludes),
            "-e", self.remote.rsync_transport(),
            self.remote.remote_spec(home),
            home,
        ]

    def sync_home(self, username: str) -> None:
        """Copy the account's files from the source server.

        Raises:
            SyncError: If rsync fails
        """
        self.ctx.console.info("Excluding logs and cache files")
        command = self.build_command(username)

        try:
            result = self.executor.run(
                command,
                description="Syncing files from source to destination...",
                check=False,
            )
        except ExecutionError as e:
            raise SyncError(
                f"rsync from {self.remote.host} failed",
                command=" ".join(command),
                details=e.details,
            ) from e

        if result.return_code == RSYNC_VANISHED:
            self.ctx.console.warn("Some files vanished on the source during sync")
            return

        if not result.success:
            raise SyncError(
                f"rsync from {self.remote.host} failed",
                command=" ".join(command),
                return_code=result.return_code,
                stderr=result.stderr,
            )
