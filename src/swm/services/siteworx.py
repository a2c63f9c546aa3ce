"""InterWorx SiteWorx account export and import.

Thin wrappers around the panel's own tools:
- backup.pex on the source server (structure-only archives)
- import.pex on this server
"""

from dataclasses import dataclass
from pathlib import Path

from swm.core.config import SiteWorxConfig
from swm.core.context import ExecutionContext
from swm.core.exceptions import AccountImportError, ExecutionError
from swm.core.executor import CommandExecutor
from swm.services.remote import RemoteShell


@dataclass
class BackupArtifact:
    """A structure-only account archive in transit between the servers."""
    domain: str
    remote_path: str
    local_path: Path


def archive_name(domain: str) -> str:
    """File name backup.pex gives an archive created with ``-f <domain>``."""
    return f"{domain}.tgz"


class SiteWorxService:
    """SiteWorx panel operations on both servers."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        remote: RemoteShell,
        siteworx: SiteWorxConfig,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.remote = remote
        self.siteworx = siteworx

    def account_home(self, username: str) -> Path:
        """Home directory of an account on this server."""
        return Path(self.siteworx.home_root) / username

    def account_exists(self, username: str) -> bool:
        """Whether the account's home directory exists on this server."""
        return self.account_home(username).is_dir()

    def export_structure(self, domain: str, remote_dir: str, local_dir: Path) -> BackupArtifact:
        """Create a structure-only archive of the account on the source server.

        Args:
            domain: Account's primary domain
            remote_dir: Directory on the source server receiving the archive
            local_dir: Directory on this server the archive will be copied to

        Returns:
            The artifact, present on the source server only

        Raises:
            RemoteExecutionError: If backup.pex fails
        """
        self.remote.run(
            [
                self.siteworx.tool("backup.pex"),
                "--structure-only",
                f"--domains={domain}",
                "-f", domain,
                "-o", f"{remote_dir.rstrip('/')}/",
            ],
            description="Creating structure-only backup on source server...",
        )

        name = archive_name(domain)
        return BackupArtifact(
            domain=domain,
            remote_path=f"{remote_dir.rstrip('/')}/{name}",
            local_path=local_dir / name,
        )

    def import_archive(self, archive: Path, ipv4: str) -> None:
        """Import an account archive on this server bound to ``ipv4``.

        Raises:
            AccountImportError: If import.pex fails
        """
        try:
            self.executor.run(
                [
                    self.siteworx.tool("import.pex"),
                    "--control-panel=siteworx",
                    f"--archive={archive}",
                    "--ipv4", ipv4,
                ],
                description="Importing SiteWorx account...",
            )
        except ExecutionError as e:
            raise AccountImportError(
                "Failed to import SiteWorx account",
                details=e.details,
                hint="Check the InterWorx import log on this server",
            ) from e
