"""Structure-only migration.

Steps:
1. Find this server's primary IPv4 address
2. backup.pex --structure-only on the source, into a private temp dir
3. scp the archive into this run's workspace
4. Remove the source temp dir
5. import.pex the archive bound to the primary address
6. Remove the local archive (unless cleanup is disabled)

The archive is never left on both servers: a failed transfer removes the
source copy (and any partial local file), a failed import removes the
local copy. No databases or bulk files are moved here; that is sync's job.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from swm.core.audit import AuditEventType, get_audit_logger
from swm.core.context import ExecutionContext
from swm.core.exceptions import IdentityResolutionError, SWMError
from swm.core.executor import CommandExecutor
from swm.core.request import MigrationRequest
from swm.core.workspace import remove_artifact
from swm.services.identity import HostRole, IdentityResolver
from swm.services.network import get_primary_address
from swm.services.remote import RemoteShell
from swm.services.siteworx import BackupArtifact, SiteWorxService


@dataclass
class StructureResult:
    """Outcome of a structure-only migration."""
    primary_ip: str
    artifact: BackupArtifact
    archive_kept: bool
    username: Optional[str] = None


def run_structure_migration(
    ctx: ExecutionContext,
    request: MigrationRequest,
    executor: CommandExecutor,
    remote: RemoteShell,
    workspace: Path,
) -> StructureResult:
    """Re-create the account on this server from a structure-only archive.

    Raises:
        NetworkDiscoveryError: No primary address
        RemoteExecutionError: Export on the source failed
        TransferError: Copying the archive failed
        AccountImportError: import.pex failed
    """
    config = ctx.config
    audit = get_audit_logger()
    siteworx = SiteWorxService(ctx, executor, remote, config.siteworx)
    domain = request.domain

    ctx.console.info(f"Starting structure-only migration for domain: {domain}")

    primary_ip = get_primary_address(executor, config.network.probe_address)
    ctx.console.info(f"Using primary IP: {primary_ip}")

    remote_dir = remote.make_temp_dir()
    try:
        artifact = siteworx.export_structure(domain, remote_dir, workspace)
    except SWMError:
        ctx.console.error("Failed to create backup on source server")
        remote.remove(remote_dir)
        raise
    audit.log_success(
        AuditEventType.ACCOUNT_EXPORT, "domain", domain,
        message=f"Exported on {request.source} to {artifact.remote_path}",
    )

    ctx.console.step("Copying backup file to destination server...")
    try:
        with ctx.console.status(f"Copying {artifact.remote_path}..."):
            remote.copy_from(artifact.remote_path, artifact.local_path)
    except SWMError:
        ctx.console.error("Failed to copy backup file")
        remote.remove(remote_dir)
        remove_artifact(artifact.local_path)
        raise

    remote.remove(remote_dir)
    audit.log_success(
        AuditEventType.ACCOUNT_TRANSFER, "domain", domain,
        message=f"Copied to {artifact.local_path}",
    )

    try:
        siteworx.import_archive(artifact.local_path, primary_ip)
    except SWMError:
        ctx.console.error("Failed to import SiteWorx account")
        remove_artifact(artifact.local_path)
        raise
    audit.log_success(
        AuditEventType.ACCOUNT_IMPORT, "domain", domain,
        message=f"Imported with IPv4 {primary_ip}",
    )

    archive_kept = not request.cleanup
    if request.cleanup:
        ctx.console.info("Cleaning up temporary files...")
        remove_artifact(artifact.local_path)
    else:
        ctx.console.info(f"Archive kept at {artifact.local_path}")

    username = None
    if not ctx.dry_run:
        resolver = IdentityResolver(ctx, executor, config.siteworx)
        try:
            username = resolver.resolve_username(domain, HostRole.DESTINATION).username
            ctx.console.info(f"Account created with Linux username: {username}")
        except IdentityResolutionError as e:
            ctx.console.warn(f"Imported account not found in the local listing yet: {e}")

    ctx.console.success("Structure-only migration completed successfully!")
    return StructureResult(
        primary_ip=primary_ip,
        artifact=artifact,
        archive_kept=archive_kept,
        username=username,
    )
