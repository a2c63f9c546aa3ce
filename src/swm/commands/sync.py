"""Sync migration: files and databases into an existing account.

The account must already exist here (a previous structure-only run).
"""

from dataclasses import dataclass
from pathlib import Path

from swm.core.audit import AuditEventType, get_audit_logger
from swm.core.context import ExecutionContext
from swm.core.exceptions import PreconditionError
from swm.core.executor import CommandExecutor
from swm.core.request import MigrationRequest
from swm.services.identity import AccountIdentity, HostRole, IdentityResolver
from swm.services.mysql import DatabaseMigrationResult, MySQLService
from swm.services.remote import RemoteShell
from swm.services.rsync import RsyncService
from swm.services.siteworx import SiteWorxService


@dataclass
class SyncResult:
    """Outcome of a sync migration."""
    identity: AccountIdentity
    databases: DatabaseMigrationResult


def run_sync_migration(
    ctx: ExecutionContext,
    request: MigrationRequest,
    executor: CommandExecutor,
    remote: RemoteShell,
    workspace: Path,
) -> SyncResult:
    """Sync the account's home directory and databases from the source.

    Raises:
        IdentityResolutionError: Username not found on the source
        PreconditionError: Account home directory missing here
        SyncError: rsync failed
        DatabaseMigrationError: A database dump or restore failed
    """
    config = ctx.config
    audit = get_audit_logger()
    domain = request.domain

    ctx.console.info(f"Starting sync migration for domain: {domain}")

    resolver = IdentityResolver(ctx, executor, config.siteworx, remote=remote)
    identity = resolver.resolve_username(domain, HostRole.SOURCE)
    username = identity.username
    ctx.console.info(f"Linux username: {username}")

    siteworx = SiteWorxService(ctx, executor, remote, config.siteworx)
    if not siteworx.account_exists(username):
        if ctx.dry_run:
            ctx.console.warn(
                f"{siteworx.account_home(username)} does not exist here; a real run would stop now"
            )
            return SyncResult(identity=identity, databases=DatabaseMigrationResult(username=username))
        raise PreconditionError(
            f"User directory {siteworx.account_home(username)} does not exist on destination server",
            hint="Please run structure-only migration first to create the account",
        )

    rsync = RsyncService(ctx, executor, remote, config.sync, config.siteworx.home_root)
    with ctx.console.status(f"Syncing {siteworx.account_home(username)}/ from {request.source}..."):
        rsync.sync_home(username)
    audit.log_success(
        AuditEventType.FILES_SYNC, "account", username,
        message=f"Synced from {request.source}",
    )

    mysql = MySQLService(ctx, executor, remote, workspace, config.mysql)
    databases = mysql.list_databases(username)
    outcome = mysql.migrate(username, databases)

    if outcome.databases:
        audit.log_success(
            AuditEventType.DATABASE_MIGRATE, "account", username,
            message=f"Migrated {', '.join(outcome.databases)}",
        )
    if outcome.partial:
        audit.log_partial(
            AuditEventType.DATABASE_GRANTS, "account", username,
            error="; ".join(outcome.warnings),
        )

    ctx.console.success("Sync migration completed successfully!")
    return SyncResult(identity=identity, databases=outcome)
