"""MySQL/MariaDB database migration from the source server.

Provides:
- Discovery of an account's databases (``<username>_*``)
- Per-database dump on the source, streamed to a local file, then restore
- Best-effort replication of the account's database users and grants

Database copies are fail-fast: the first dump or restore failure stops
the migration. User and grant replication only warns on failure.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from swm.core.config import MySQLConfig
from swm.core.context import ExecutionContext
from swm.core.exceptions import (
    DatabaseMigrationError,
    ExecutionError,
    SWMError,
    ValidationError,
)
from swm.core.executor import CommandExecutor
from swm.core.validation import validate_database_name, validate_username
from swm.core.workspace import remove_artifact
from swm.services.remote import RemoteShell


_BATCH_ESCAPES = {"\\": "\\", "t": "\t", "n": "\n", "0": "\0"}

_SQL_STRING_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    "\0": "\\0",
    "\n": "\\n",
    "\r": "\\r",
    "\x1a": "\\Z",
}


@dataclass
class DumpArtifact:
    """A database dump in the local workspace."""
    database: str
    local_path: Path


@dataclass
class DatabaseMigrationResult:
    """What a database migration did."""
    username: str
    databases: list[str] = field(default_factory=list)
    users_applied: int = 0
    grants_applied: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """True when user or grant replication failed."""
        return bool(self.warnings)


def unescape_batch_field(value: str) -> str:
    """Undo the escaping ``mysql --batch`` applies to output fields."""
    out = []
    i = 0
    while i < len(value):
        char = value[i]
        if char == "\\" and i + 1 < len(value) and value[i + 1] in _BATCH_ESCAPES:
            out.append(_BATCH_ESCAPES[value[i + 1]])
            i += 2
            continue
        out.append(char)
        i += 1
    return "".join(out)


def quote_sql_string(value: str) -> str:
    """Quote a value as a MySQL string literal."""
    return "'" + "".join(_SQL_STRING_ESCAPES.get(c, c) for c in value) + "'"


def like_prefix(username: str) -> str:
    """LIKE pattern for ``<username>_<anything>`` with a literal underscore."""
    return f"{username}\\_%"


def create_user_statement(user: str, host: str, plugin: str, auth: str) -> str:
    """Idempotent CREATE USER carrying the source password hash."""
    statement = f"CREATE USER IF NOT EXISTS {quote_sql_string(user)}@{quote_sql_string(host)}"
    if auth and plugin:
        statement += f" IDENTIFIED WITH {plugin} AS {quote_sql_string(auth)}"
    elif auth:
        statement += f" IDENTIFIED BY PASSWORD {quote_sql_string(auth)}"
    return statement + ";"


class MySQLService:
    """Discover and migrate an account's databases.

    Source-side commands run through the RemoteShell, destination-side
    commands through the local executor. Dumps are written to the run's
    workspace and removed right after each restore.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        remote: RemoteShell,
        workspace: Path,
        mysql: Optional[MySQLConfig] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.remote = remote
        self.workspace = workspace
        self.mysql = mysql or MySQLConfig()

    def _remote_query(self, sql: str) -> list[str]:
        result = self.remote.run(["mysql", "-sN", "-e", sql], read_only=True)
        return [line for line in result.stdout.splitlines() if line.strip()]

    def _apply_locally(self, statements: list[str], description: str) -> None:
        self.executor.run(
            ["mysql"],
            input_text="\n".join(statements) + "\n",
            description=description,
            sensitive=True,
        )

    # Discovery

    def list_databases(self, username: str) -> list[str]:
        """List the account's databases on the source server, in server order.

        Returns:
            Database names; empty when the account has none

        Raises:
            RemoteExecutionError: If the query cannot be run
            DatabaseMigrationError: If the server reports an unusable name
        """
        validate_username(username)
        self.ctx.console.info(f"Finding MySQL databases for user: {username}")

        names = []
        for line in self._remote_query(f"SHOW DATABASES LIKE '{like_prefix(username)}'"):
            name = unescape_batch_field(line.strip())
            try:
                names.append(validate_database_name(name))
            except ValidationError as e:
                raise DatabaseMigrationError(
                    f"Source server reported an unsupported database name: {name!r}",
                    database=name,
                    details=[e.message],
                ) from e

        if not names:
            self.ctx.console.warn(f"No MySQL databases found for user {username}")
        return names

    # Migration

    def migrate(self, username: str, databases: list[str]) -> DatabaseMigrationResult:
        """Copy every database in order, then the account's users and grants.

        Raises:
            DatabaseMigrationError: On the first dump or restore failure
        """
        outcome = DatabaseMigrationResult(username=username)

        if not databases:
            self.ctx.console.info("No databases to migrate")
            return outcome

        self.ctx.console.info("Migrating MySQL databases...")
        for name in databases:
            self.migrate_database(name)
            outcome.databases.append(name)

        self.ctx.console.info(f"Migrating MySQL users and grants for {username}")
        try:
            outcome.users_applied = self.migrate_users(username)
        except SWMError as e:
            outcome.warnings.append(f"users: {e}")
            self.ctx.console.warn(f"Could not migrate MySQL users for {username}: {e}")

        try:
            outcome.grants_applied = self.migrate_grants(username)
        except SWMError as e:
            outcome.warnings.append(f"grants: {e}")
            self.ctx.console.warn(f"Could not migrate MySQL grants for {username}: {e}")

        return outcome

    def migrate_database(self, name: str) -> None:
        """Dump one database on the source and restore it here.

        The dump file is removed whether or not the restore succeeds.

        Raises:
            DatabaseMigrationError: If dump, create or restore fails
        """
        validate_database_name(name)
        artifact = DumpArtifact(database=name, local_path=self.workspace / f"{name}.sql")

        try:
            try:
                self.remote.stream_to_file(
                    ["mysqldump", *self.mysql.dump_options, name],
                    artifact.local_path,
                    description=f"Dumping database: {name}",
                )
            except ExecutionError as e:
                raise DatabaseMigrationError(
                    f"Failed to dump database {name} on {self.remote.host}",
                    database=name,
                    details=e.details,
                ) from e

            try:
                self.executor.run(
                    ["mysql", "-e", f"CREATE DATABASE IF NOT EXISTS `{name}`"],
                    description=f"Creating database: {name}",
                )
                self.executor.run(
                    ["mysql", name],
                    stdin_path=artifact.local_path,
                    description=f"Importing database: {name}",
                )
            except ExecutionError as e:
                raise DatabaseMigrationError(
                    f"Failed to restore database {name}",
                    database=name,
                    details=e.details,
                ) from e
        finally:
            remove_artifact(artifact.local_path)

        self.ctx.console.success(f"Database {name} migrated successfully")

    def migrate_users(self, username: str) -> int:
        """Recreate the account's MySQL users with their password hashes.

        Returns:
            Number of CREATE USER statements applied
        """
        validate_username(username)
        rows = self._remote_query(
            "SELECT User, Host, plugin, authentication_string FROM mysql.user "
            f"WHERE User = '{username}' OR User LIKE '{like_prefix(username)}'"
        )

        statements = []
        for row in rows:
            fields = [unescape_batch_field(f) for f in row.split("\t")]
            if len(fields) != 4:
                self.ctx.console.debug(f"Skipping malformed mysql.user row ({len(fields)} fields)")
                continue
            user, host, plugin, auth = fields
            if plugin and not plugin.replace("_", "").isalnum():
                self.ctx.console.debug(f"Skipping user {user}@{host}: unsupported plugin {plugin!r}")
                continue
            statements.append(create_user_statement(user, host, plugin, auth))

        if not statements:
            self.ctx.console.verbose(f"No MySQL users found for {username}")
            return 0

        self._apply_locally(statements, f"Creating {len(statements)} MySQL user(s)")
        return len(statements)

    def migrate_grants(self, username: str) -> int:
        """Copy the grants of ``username@localhost``, without plain USAGE grants.

        Returns:
            Number of GRANT statements applied
        """
        validate_username(username)
        rows = self._remote_query(f"SHOW GRANTS FOR '{username}'@'localhost'")

        statements = []
        for row in rows:
            grant = unescape_batch_field(row.strip())
            if grant.upper().startswith("GRANT USAGE"):
                continue
            statements.append(grant if grant.endswith(";") else grant + ";")

        if not statements:
            self.ctx.console.verbose(f"No grants to migrate for {username}")
            return 0

        self._apply_locally(statements, f"Applying {len(statements)} grant(s)")
        return len(statements)
