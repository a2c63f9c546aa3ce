"""Unit tests for the MySQL migration service."""

from pathlib import Path
from typing import Optional
from unittest.mock import MagicMock

import pytest

from swm.core.config import MySQLConfig
from swm.core.context import ExecutionContext
from swm.core.exceptions import DatabaseMigrationError, ExecutionError, RemoteExecutionError
from swm.core.executor import CommandResult
from swm.services.mysql import (
    MySQLService,
    create_user_statement,
    like_prefix,
    quote_sql_string,
    unescape_batch_field,
)


def _result(return_code: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    return CommandResult(command=[], return_code=return_code, stdout=stdout, stderr=stderr)


USER_ROWS = (
    "examplec\tlocalhost\tmysql_native_password\t*2470C0C06DEE42FD1618BB99005ADCA2EC9D1E19\n"
    "examplec_wp\tlocalhost\tmysql_native_password\t*A4B6157319038724E3560894F7F932C8886EBFCF\n"
)

GRANT_ROWS = (
    "GRANT USAGE ON *.* TO `examplec`@`localhost`\n"
    "GRANT ALL PRIVILEGES ON `examplec\\\\_%`.* TO `examplec`@`localhost`\n"
)


class FakeSource:
    """Answers the source-side queries and records the order of operations."""

    def __init__(
        self,
        databases: str = "",
        users: str = "",
        grants: str = "",
        fail_dump: Optional[str] = None,
        fail_query: Optional[str] = None,
    ) -> None:
        self.databases = databases
        self.users = users
        self.grants = grants
        self.fail_dump = fail_dump
        self.fail_query = fail_query
        self.events: list[tuple[str, str]] = []

    def run(self, argv: list[str], **kwargs) -> CommandResult:
        sql = argv[-1]
        if self.fail_query and sql.startswith(self.fail_query):
            raise RemoteExecutionError("Remote command failed on source.example.net")
        if sql.startswith("SHOW DATABASES"):
            return _result(stdout=self.databases)
        if sql.startswith("SELECT User"):
            return _result(stdout=self.users)
        if sql.startswith("SHOW GRANTS"):
            return _result(stdout=self.grants)
        raise AssertionError(f"unexpected query: {sql}")

    def stream_to_file(self, argv: list[str], path: Path, **kwargs) -> None:
        name = argv[-1]
        self.events.append(("dump", name))
        if name == self.fail_dump:
            raise RemoteExecutionError(f"Remote command failed on source.example.net: Dumping database: {name}")
        path.write_text(f"-- dump of {name}\n")


@pytest.fixture
def mysql(
    ctx: ExecutionContext, executor: MagicMock, remote: MagicMock, workspace: Path,
) -> MySQLService:
    return MySQLService(ctx, executor, remote, workspace, MySQLConfig())


def _wire(remote: MagicMock, executor: MagicMock, source: FakeSource) -> None:
    remote.run.side_effect = source.run
    remote.stream_to_file.side_effect = source.stream_to_file

    def local_run(argv: list[str], **kwargs) -> CommandResult:
        if kwargs.get("stdin_path"):
            assert Path(kwargs["stdin_path"]).exists()
            source.events.append(("import", argv[-1]))
        elif "-e" in argv:
            source.events.append(("create", argv[-1]))
        else:
            source.events.append(("apply", kwargs.get("input_text", "")))
        return _result()

    executor.run.side_effect = local_run


class TestHelpers:
    """Tests for SQL and batch-output helpers."""

    def test_like_prefix_escapes_underscore(self):
        """The separator underscore is literal in LIKE."""
        assert like_prefix("examplec") == "examplec\\_%"

    def test_quote_sql_string(self):
        """Quotes and backslashes are escaped."""
        assert quote_sql_string("it's") == "'it\\'s'"
        assert quote_sql_string("a\\b") == "'a\\\\b'"

    def test_unescape_batch_field(self):
        """mysql --batch escapes are reversed."""
        assert unescape_batch_field("a\\\\_b\\tc\\nd") == "a\\_b\tc\nd"
        assert unescape_batch_field("plain") == "plain"

    def test_create_user_with_plugin(self):
        """Plugin and hash are kept."""
        statement = create_user_statement("examplec", "localhost", "mysql_native_password", "*ABC")
        assert statement == (
            "CREATE USER IF NOT EXISTS 'examplec'@'localhost' "
            "IDENTIFIED WITH mysql_native_password AS '*ABC';"
        )

    def test_create_user_without_plugin(self):
        """Old servers without a plugin column use IDENTIFIED BY PASSWORD."""
        assert create_user_statement("examplec", "%", "", "*ABC") == (
            "CREATE USER IF NOT EXISTS 'examplec'@'%' IDENTIFIED BY PASSWORD '*ABC';"
        )

    def test_create_user_without_password(self):
        """Users without a hash are created without a password clause."""
        assert create_user_statement("examplec", "localhost", "", "") == (
            "CREATE USER IF NOT EXISTS 'examplec'@'localhost';"
        )


class TestListDatabases:
    """Tests for database discovery."""

    def test_lists_in_server_order(self, mysql: MySQLService, remote: MagicMock):
        """Names are returned in the order the server reports them."""
        remote.run.return_value = _result(stdout="examplec_wp\nexamplec_shop\n")

        assert mysql.list_databases("examplec") == ["examplec_wp", "examplec_shop"]
        argv = remote.run.call_args.args[0]
        assert argv[:3] == ["mysql", "-sN", "-e"]
        assert argv[3] == "SHOW DATABASES LIKE 'examplec\\_%'"
        assert remote.run.call_args.kwargs["read_only"] is True

    def test_empty_is_not_an_error(self, mysql: MySQLService, remote: MagicMock):
        """An account without databases yields an empty list."""
        remote.run.return_value = _result(stdout="")
        assert mysql.list_databases("examplec") == []

    def test_unusable_name(self, mysql: MySQLService, remote: MagicMock):
        """A name that cannot be used safely aborts the migration."""
        remote.run.return_value = _result(stdout="examplec_ok\nexamplec_`bad`\n")
        with pytest.raises(DatabaseMigrationError) as exc:
            mysql.list_databases("examplec")
        assert exc.value.database == "examplec_`bad`"

    def test_query_failure_propagates(self, mysql: MySQLService, remote: MagicMock):
        """A failing listing query is not mistaken for an empty result."""
        remote.run.side_effect = RemoteExecutionError("Remote command failed on source.example.net")
        with pytest.raises(RemoteExecutionError):
            mysql.list_databases("examplec")


class TestMigrate:
    """Tests for the database migration loop."""

    def test_each_database_dumped_created_imported_in_order(
        self, mysql: MySQLService, remote: MagicMock, executor: MagicMock, workspace: Path,
    ):
        """Every database goes through dump, create, import before the next one starts."""
        source = FakeSource(users=USER_ROWS, grants=GRANT_ROWS)
        _wire(remote, executor, source)

        outcome = mysql.migrate("examplec", ["examplec_wp", "examplec_shop", "examplec_blog"])

        database_events = [e for e in source.events if e[0] != "apply"]
        assert database_events == [
            ("dump", "examplec_wp"),
            ("create", "CREATE DATABASE IF NOT EXISTS `examplec_wp`"),
            ("import", "examplec_wp"),
            ("dump", "examplec_shop"),
            ("create", "CREATE DATABASE IF NOT EXISTS `examplec_shop`"),
            ("import", "examplec_shop"),
            ("dump", "examplec_blog"),
            ("create", "CREATE DATABASE IF NOT EXISTS `examplec_blog`"),
            ("import", "examplec_blog"),
        ]
        assert outcome.databases == ["examplec_wp", "examplec_shop", "examplec_blog"]
        assert not outcome.partial
        assert list(workspace.iterdir()) == []

    def test_dump_uses_configured_options(
        self, mysql: MySQLService, remote: MagicMock, executor: MagicMock,
    ):
        """mysqldump gets the consistency options and the database name last."""
        _wire(remote, executor, FakeSource())
        mysql.migrate_database("examplec_wp")

        argv = remote.stream_to_file.call_args.args[0]
        assert argv == [
            "mysqldump", "--single-transaction", "--routines", "--triggers", "--events",
            "examplec_wp",
        ]

    def test_failure_stops_remaining_databases(
        self, mysql: MySQLService, remote: MagicMock, executor: MagicMock, workspace: Path,
    ):
        """A failed dump aborts; later databases and grants are not touched."""
        source = FakeSource(users=USER_ROWS, grants=GRANT_ROWS, fail_dump="examplec_shop")
        _wire(remote, executor, source)

        with pytest.raises(DatabaseMigrationError) as exc:
            mysql.migrate("examplec", ["examplec_wp", "examplec_shop", "examplec_blog"])

        assert exc.value.database == "examplec_shop"
        assert exc.value.exit_code == 27
        assert ("dump", "examplec_blog") not in source.events
        assert not any(e[0] == "apply" for e in source.events)
        assert list(workspace.iterdir()) == []

    def test_restore_failure_removes_dump(
        self, mysql: MySQLService, remote: MagicMock, executor: MagicMock, workspace: Path,
    ):
        """The dump file is deleted even when the import fails."""
        remote.stream_to_file.side_effect = lambda argv, path, **kw: path.write_text("--\n")
        executor.run.side_effect = [
            _result(),
            ExecutionError("Command failed: Importing database: examplec_wp", return_code=1),
        ]

        with pytest.raises(DatabaseMigrationError) as exc:
            mysql.migrate_database("examplec_wp")

        assert "restore" in str(exc.value)
        assert not (workspace / "examplec_wp.sql").exists()

    def test_no_databases(self, mysql: MySQLService, remote: MagicMock, executor: MagicMock):
        """Nothing is dumped or applied for an empty set."""
        outcome = mysql.migrate("examplec", [])
        assert outcome.databases == []
        remote.stream_to_file.assert_not_called()
        executor.run.assert_not_called()

    def test_users_and_grants_applied(
        self, mysql: MySQLService, remote: MagicMock, executor: MagicMock,
    ):
        """Users are recreated with their hashes and USAGE grants are skipped."""
        source = FakeSource(users=USER_ROWS, grants=GRANT_ROWS)
        _wire(remote, executor, source)

        outcome = mysql.migrate("examplec", ["examplec_wp"])

        applied = [e[1] for e in source.events if e[0] == "apply"]
        assert len(applied) == 2
        assert "CREATE USER IF NOT EXISTS 'examplec'@'localhost' IDENTIFIED WITH mysql_native_password" in applied[0]
        assert "'examplec_wp'@'localhost'" in applied[0]
        assert applied[1] == "GRANT ALL PRIVILEGES ON `examplec\\_%`.* TO `examplec`@`localhost`;\n"
        assert outcome.users_applied == 2
        assert outcome.grants_applied == 1

    def test_statements_are_not_logged(
        self, mysql: MySQLService, remote: MagicMock, executor: MagicMock,
    ):
        """Statements carrying password hashes are run as sensitive."""
        _wire(remote, executor, FakeSource(users=USER_ROWS))
        mysql.migrate_users("examplec")
        assert executor.run.call_args.kwargs["sensitive"] is True

    def test_grant_failure_is_partial(
        self, mysql: MySQLService, remote: MagicMock, executor: MagicMock,
    ):
        """Grant replication problems are warnings, not failures."""
        source = FakeSource(users=USER_ROWS, fail_query="SHOW GRANTS")
        _wire(remote, executor, source)

        outcome = mysql.migrate("examplec", ["examplec_wp"])

        assert outcome.databases == ["examplec_wp"]
        assert outcome.partial
        assert outcome.grants_applied == 0
        assert outcome.warnings[0].startswith("grants:")

    def test_user_failure_is_partial(
        self, mysql: MySQLService, remote: MagicMock, executor: MagicMock,
    ):
        """User replication problems are warnings and grants are still tried."""
        source = FakeSource(grants=GRANT_ROWS, fail_query="SELECT User")
        _wire(remote, executor, source)

        outcome = mysql.migrate("examplec", ["examplec_wp"])

        assert outcome.partial
        assert outcome.grants_applied == 1
