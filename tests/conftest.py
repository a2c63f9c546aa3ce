"""Shared fixtures for unit and integration tests."""

from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock

import pytest

from swm.core.audit import configure_audit_logger
from swm.core.config import AppConfig, MigrationConfig
from swm.core.context import ExecutionContext, create_context
from swm.core.executor import CommandExecutor, CommandResult
from swm.services.remote import RemoteShell


def _result(return_code: int = 0, stdout: str = "", stderr: str = "") -> CommandResult:
    """Build a CommandResult for mocked executors."""
    return CommandResult(command=[], return_code=return_code, stdout=stdout, stderr=stderr)


@pytest.fixture(autouse=True)
def no_audit_log() -> Generator[None, None, None]:
    """Keep tests from writing to the system audit log."""
    configure_audit_logger(enabled=False)
    yield
    configure_audit_logger(enabled=False)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove SWM_ overrides inherited from the environment."""
    monkeypatch.delenv("SWM_SSH_USER", raising=False)
    monkeypatch.delenv("SWM_SSH_IDENTITY_FILE", raising=False)


@pytest.fixture
def home_root(tmp_path: Path) -> Path:
    """Stand-in for /home on the destination server."""
    path = tmp_path / "home"
    path.mkdir()
    return path


@pytest.fixture
def app_config(tmp_path: Path, home_root: Path) -> AppConfig:
    """Configuration with every local path under tmp_path."""
    config = MigrationConfig(
        siteworx={"home_root": str(home_root)},
        paths={"work_dir": str(tmp_path / "work"), "lock_dir": str(tmp_path / "lock")},
        audit={"enabled": False, "log_path": str(tmp_path / "audit.log")},
    )
    return AppConfig(config_path=tmp_path / "config.yaml", config=config)


@pytest.fixture
def ctx(app_config: AppConfig) -> ExecutionContext:
    """Non-interactive execution context."""
    return create_context(yes=True, app_config=app_config)


@pytest.fixture
def dry_ctx(app_config: AppConfig) -> ExecutionContext:
    """Dry-run execution context."""
    return create_context(dry_run=True, yes=True, app_config=app_config)


@pytest.fixture
def executor(ctx: ExecutionContext) -> MagicMock:
    """Local executor mock; every command succeeds with no output by default."""
    mock = MagicMock(spec=CommandExecutor)
    mock.ctx = ctx
    mock.run.return_value = _result()
    return mock


@pytest.fixture
def remote(ctx: ExecutionContext) -> MagicMock:
    """RemoteShell mock for the source server."""
    mock = MagicMock(spec=RemoteShell)
    mock.ctx = ctx
    mock.host = "source.example.net"
    mock.port = 22
    mock.target = "root@source.example.net"
    mock.remote_spec.side_effect = lambda path: f"root@source.example.net:{path}"
    mock.rsync_transport.return_value = "ssh -p 22 -o BatchMode=yes"
    mock.run.return_value = _result()
    mock.make_temp_dir.return_value = "/tmp/swm-abc12345"
    mock.remove.return_value = True
    return mock


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Per-run local workspace."""
    path = tmp_path / "workspace"
    path.mkdir()
    return path
