"""SSH access to the source server.

Every remote command is built from an argument list and quoted with
shlex before it reaches the remote shell, so domain names, database
names and paths are never reinterpreted there. Commands that need a
glob or a pipeline go through ``sh -c`` with their values passed as
positional parameters.
"""

import shlex
from pathlib import Path
from typing import Optional

from swm.core.config import SSHConfig
from swm.core.context import ExecutionContext
from swm.core.exceptions import (
    ConnectivityError,
    ExecutionError,
    RemoteExecutionError,
    TransferError,
)
from swm.core.executor import CommandExecutor, CommandResult

# ssh exits with 255 when the session itself fails
SSH_FAILURE_CODE = 255

REMOTE_TEMP_TEMPLATE = "/tmp/swm-XXXXXXXX"


class RemoteShell:
    """Run commands on, and copy files from, the source server.

    Attributes:
        host: Source server hostname or IP
        port: SSH port
        ssh: SSH transport settings
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        host: str,
        port: int = 22,
        ssh: Optional[SSHConfig] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.host = host
        self.port = port
        self.ssh = ssh or SSHConfig()

    @property
    def target(self) -> str:
        """user@host for ssh, scp and rsync."""
        return f"{self.ssh.user}@{self.host}"

    def remote_spec(self, path: str) -> str:
        """user@host:path for scp and rsync; IPv6 literals are bracketed."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.ssh.user}@{host}:{path}"

    def ssh_options(self, connect_timeout: Optional[int] = None) -> list[str]:
        """Options shared by ssh and scp (port flag excluded)."""
        options = [
            "-o", "BatchMode=yes",
            "-o", f"StrictHostKeyChecking={self.ssh.strict_host_key_checking}",
        ]
        if connect_timeout:
            options += ["-o", f"ConnectTimeout={connect_timeout}"]
        if self.ssh.identity_file:
            options += ["-i", str(self.ssh.identity_file)]
        return options

    def ssh_command(self, argv: list[str], connect_timeout: Optional[int] = None) -> list[str]:
        """Full local argv running ``argv`` on the source server."""
        return [
            "ssh", "-p", str(self.port),
            *self.ssh_options(connect_timeout),
            self.target,
            "--",
            shlex.join(argv),
        ]

    def rsync_transport(self) -> str:
        """Value for rsync's -e option."""
        return shlex.join(["ssh", "-p", str(self.port), *self.ssh_options()])

    def run(
        self,
        argv: list[str],
        *,
        description: Optional[str] = None,
        check: bool = True,
        read_only: bool = False,
        connect_timeout: Optional[int] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """Run a command on the source server.

        A failed SSH session always raises. A non-zero exit of the remote
        command raises only when ``check`` is set; otherwise the caller gets
        the result and decides.

        Raises:
            RemoteExecutionError: Session failure, or remote failure with check=True
        """
        command = self.ssh_command(argv, connect_timeout)

        try:
            result = self.executor.run(
                command,
                description=description,
                check=False,
                read_only=read_only,
                timeout=timeout,
            )
        except ExecutionError as e:
            raise RemoteExecutionError(
                f"Remote command failed on {self.host}",
                command=shlex.join(argv),
                hint=e.hint,
                details=e.details,
            ) from e

        if result.return_code == SSH_FAILURE_CODE:
            raise RemoteExecutionError(
                f"SSH session to {self.host}:{self.port} failed",
                command=shlex.join(argv),
                return_code=result.return_code,
                stderr=result.stderr,
                hint="Check that the source server is reachable and accepts this server's SSH key",
            )

        if check and not result.success:
            raise RemoteExecutionError(
                f"Remote command failed on {self.host}: {description or shlex.join(argv)}",
                command=shlex.join(argv),
                return_code=result.return_code,
                stderr=result.stderr,
            )

        return result

    def stream_to_file(
        self,
        argv: list[str],
        path: Path,
        *,
        description: Optional[str] = None,
    ) -> None:
        """Run a command remotely and write its stdout to a local file.

        Raises:
            RemoteExecutionError: If the session or the command fails
        """
        command = self.ssh_command(argv)
        result = self.executor.run(
            command,
            description=description,
            check=False,
            stdout_path=path,
        )
        if not result.success:
            raise RemoteExecutionError(
                f"Remote command failed on {self.host}: {description or shlex.join(argv)}",
                command=shlex.join(argv),
                return_code=result.return_code,
                stderr=result.stderr,
            )

    def test_connection(self) -> None:
        """Probe the source server with a bounded connect timeout.

        Raises:
            ConnectivityError: If the probe fails
        """
        try:
            result = self.run(
                ["echo", "ok"],
                read_only=True,
                check=True,
                connect_timeout=self.ssh.connect_timeout,
                timeout=self.ssh.connect_timeout * 3,
            )
        except ExecutionError as e:
            raise ConnectivityError(
                f"Failed to connect to {self.target} on port {self.port}",
                hint="Ensure this server's SSH key is authorized on the source server",
                details=e.details,
            ) from e

        if "ok" not in result.stdout:
            raise ConnectivityError(
                f"Unexpected response from {self.host} during connectivity probe",
                details=[result.stdout.strip()[:200]],
            )

    def make_temp_dir(self) -> str:
        """Create a private directory on the source server.

        Returns:
            Absolute path of the new directory
        """
        result = self.run(
            ["mktemp", "-d", REMOTE_TEMP_TEMPLATE],
            description="Create temporary directory on source server",
        )
        if self.ctx.dry_run:
            return REMOTE_TEMP_TEMPLATE
        path = result.stdout.strip()
        if not path.startswith("/tmp/swm-"):
            raise RemoteExecutionError(
                f"Unexpected temporary directory from {self.host}: {path!r}",
            )
        return path

    def remove(self, path: str) -> bool:
        """Remove a file or directory on the source server.

        Failure is reported as a warning; it never masks the error of
        the step that triggered the cleanup.

        Returns:
            True if the removal succeeded
        """
        try:
            result = self.run(["rm", "-rf", "--", path], check=False)
        except RemoteExecutionError as e:
            self.ctx.console.warn(f"Could not remove {path} on {self.host}: {e}")
            return False

        if not result.success:
            self.ctx.console.warn(
                f"Could not remove {path} on {self.host}: {result.stderr.strip()}"
            )
            return False

        self.ctx.console.debug(f"Removed {path} on {self.host}")
        return True

    def copy_from(self, remote_path: str, local_path: Path) -> None:
        """Copy one file from the source server with scp.

        Raises:
            TransferError: If the copy fails
        """
        command = [
            "scp", "-P", str(self.port),
            *self.ssh_options(),
            self.remote_spec(remote_path),
            str(local_path),
        ]
        result = self.executor.run(
            command,
            description=f"Copy {remote_path} from {self.host}",
            check=False,
        )
        if not result.success:
            raise TransferError(
                f"Failed to copy {remote_path} from {self.host}",
                details=[f"Exit code: {result.return_code}", result.stderr.strip()],
            )
