"""Running local commands.

Every command is an argv list handed straight to ``subprocess.run``;
nothing goes through a shell. Database dumps are streamed through files
(``stdout_path`` / ``stdin_path``) instead of being held in memory.
"""

import shlex
import subprocess
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from swm.core.context import ExecutionContext
from swm.core.exceptions import ExecutionError, PrerequisiteError


@dataclass
class CommandResult:
    command: list[str]
    return_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.return_code == 0


def _display(
    command: list[str],
    sensitive: bool,
    stdin_path: Optional[Path],
    stdout_path: Optional[Path],
) -> str:
    text = "<sensitive command>" if sensitive else shlex.join(command)
    if stdin_path:
        text += f" < {stdin_path}"
    if stdout_path:
        text += f" > {stdout_path}"
    return text


def _decode(output: Optional[bytes]) -> str:
    return output.decode(errors="replace") if isinstance(output, bytes) else ""


class CommandExecutor:
    """Runs commands on this server.

    In dry-run mode only ``read_only`` commands run, so a preview still
    shows the real account and database names while nothing changes.
    """

    def __init__(self, ctx: ExecutionContext) -> None:
        self.ctx = ctx

    def run(
        self,
        command: list[str],
        *,
        description: Optional[str] = None,
        check: bool = True,
        read_only: bool = False,
        sensitive: bool = False,
        timeout: Optional[int] = None,
        input_text: Optional[str] = None,
        stdin_path: Optional[Path] = None,
        stdout_path: Optional[Path] = None,
    ) -> CommandResult:
        """Run ``command`` and capture its output.

        Args:
            command: argv list
            description: Printed as a step line before running
            check: Raise on a non-zero exit instead of returning the result
            read_only: Safe to run during a dry run
            sensitive: Mask the command line in logs (it carries secrets)
            timeout: Seconds before the command is killed
            input_text: Text written to stdin
            stdin_path: File streamed to stdin
            stdout_path: File receiving stdout; ``stdout`` is then empty

        Raises:
            ExecutionError: Non-zero exit with check, timeout, missing stdin_path
            PrerequisiteError: The executable does not exist
        """
        if description:
            self.ctx.console.step(description)

        shown = _display(command, sensitive, stdin_path, stdout_path)
        if self.ctx.dry_run and not read_only:
            self.ctx.console.dry_run_msg(f"Run: {shown}")
            return CommandResult(command=command, return_code=0, stdout="", stderr="")
        self.ctx.console.debug(f"Running: {shown}")

        if stdin_path and not Path(stdin_path).exists():
            raise ExecutionError(f"Input file not found: {stdin_path}", command=shown)

        try:
            with ExitStack() as files:
                completed = subprocess.run(
                    command,
                    stdin=files.enter_context(open(stdin_path, "rb")) if stdin_path else None,
                    stdout=files.enter_context(open(stdout_path, "wb")) if stdout_path else subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    input=input_text.encode() if input_text is not None else None,
                    timeout=timeout,
                )
        except subprocess.TimeoutExpired as e:
            raise ExecutionError(
                f"Command timed out after {timeout}s: {description or shown}",
                command=shown,
            ) from e
        except FileNotFoundError as e:
            raise PrerequisiteError(
                f"Command not found: {command[0]}",
                hint=f"Install the package providing '{command[0]}'",
            ) from e

        result = CommandResult(
            command=command,
            return_code=completed.returncode,
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
        )
        if check and not result.success:
            raise ExecutionError(
                f"Command failed: {description or shown}",
                command=shown,
                return_code=result.return_code,
                stderr=result.stderr,
            )
        return result
