"""Errors raised by swm.

Each class maps to its own process exit code so wrapper scripts can tell
a refused SSH login (20) from a failed import (25) without parsing
output. ``hint`` is printed below the message and ``details`` as dim
lines after it.
"""

from typing import Optional


class SWMError(Exception):
    """Base class; ``exit_code`` is the status swm exits with."""

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        *,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.details = list(details or [])

    def __str__(self) -> str:
        return self.message


class ConfigurationError(SWMError):
    """The YAML file is unreadable, malformed or holds an invalid value."""
    exit_code = 2


class ValidationError(SWMError):
    """Bad invocation: missing option, bad host, domain, port or method."""
    exit_code = 3


class ExecutionError(SWMError):
    """A local command exited non-zero, timed out or could not start.

    Attributes:
        command: Display form of the command (masked when sensitive)
        return_code: Exit status, when the command ran
        stderr: Captured error output
    """
    exit_code = 5

    def __init__(
        self,
        message: str,
        *,
        command: Optional[str] = None,
        return_code: Optional[int] = None,
        stderr: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        details = list(details or [])
        if return_code is not None:
            details.append(f"Exit code: {return_code}")
        if stderr and stderr.strip():
            details.append(f"Error output: {stderr.strip()}")
        super().__init__(message, hint=hint, details=details)
        self.command = command
        self.return_code = return_code
        self.stderr = stderr


class PrerequisiteError(SWMError):
    """A binary swm shells out to (ssh, scp, rsync, mysql, ...) is missing."""
    exit_code = 6


class ConnectivityError(SWMError):
    """The initial SSH probe to the source server failed."""
    exit_code = 20


class RemoteExecutionError(ExecutionError):
    """A required command on the source server failed.

    Also raised when ssh itself fails (exit 255) for a later command.
    """
    exit_code = 21


class SyncError(RemoteExecutionError):
    """rsync of the account home directory failed."""


class IdentityResolutionError(SWMError):
    """The Linux username for a domain could not be determined."""
    exit_code = 22


class NetworkDiscoveryError(SWMError):
    """The destination server's primary address could not be determined."""
    exit_code = 23


class TransferError(SWMError):
    """Copying the account archive from the source server failed."""
    exit_code = 24


class AccountImportError(SWMError):
    """The SiteWorx import of the account archive failed."""
    exit_code = 25


class PreconditionError(SWMError):
    """sync was requested before structure-only created the account here."""
    exit_code = 26


class DatabaseMigrationError(SWMError):
    """Dumping or restoring a database failed.

    Attributes:
        database: Name of the database being migrated when the failure occurred
    """
    exit_code = 27

    def __init__(
        self,
        message: str,
        *,
        database: Optional[str] = None,
        hint: Optional[str] = None,
        details: Optional[list[str]] = None,
    ) -> None:
        super().__init__(message, hint=hint, details=details)
        self.database = database


class LockError(SWMError):
    """Another migration for the same source and domain is running."""
    exit_code = 28
