"""Core framework components for the SiteWorx migration CLI."""

from swm.core.exceptions import (
    SWMError,
    ConfigurationError,
    ValidationError,
    ExecutionError,
    PrerequisiteError,
    ConnectivityError,
    RemoteExecutionError,
    SyncError,
    IdentityResolutionError,
    NetworkDiscoveryError,
    TransferError,
    AccountImportError,
    PreconditionError,
    DatabaseMigrationError,
    LockError,
)

from swm.core.context import ExecutionContext, create_context
from swm.core.output import console, Console, Verbosity
from swm.core.config import AppConfig, MigrationConfig
from swm.core.audit import AuditLogger, AuditEvent, AuditEventType, AuditResult, get_audit_logger
from swm.core.executor import CommandExecutor, CommandResult

__all__ = [
    # Exceptions
    "SWMError",
    "ConfigurationError",
    "ValidationError",
    "ExecutionError",
    "PrerequisiteError",
    "ConnectivityError",
    "RemoteExecutionError",
    "SyncError",
    "IdentityResolutionError",
    "NetworkDiscoveryError",
    "TransferError",
    "AccountImportError",
    "PreconditionError",
    "DatabaseMigrationError",
    "LockError",
    # Context
    "ExecutionContext",
    "create_context",
    # Output
    "console",
    "Console",
    "Verbosity",
    # Config
    "AppConfig",
    "MigrationConfig",
    # Audit
    "AuditLogger",
    "AuditEvent",
    "AuditEventType",
    "AuditResult",
    "get_audit_logger",
    # Executor
    "CommandExecutor",
    "CommandResult",
]
