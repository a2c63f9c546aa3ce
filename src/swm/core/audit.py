"""JSON-lines audit trail of migrations.

Every event carries the invoking user, the run id and, inside
``AuditLogger.migration``, the source, domain and method of the
migration it belongs to. Writes are serialised with flock so that
concurrent swm runs for different accounts share one file safely.
Audit problems never stop a migration.
"""

import fcntl
import json
import os
import pwd
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Generator, Optional

from swm.core.config import DEFAULT_LOG_PATH
from swm.core.output import console


MAX_LOG_BYTES = 50 * 1024 * 1024
ROTATED_COPIES = 5

REDACTED = "***REDACTED***"
SENSITIVE_KEYS = ("password", "passwd", "secret", "token", "credential", "authentication_string", "hash")


class AuditEventType(Enum):
    SESSION_START = "session.start"
    SESSION_END = "session.end"

    MIGRATE_STRUCTURE = "migrate.structure"
    MIGRATE_SYNC = "migrate.sync"

    ACCOUNT_EXPORT = "account.export"
    ACCOUNT_TRANSFER = "account.transfer"
    ACCOUNT_IMPORT = "account.import"

    FILES_SYNC = "files.sync"

    DATABASE_MIGRATE = "database.migrate"
    DATABASE_GRANTS = "database.grants"


class AuditResult(Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DRY_RUN = "dry_run"
    PARTIAL = "partial"


def redact(key: str, value: Any) -> Any:
    """Replace values stored under secret-looking keys, recursively."""
    if any(marker in key.lower() for marker in SENSITIVE_KEYS):
        return REDACTED
    if isinstance(value, dict):
        return {k: redact(k, v) for k, v in value.items()}
    if isinstance(value, list):
        return [redact(key, v) for v in value]
    return value


def _actor() -> dict[str, Any]:
    uid = os.getuid()
    try:
        username = pwd.getpwuid(uid).pw_name
    except KeyError:
        username = str(uid)
    return {"uid": uid, "username": username, "sudo_user": os.environ.get("SUDO_USER")}


@dataclass
class AuditEvent:
    event_type: AuditEventType
    result: AuditResult
    target_type: Optional[str] = None
    target_name: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    parameters: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self, run_id: str, migration: Optional[dict[str, Any]]) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "result": self.result.value,
            "run_id": run_id,
            "migration": migration,
            "actor": _actor(),
            "target": {"type": self.target_type, "name": self.target_name},
            "parameters": redact("parameters", self.parameters),
            "message": self.message,
            "error": self.error,
        }


class AuditLogger:
    """Appends AuditEvents to a JSON-lines file.

    Args:
        log_path: Audit file, created 0640 in a 0750 directory
        enabled: When False every call is a no-op
        max_bytes: Size after which the file is rotated to ``.1`` .. ``.N``
    """

    def __init__(
        self,
        log_path: Optional[Path] = None,
        enabled: bool = True,
        max_bytes: int = MAX_LOG_BYTES,
        copies: int = ROTATED_COPIES,
    ) -> None:
        self.log_path = Path(log_path or DEFAULT_LOG_PATH)
        self.enabled = enabled
        self.max_bytes = max_bytes
        self.copies = copies
        self.run_id = uuid.uuid4().hex
        self._migration: Optional[dict[str, Any]] = None

    def log(self, event: AuditEvent) -> None:
        if not self.enabled:
            return
        line = json.dumps(event.to_dict(self.run_id, self._migration), default=str) + "\n"
        try:
            self.log_path.parent.mkdir(mode=0o750, parents=True, exist_ok=True)
            fd = os.open(self.log_path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o640)
            with os.fdopen(fd, "a") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
            if self.log_path.stat().st_size > self.max_bytes:
                self._rotate()
        except OSError as e:
            console.debug(f"Audit log not written ({self.log_path}): {e}")

    def _rotate(self) -> None:
        for i in range(self.copies - 1, 0, -1):
            older = self.log_path.with_name(f"{self.log_path.name}.{i}")
            if older.exists():
                older.replace(self.log_path.with_name(f"{self.log_path.name}.{i + 1}"))
        self.log_path.replace(self.log_path.with_name(f"{self.log_path.name}.1"))
        self.log_path.touch(mode=0o640)

    @contextmanager
    def migration(self, source: str, domain: str, method: str) -> Generator[str, None, None]:
        """Stamp every event logged inside the block with this migration."""
        migration_id = f"{domain}-{uuid.uuid4().hex[:8]}"
        self._migration = {"id": migration_id, "source": source, "domain": domain, "method": method}
        try:
            yield migration_id
        finally:
            self._migration = None

    def record(
        self,
        event_type: AuditEventType,
        result: AuditResult,
        target_type: Optional[str] = None,
        target_name: Optional[str] = None,
        message: Optional[str] = None,
        error: Optional[str] = None,
        **parameters: Any,
    ) -> None:
        self.log(AuditEvent(
            event_type=event_type,
            result=result,
            target_type=target_type,
            target_name=target_name,
            message=message,
            error=error,
            parameters=parameters,
        ))

    def log_session_start(self, command: str, parameters: dict[str, Any]) -> None:
        self.record(AuditEventType.SESSION_START, AuditResult.SUCCESS, message=command, **parameters)

    def log_session_end(self, exit_code: int) -> None:
        result = AuditResult.SUCCESS if exit_code == 0 else AuditResult.FAILURE
        self.record(AuditEventType.SESSION_END, result, exit_code=exit_code)

    def log_success(
        self, event_type: AuditEventType, target_type: str, target_name: str, message: Optional[str] = None,
    ) -> None:
        self.record(event_type, AuditResult.SUCCESS, target_type, target_name, message=message)

    def log_failure(self, event_type: AuditEventType, target_type: str, target_name: str, error: str) -> None:
        self.record(event_type, AuditResult.FAILURE, target_type, target_name, error=error)

    def log_partial(self, event_type: AuditEventType, target_type: str, target_name: str, error: str) -> None:
        """The step finished but some of its work was skipped."""
        self.record(event_type, AuditResult.PARTIAL, target_type, target_name, error=error)

    def log_dry_run(
        self, event_type: AuditEventType, target_type: str, target_name: str, message: Optional[str] = None,
    ) -> None:
        self.record(event_type, AuditResult.DRY_RUN, target_type, target_name, message=message)


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Logger used by the workflows; a default one until configured."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def configure_audit_logger(log_path: Optional[Path] = None, enabled: bool = True) -> AuditLogger:
    """Replace the process-wide logger, e.g. from the ``audit`` config section."""
    global _audit_logger
    _audit_logger = AuditLogger(log_path=log_path, enabled=enabled)
    return _audit_logger
