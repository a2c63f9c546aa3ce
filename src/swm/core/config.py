"""swm configuration.

One YAML file (``/etc/swm/config.yaml`` by default) with a section per
concern. Every key is optional. ``SWM_SSH_USER`` and
``SWM_SSH_IDENTITY_FILE`` override the ssh section so one file can serve
several operators.
"""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from swm.core.exceptions import ConfigurationError, ValidationError
from swm.core.validation import validate_absolute_path, validate_hostname


DEFAULT_CONFIG_PATH = Path("/etc/swm/config.yaml")
DEFAULT_LOG_PATH = Path("/var/log/swm/audit.log")
DEFAULT_LOCK_DIR = Path("/run/lock/swm")


def _absolute(v: str) -> str:
    try:
        return validate_absolute_path(v)
    except ValidationError as e:
        raise ValueError(e.message) from e


class SSHConfig(BaseModel):
    """SSH transport settings for the source server."""

    user: str = "root"
    connect_timeout: int = 10
    strict_host_key_checking: str = "accept-new"
    identity_file: Optional[Path] = None

    @field_validator("connect_timeout")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if not 1 <= v <= 300:
            raise ValueError("connect_timeout must be between 1 and 300 seconds")
        return v

    @field_validator("strict_host_key_checking")
    @classmethod
    def validate_host_key_mode(cls, v: str) -> str:
        valid_modes = {"yes", "no", "accept-new"}
        if v not in valid_modes:
            raise ValueError(f"strict_host_key_checking must be one of: {sorted(valid_modes)}")
        return v


class SiteWorxConfig(BaseModel):
    """Locations of the InterWorx tools, identical on both servers."""

    iworx_bin: str = "/home/interworx/bin"
    accounts_glob: str = "/home/*/var/*/siteworx/accounts/*/domain"
    home_root: str = "/home"

    @field_validator("iworx_bin", "accounts_glob", "home_root")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        return _absolute(v)

    def tool(self, name: str) -> str:
        """Full path of an InterWorx tool, e.g. ``listaccounts.pex``."""
        return f"{self.iworx_bin.rstrip('/')}/{name}"


class MySQLConfig(BaseModel):
    """mysqldump settings used for every database."""

    dump_options: list[str] = Field(
        default_factory=lambda: [
            "--single-transaction",
            "--routines",
            "--triggers",
            "--events",
        ]
    )

    @field_validator("dump_options")
    @classmethod
    def validate_dump_options(cls, v: list[str]) -> list[str]:
        for option in v:
            if not option.startswith("--"):
                raise ValueError(f"dump option must be a long option: {option}")
        return v


class SyncConfig(BaseModel):
    """rsync settings for sync migrations."""

    extra_excludes: list[str] = Field(default_factory=list)


class PathsConfig(BaseModel):
    """Local working directories."""

    work_dir: str = "/tmp"
    lock_dir: str = str(DEFAULT_LOCK_DIR)

    @field_validator("work_dir", "lock_dir")
    @classmethod
    def validate_paths(cls, v: str) -> str:
        return _absolute(v)


class NetworkConfig(BaseModel):
    """Primary address discovery."""

    probe_address: str = "8.8.8.8"

    @field_validator("probe_address")
    @classmethod
    def validate_probe(cls, v: str) -> str:
        try:
            return validate_hostname(v, "probe_address")
        except ValidationError as e:
            raise ValueError(e.message) from e


class AuditConfig(BaseModel):
    """Audit log settings."""

    enabled: bool = True
    log_path: str = str(DEFAULT_LOG_PATH)

    @field_validator("log_path")
    @classmethod
    def validate_log_path(cls, v: str) -> str:
        return _absolute(v)


class MigrationConfig(BaseModel):
    """Root of the YAML file."""

    ssh: SSHConfig = Field(default_factory=SSHConfig)
    siteworx: SiteWorxConfig = Field(default_factory=SiteWorxConfig)
    mysql: MySQLConfig = Field(default_factory=MySQLConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    audit: AuditConfig = Field(default_factory=AuditConfig)

    @classmethod
    def load(cls, path: Path) -> "MigrationConfig":
        """Parse and validate ``path``.

        Raises:
            ConfigurationError: Missing, unreadable, not YAML, or invalid values
        """
        try:
            text = path.read_text()
        except FileNotFoundError:
            raise ConfigurationError(
                f"Configuration file not found: {path}",
                hint="Create it with: swm config init",
            ) from None
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read configuration file: {path}",
                details=[str(e)],
                hint="swm normally runs as root",
            ) from e

        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in configuration file: {path}", details=[str(e)]) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file must contain a mapping of sections: {path}")

        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {path}",
                details=[f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
            ) from e

    @classmethod
    def load_or_default(cls, path: Optional[Path] = None) -> "MigrationConfig":
        """Like load, but a missing file means all defaults."""
        path = path or DEFAULT_CONFIG_PATH
        return cls.load(path) if path.exists() else cls()

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.model_dump(mode="json", exclude_none=True), sort_keys=False)


class EnvironmentOverrides(BaseSettings):
    """SWM_* environment variables applied over the YAML file."""

    model_config = SettingsConfigDict(env_prefix="SWM_", extra="ignore")

    ssh_user: Optional[str] = None
    ssh_identity_file: Optional[Path] = None


class AppConfig:
    """The loaded file with environment overrides applied.

    Sections are reachable as attributes: ``app_config.ssh``,
    ``app_config.paths`` and so on.
    """

    def __init__(self, config_path: Optional[Path] = None, config: Optional[MigrationConfig] = None) -> None:
        self.config_path = config_path or DEFAULT_CONFIG_PATH
        self.config = config or MigrationConfig.load_or_default(self.config_path)
        self.env = EnvironmentOverrides()

        if self.env.ssh_user:
            self.config.ssh.user = self.env.ssh_user
        if self.env.ssh_identity_file:
            self.config.ssh.identity_file = self.env.ssh_identity_file

    @property
    def ssh(self) -> SSHConfig:
        return self.config.ssh

    @property
    def siteworx(self) -> SiteWorxConfig:
        return self.config.siteworx

    @property
    def mysql(self) -> MySQLConfig:
        return self.config.mysql

    @property
    def sync(self) -> SyncConfig:
        return self.config.sync

    @property
    def paths(self) -> PathsConfig:
        return self.config.paths

    @property
    def network(self) -> NetworkConfig:
        return self.config.network

    @property
    def audit(self) -> AuditConfig:
        return self.config.audit


def get_example_config() -> str:
    """Commented configuration file holding the defaults."""
    return """# SiteWorx migration configuration
# Every setting is optional; the values below are the defaults.
# Install on the destination server, the one you run swm from.

# SSH access to the source server (key-based, no passwords)
ssh:
  user: root
  connect_timeout: 10  # seconds, applies to the connectivity probe
  strict_host_key_checking: accept-new  # yes, no, accept-new
  # identity_file: /root/.ssh/id_ed25519
  # Environment overrides: SWM_SSH_USER, SWM_SSH_IDENTITY_FILE

# InterWorx locations (same on both servers)
siteworx:
  iworx_bin: /home/interworx/bin
  accounts_glob: /home/*/var/*/siteworx/accounts/*/domain
  home_root: /home

# mysqldump options for every database
mysql:
  dump_options:
    - --single-transaction
    - --routines
    - --triggers
    - --events

# Additional rsync exclusions, appended to the built-in list
sync:
  extra_excludes: []

# Local directories
paths:
  work_dir: /tmp  # per-run directories are created below this
  lock_dir: /run/lock/swm

# Address used to find this server's primary IP
network:
  probe_address: 8.8.8.8

# JSON audit log
audit:
  enabled: true
  log_path: /var/log/swm/audit.log
"""


def init_config(path: Path, force: bool = False) -> None:
    """Write the example configuration to ``path`` (mode 0600).

    Raises:
        ConfigurationError: If ``path`` exists and force is not set
    """
    if path.exists() and not force:
        raise ConfigurationError(
            f"Configuration file already exists: {path}",
            hint="Use --force to overwrite",
        )
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(get_example_config())
    path.chmod(0o600)
