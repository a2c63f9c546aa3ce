"""Unit tests for configuration loading."""

from pathlib import Path

import pytest

from swm.core.config import (
    AppConfig,
    MigrationConfig,
    SiteWorxConfig,
    get_example_config,
    init_config,
)
from swm.core.exceptions import ConfigurationError


class TestMigrationConfig:
    """Tests for the configuration model."""

    def test_defaults(self):
        """Defaults match the InterWorx layout and the standard dump options."""
        config = MigrationConfig()
        assert config.ssh.user == "root"
        assert config.ssh.connect_timeout == 10
        assert config.siteworx.iworx_bin == "/home/interworx/bin"
        assert config.mysql.dump_options == [
            "--single-transaction", "--routines", "--triggers", "--events",
        ]
        assert config.network.probe_address == "8.8.8.8"
        assert config.paths.work_dir == "/tmp"

    def test_load_yaml(self, tmp_path: Path):
        """Values from the file override defaults section by section."""
        path = tmp_path / "config.yaml"
        path.write_text("ssh:\n  user: migrator\n  connect_timeout: 5\nsync:\n  extra_excludes: ['*/backups/*']\n")

        config = MigrationConfig.load(path)
        assert config.ssh.user == "migrator"
        assert config.ssh.connect_timeout == 5
        assert config.ssh.strict_host_key_checking == "accept-new"
        assert config.sync.extra_excludes == ["*/backups/*"]

    def test_load_missing_file(self, tmp_path: Path):
        """A missing file is a configuration error with a hint."""
        with pytest.raises(ConfigurationError) as exc:
            MigrationConfig.load(tmp_path / "nope.yaml")
        assert "swm config init" in exc.value.hint

    def test_load_invalid_yaml(self, tmp_path: Path):
        """Broken YAML is reported as a configuration error."""
        path = tmp_path / "config.yaml"
        path.write_text("ssh: [unclosed\n")
        with pytest.raises(ConfigurationError) as exc:
            MigrationConfig.load(path)
        assert "Invalid YAML" in str(exc.value)

    def test_load_invalid_value(self, tmp_path: Path):
        """Values failing validation are reported as configuration errors."""
        path = tmp_path / "config.yaml"
        path.write_text("ssh:\n  strict_host_key_checking: maybe\n")
        with pytest.raises(ConfigurationError) as exc:
            MigrationConfig.load(path)
        assert exc.value.exit_code == 2

    def test_relative_paths_rejected(self):
        """Configured paths must be absolute."""
        with pytest.raises(ValueError):
            SiteWorxConfig(home_root="home")

    def test_dump_options_must_be_long_options(self):
        """Dump options cannot smuggle positional arguments."""
        with pytest.raises(ValueError):
            MigrationConfig(mysql={"dump_options": ["otherdb"]})

    def test_load_or_default_without_file(self, tmp_path: Path):
        """Without a file, defaults are used."""
        config = MigrationConfig.load_or_default(tmp_path / "missing.yaml")
        assert config == MigrationConfig()

    def test_example_config_is_loadable(self, tmp_path: Path):
        """The example file parses to the defaults."""
        path = tmp_path / "config.yaml"
        path.write_text(get_example_config())
        assert MigrationConfig.load(path) == MigrationConfig()

    def test_tool_path(self):
        """InterWorx tools live under iworx_bin."""
        siteworx = SiteWorxConfig(iworx_bin="/opt/iworx/bin/")
        assert siteworx.tool("import.pex") == "/opt/iworx/bin/import.pex"


class TestAppConfig:
    """Tests for AppConfig environment overrides."""

    def test_env_overrides_ssh(self, monkeypatch: pytest.MonkeyPatch, tmp_path: Path):
        """SWM_SSH_USER and SWM_SSH_IDENTITY_FILE override the file."""
        monkeypatch.setenv("SWM_SSH_USER", "deploy")
        monkeypatch.setenv("SWM_SSH_IDENTITY_FILE", "/root/.ssh/migrate")

        app_config = AppConfig(config_path=tmp_path / "missing.yaml")
        assert app_config.ssh.user == "deploy"
        assert app_config.ssh.identity_file == Path("/root/.ssh/migrate")

    def test_no_overrides(self, tmp_path: Path):
        """Without environment overrides the file values stand."""
        app_config = AppConfig(config_path=tmp_path / "missing.yaml")
        assert app_config.ssh.user == "root"
        assert app_config.ssh.identity_file is None


class TestInitConfig:
    """Tests for init_config."""

    def test_creates_file(self, tmp_path: Path):
        """The example config is written with restricted permissions."""
        path = tmp_path / "etc" / "config.yaml"
        init_config(path)
        assert path.read_text() == get_example_config()
        assert path.stat().st_mode & 0o777 == 0o600

    def test_refuses_overwrite(self, tmp_path: Path):
        """An existing file is only replaced with force."""
        path = tmp_path / "config.yaml"
        path.write_text("ssh: {}\n")
        with pytest.raises(ConfigurationError):
            init_config(path)

        init_config(path, force=True)
        assert path.read_text() == get_example_config()
