"""Run-wide flags shared by the executor, the remote shell and the workflows."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from swm.core.config import AppConfig, DEFAULT_CONFIG_PATH
from swm.core.output import Console, console, Verbosity


@dataclass
class ExecutionContext:
    """Flags of one swm invocation.

    Attributes:
        dry_run: Only read-only commands run; changes are reported instead
        yes: Do not ask before migrating
        verbosity: One of Verbosity
        no_color: Plain output
        config_path: YAML configuration file
    """

    dry_run: bool = False
    yes: bool = False
    verbosity: int = Verbosity.NORMAL
    no_color: bool = False
    config_path: Path = DEFAULT_CONFIG_PATH

    _config: Optional[AppConfig] = field(default=None, repr=False)
    _console: Console = field(default=console, repr=False)

    def __post_init__(self) -> None:
        self._console.configure(verbosity=self.verbosity, dry_run=self.dry_run, no_color=self.no_color)

    @property
    def config(self) -> AppConfig:
        """Configuration, read from config_path on first use.

        Raises:
            ConfigurationError: If the file cannot be parsed or is invalid
        """
        if self._config is None:
            self._config = AppConfig(config_path=self.config_path)
        return self._config

    @property
    def console(self) -> Console:
        return self._console

    @property
    def is_verbose(self) -> bool:
        return self.verbosity >= Verbosity.VERBOSE

    @property
    def should_confirm(self) -> bool:
        """A dry run changes nothing, so it is never confirmed."""
        return not (self.yes or self.dry_run)


def create_context(
    dry_run: bool = False,
    yes: bool = False,
    verbose: int = 0,
    quiet: bool = False,
    no_color: bool = False,
    config: Optional[Path] = None,
    app_config: Optional[AppConfig] = None,
) -> ExecutionContext:
    """Build the context from the global CLI options.

    ``--quiet`` wins over any number of ``-v``. ``app_config`` is used by
    tests to skip reading a file.
    """
    verbosity = Verbosity.QUIET if quiet else min(Verbosity.NORMAL + verbose, Verbosity.DEBUG)
    return ExecutionContext(
        dry_run=dry_run,
        yes=yes,
        verbosity=verbosity,
        no_color=no_color,
        config_path=config or DEFAULT_CONFIG_PATH,
        _config=app_config,
    )
