"""Console output for swm.

Progress lines go to stdout, warnings and errors to stderr so that a
migration piped into a log file still shows problems on the terminal.
"""

from enum import IntEnum
from typing import Any, Mapping

from rich.console import Console as RichConsole
from rich.panel import Panel
from rich.prompt import Confirm


class Verbosity(IntEnum):
    """Output verbosity levels."""
    QUIET = 0
    NORMAL = 1
    VERBOSE = 2
    DEBUG = 3


# level -> (prefix, minimum verbosity, stderr)
_LEVELS: dict[str, tuple[str, Verbosity, bool]] = {
    "info": ("[green][INFO][/green]", Verbosity.NORMAL, False),
    "success": ("[green][OK][/green]", Verbosity.NORMAL, False),
    "step": ("[blue]->[/blue]", Verbosity.NORMAL, False),
    "warn": ("[yellow][WARN][/yellow]", Verbosity.QUIET, True),
    "error": ("[red][ERROR][/red]", Verbosity.QUIET, True),
    "hint": ("[cyan]Hint:[/cyan]", Verbosity.QUIET, True),
    "debug": ("[cyan][DEBUG][/cyan]", Verbosity.DEBUG, False),
}


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "[green]Yes[/green]" if value else "[red]No[/red]"
    if value is None:
        return "[dim]-[/dim]"
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value) or "[dim]none[/dim]"
    return str(value)


class Console:
    """Wraps a stdout and a stderr Rich console behind one verbosity setting."""

    def __init__(self) -> None:
        self.verbosity = Verbosity.NORMAL
        self.dry_run = False
        self._build(no_color=False)

    def _build(self, no_color: bool) -> None:
        self.no_color = no_color
        self._out = RichConsole(highlight=False, no_color=no_color)
        self._err = RichConsole(stderr=True, highlight=False, no_color=no_color)

    def configure(self, verbosity: int = 1, dry_run: bool = False, no_color: bool = False) -> None:
        """Apply the global CLI flags."""
        self.verbosity = Verbosity(max(min(verbosity, Verbosity.DEBUG), Verbosity.QUIET))
        self.dry_run = dry_run
        if no_color != self.no_color:
            self._build(no_color)

    def _emit(self, level: str, message: str) -> None:
        prefix, minimum, stderr = _LEVELS[level]
        if self.verbosity < minimum:
            return
        (self._err if stderr else self._out).print(f"{prefix} {message}")

    def info(self, message: str) -> None:
        self._emit("info", message)

    def success(self, message: str) -> None:
        self._emit("success", message)

    def step(self, message: str) -> None:
        self._emit("step", message)

    def warn(self, message: str) -> None:
        self._emit("warn", message)

    def error(self, message: str) -> None:
        self._emit("error", message)

    def hint(self, message: str) -> None:
        self._emit("hint", message)

    def debug(self, message: str) -> None:
        self._emit("debug", message)

    def verbose(self, message: str) -> None:
        """Print dim detail shown with -v."""
        if self.verbosity >= Verbosity.VERBOSE:
            self._out.print(f"[dim]{message}[/dim]")

    def dry_run_msg(self, message: str) -> None:
        """Report a change that a dry run skips."""
        if self.dry_run:
            self._out.print(f"[blue][DRY-RUN][/blue] Would: {message}")

    def print(self, message: Any = "", **kwargs: Any) -> None:
        self._out.print(message, **kwargs)

    def print_error(self, message: Any = "", **kwargs: Any) -> None:
        self._err.print(message, **kwargs)

    def yaml(self, yaml_text: str, title: str = "Configuration") -> None:
        self._out.print(Panel(yaml_text, title=title, border_style="cyan"))

    def _panel(self, title: str, items: Mapping[str, Any], border: str) -> Panel:
        body = "\n".join(f"[bold]{key}:[/bold] {_format_value(value)}" for key, value in items.items())
        return Panel(body, title=title, border_style=border)

    def summary(self, title: str, items: Mapping[str, Any]) -> None:
        """Print key/value pairs in a panel before a run."""
        if self.verbosity >= Verbosity.NORMAL:
            self._out.print(self._panel(title, items, "blue"))

    def operation_summary(self, operation: str, success: bool, details: Mapping[str, Any]) -> None:
        """Print the outcome panel of a migration.

        Failures are printed to stderr and are never suppressed by --quiet.
        """
        if success:
            if self.verbosity >= Verbosity.NORMAL:
                self._out.print(self._panel(f"{operation} - [green]SUCCESS[/green]", details, "green"))
        else:
            self._err.print(self._panel(f"{operation} - [red]FAILED[/red]", details, "red"))

    def status(self, message: str) -> Any:
        """Spinner shown around long blocking transfers (scp, rsync)."""
        return self._out.status(message, spinner="dots")

    def confirm(self, message: str, default: bool = False) -> bool:
        """Ask a yes/no question; end of input counts as no."""
        try:
            return Confirm.ask(message, default=default, console=self._out)
        except (EOFError, KeyboardInterrupt):
            return False


console = Console()
