"""Domain to Linux username resolution for SiteWorx accounts.

Two lookups, tried in order on either server:
1. ``listaccounts.pex`` output, one account per line, username first
2. The per-account ``domain`` metadata files under the home directories

Both servers use the same matching logic; only the channel differs
(SSH for the source, local execution for the destination).
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Optional

from swm.core.config import SiteWorxConfig
from swm.core.context import ExecutionContext
from swm.core.exceptions import (
    IdentityResolutionError,
    PrerequisiteError,
    ValidationError,
)
from swm.core.executor import CommandExecutor, CommandResult
from swm.core.validation import validate_username
from swm.services.remote import RemoteShell

LOOKUP_LISTING = "listaccounts"
LOOKUP_METADATA = "metadata"

GREP_PARTIAL = 2


class HostRole(Enum):
    """Which side of the migration a lookup runs on."""
    SOURCE = "source"
    DESTINATION = "destination"


@dataclass(frozen=True)
class LookupResult:
    """Outcome of a single lookup step.

    ``username`` is None when the step found nothing. ``ambiguous`` marks a
    match that only contained the domain as a substring.
    """
    lookup: str
    username: Optional[str] = None
    ambiguous: bool = False

    @property
    def found(self) -> bool:
        return self.username is not None


@dataclass(frozen=True)
class AccountIdentity:
    """A resolved account on one server."""
    domain: str
    username: str
    host: HostRole
    lookup: str


def parse_account_listing(output: str, domain: str) -> LookupResult:
    """Pick the username for ``domain`` out of listaccounts output.

    The first line with a whitespace-separated token equal to the domain
    wins. Failing that, the first line containing the domain anywhere is
    used and flagged as ambiguous.
    """
    domain = domain.lower()
    substring_match: Optional[str] = None

    for line in output.splitlines():
        tokens = line.split()
        if not tokens or domain not in line.lower():
            continue

        candidate = tokens[0]
        try:
            validate_username(candidate)
        except ValidationError:
            continue

        if domain in (token.lower() for token in tokens[1:]):
            return LookupResult(LOOKUP_LISTING, candidate)
        if substring_match is None:
            substring_match = candidate

    if substring_match is not None:
        return LookupResult(LOOKUP_LISTING, substring_match, ambiguous=True)
    return LookupResult(LOOKUP_LISTING)


def parse_metadata_matches(output: str, home_root: str = "/home") -> LookupResult:
    """Derive the username from the first matching metadata file path.

    Paths look like ``/home/<username>/var/<domain>/siteworx/accounts/<n>/domain``;
    the username is the path segment right below the home root.
    """
    depth = len(PurePosixPath(home_root).parts)

    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        parts = PurePosixPath(line).parts
        if len(parts) <= depth:
            continue
        try:
            return LookupResult(LOOKUP_METADATA, validate_username(parts[depth]))
        except ValidationError:
            continue

    return LookupResult(LOOKUP_METADATA)


def metadata_pattern(domain: str) -> str:
    """Extended regex matching a metadata file whose content is ``domain``."""
    return "^" + domain.lower().replace(".", r"\.") + "[[:space:]]*$"


class IdentityResolver:
    """Resolve the Linux username owning a domain on either server."""

    def __init__(
        self,
        ctx: ExecutionContext,
        executor: CommandExecutor,
        siteworx: SiteWorxConfig,
        remote: Optional[RemoteShell] = None,
    ) -> None:
        self.ctx = ctx
        self.executor = executor
        self.siteworx = siteworx
        self.remote = remote

    def _run(self, host: HostRole, argv: list[str]) -> CommandResult:
        if host is HostRole.SOURCE:
            if self.remote is None:
                raise ValueError("Source lookups need a RemoteShell")
            return self.remote.run(argv, check=False, read_only=True)
        return self.executor.run(argv, check=False, read_only=True)

    def lookup_from_listing(self, domain: str, host: HostRole) -> LookupResult:
        """Primary lookup through listaccounts.pex."""
        try:
            result = self._run(host, [self.siteworx.tool("listaccounts.pex")])
        except PrerequisiteError:
            self.ctx.console.debug(f"listaccounts.pex not available on {host.value} server")
            return LookupResult(LOOKUP_LISTING)

        if not result.success:
            self.ctx.console.debug(
                f"listaccounts.pex exited {result.return_code} on {host.value} server"
            )
            return LookupResult(LOOKUP_LISTING)

        return parse_account_listing(result.stdout, domain)

    def lookup_from_metadata(self, domain: str, host: HostRole) -> LookupResult:
        """Fallback lookup scanning the SiteWorx account metadata files."""
        script = f'grep -l -E -e "$1" {self.siteworx.accounts_glob} 2>/dev/null'
        result = self._run(host, ["sh", "-c", script, "swm-lookup", metadata_pattern(domain)])

        # grep exits 2 when some path errors, even after printing matches
        if result.return_code not in (0, GREP_PARTIAL):
            return LookupResult(LOOKUP_METADATA)

        return parse_metadata_matches(result.stdout, self.siteworx.home_root)

    def resolve_username(self, domain: str, host: HostRole) -> AccountIdentity:
        """Determine the Linux username for ``domain``.

        Raises:
            IdentityResolutionError: If neither lookup finds the account
            RemoteExecutionError: If the source server cannot be reached
        """
        self.ctx.console.step(
            f"Determining Linux username for domain: {domain} (from {host.value})"
        )

        for lookup in (self.lookup_from_listing, self.lookup_from_metadata):
            result = lookup(domain, host)
            if result.found:
                if result.ambiguous:
                    self.ctx.console.warn(
                        f"'{domain}' only matched part of an account listing line; "
                        f"using first match '{result.username}'"
                    )
                self.ctx.console.verbose(f"Found via {result.lookup}: {result.username}")
                return AccountIdentity(
                    domain=domain,
                    username=result.username,
                    host=host,
                    lookup=result.lookup,
                )
            self.ctx.console.verbose(f"No match via {result.lookup}")

        raise IdentityResolutionError(
            f"Failed to determine Linux username for domain {domain} on {host.value} server",
            hint="Check that the domain is the account's primary SiteWorx domain",
        )
