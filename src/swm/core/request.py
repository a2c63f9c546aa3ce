"""The migration request built from invocation parameters."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from swm.core.exceptions import ValidationError
from swm.core.validation import validate_domain, validate_hostname, validate_port


class MigrationMethod(str, Enum):
    """Migration strategy."""
    STRUCTURE_ONLY = "structure-only"
    SYNC = "sync"


@dataclass(frozen=True)
class MigrationRequest:
    """Validated, immutable parameters of one run."""
    source: str
    domain: str
    method: MigrationMethod
    port: int = 22
    cleanup: bool = True


def build_request(
    source: Optional[str],
    domain: Optional[str],
    method: Union[MigrationMethod, str, None],
    port: int = 22,
    cleanup: bool = True,
) -> MigrationRequest:
    """Validate invocation parameters and build the request.

    Raises:
        ValidationError: If a required parameter is missing or invalid
    """
    missing = [
        f"--{name}" for name, value in (("source", source), ("domain", domain), ("method", method))
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise ValidationError(
            "Missing required arguments",
            details=[f"Missing: {', '.join(missing)}"],
            hint="Usage: swm migrate --source=<host> --domain=<domain> --method=<structure-only|sync>",
        )

    try:
        parsed_method = MigrationMethod(method)
    except ValueError as e:
        raise ValidationError(
            f"Invalid method: {method}. Must be 'structure-only' or 'sync'",
        ) from e

    return MigrationRequest(
        source=validate_hostname(source, "source"),
        domain=validate_domain(domain),
        method=parsed_method,
        port=validate_port(port),
        cleanup=cleanup,
    )
