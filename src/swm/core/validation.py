"""Input validation utilities.

Provides validation for:
- Source hostnames and IP addresses
- Domain names identifying SiteWorx accounts
- SSH ports
- Linux account and MySQL database names
- Absolute paths used in configuration

All validators return the validated value or raise ValidationError.
"""

import ipaddress
import re

from swm.core.exceptions import ValidationError


# RFC 1123 hostname label
HOSTNAME_LABEL_PATTERN = re.compile(r"^(?!-)[a-zA-Z0-9-]{1,63}(?<!-)$")

# SiteWorx usernames are derived from the domain: lowercase alnum, up to 32 chars
USERNAME_PATTERN = re.compile(r"^[a-z][a-z0-9]{0,31}$")

# MySQL database names as SiteWorx creates them: <username>_<name>
DATABASE_PATTERN = re.compile(r"^[a-zA-Z0-9_$]{1,64}$")

MAX_HOSTNAME_LENGTH = 253


def validate_hostname(value: str, field_name: str = "host") -> str:
    """Validate a hostname or IP address.

    Args:
        value: Hostname, IPv4 or IPv6 address
        field_name: Name used in error messages

    Returns:
        The validated value, stripped of whitespace

    Raises:
        ValidationError: If validation fails
    """
    value = (value or "").strip()

    if not value:
        raise ValidationError(
            f"{field_name.title()} cannot be empty",
            hint=f"Provide --{field_name}=<hostname or IP>",
        )

    try:
        ipaddress.ip_address(value)
        return value
    except ValueError:
        pass

    if len(value) > MAX_HOSTNAME_LENGTH:
        raise ValidationError(
            f"{field_name.title()} exceeds maximum length "
            f"({len(value)} > {MAX_HOSTNAME_LENGTH})",
        )

    labels = value.rstrip(".").split(".")
    if not all(HOSTNAME_LABEL_PATTERN.match(label) for label in labels):
        raise ValidationError(
            f"Invalid {field_name}: '{value}'",
            hint="Use a hostname like server1.example.com or an IP address",
        )

    return value


def validate_domain(value: str) -> str:
    """Validate the domain identifying a SiteWorx account.

    The domain must contain at least one dot, and is normalised to
    lowercase without a trailing dot.

    Args:
        value: Domain name to validate

    Returns:
        The normalised domain

    Raises:
        ValidationError: If validation fails
    """
    value = (value or "").strip().lower().rstrip(".")

    if not value:
        raise ValidationError(
            "Domain cannot be empty",
            hint="Provide --domain=<domain name>",
        )

    if "." not in value:
        raise ValidationError(
            f"Invalid domain: '{value}'",
            hint="Use the account's primary domain, e.g. example.com",
        )

    try:
        validate_hostname(value, "domain")
    except ValidationError as e:
        raise ValidationError(
            f"Invalid domain: '{value}'",
            hint="Use the account's primary domain, e.g. example.com",
            details=[e.message],
        ) from e

    return value


def validate_port(value: int) -> int:
    """Validate a port number.

    Args:
        value: Port number to validate

    Returns:
        The validated port number

    Raises:
        ValidationError: If port is out of valid range
    """
    if not 1 <= value <= 65535:
        raise ValidationError(
            f"Invalid port number: {value}",
            hint="Port must be between 1 and 65535",
        )

    return value


def validate_username(value: str) -> str:
    """Validate a SiteWorx Linux username.

    Usernames end up inside SQL LIKE patterns and filesystem paths, so
    anything outside lowercase letters and digits is rejected.

    Raises:
        ValidationError: If validation fails
    """
    if not value or not USERNAME_PATTERN.match(value):
        raise ValidationError(
            f"Invalid account username: '{value}'",
            hint="SiteWorx usernames are lowercase letters and digits",
        )
    return value


def validate_database_name(value: str) -> str:
    """Validate a MySQL database name reported by the source server.

    Raises:
        ValidationError: If validation fails
    """
    if not value or not DATABASE_PATTERN.match(value):
        raise ValidationError(
            f"Invalid database name: '{value}'",
            hint="Database names may contain letters, digits, '_' and '$'",
        )
    return value


def validate_absolute_path(value: str) -> str:
    """Validate an absolute path from configuration.

    Raises:
        ValidationError: If the path is relative or contains traversal
    """
    if not value.startswith("/"):
        raise ValidationError(
            f"Path must be absolute: {value}",
            hint=f"Use /{value}",
        )

    if ".." in value.split("/"):
        raise ValidationError(
            f"Path contains traversal: {value}",
            hint="Remove '..' components",
        )

    return value
