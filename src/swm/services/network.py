"""Network detection for the destination server.

Provides:
- Primary address discovery (the source address of the default route)
"""

import ipaddress
import socket
from typing import Optional

from swm.core.exceptions import NetworkDiscoveryError, PrerequisiteError
from swm.core.executor import CommandExecutor


def parse_route_source(output: str) -> Optional[str]:
    """Extract the ``src`` address from ``ip route get`` output.

    Example input:
        8.8.8.8 via 10.0.0.1 dev eth0 src 10.0.0.5 uid 0
    """
    for line in output.splitlines():
        parts = line.split()
        for i, part in enumerate(parts):
            if part == "src" and i + 1 < len(parts):
                return parts[i + 1]
    return None


def _socket_source_address(probe_address: str) -> Optional[str]:
    """Source address the kernel picks for a UDP socket towards ``probe_address``.

    connect() on a UDP socket only selects a route; nothing is sent.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect((probe_address, 53))
            return sock.getsockname()[0]
    except OSError:
        return None


def _usable(address: Optional[str]) -> bool:
    if not address:
        return False
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    return not (ip.is_loopback or ip.is_unspecified)


def get_primary_address(executor: CommandExecutor, probe_address: str = "8.8.8.8") -> str:
    """Determine this server's primary IPv4 address.

    Uses ``ip -4 route get`` first and falls back to the UDP socket
    route selection when iproute2 is unavailable or gives no answer.

    Args:
        executor: Local command executor
        probe_address: Well-known external address used for route selection

    Returns:
        The primary IPv4 address

    Raises:
        NetworkDiscoveryError: If no usable address is found
    """
    address: Optional[str] = None

    try:
        result = executor.run(
            ["ip", "-4", "route", "get", probe_address],
            check=False,
            read_only=True,
        )
        if result.success:
            address = parse_route_source(result.stdout)
    except PrerequisiteError:
        executor.ctx.console.debug("iproute2 not installed, using socket route lookup")

    if not _usable(address):
        address = _socket_source_address(probe_address)

    if not _usable(address):
        raise NetworkDiscoveryError(
            "Failed to determine primary IP address",
            hint="Check that this server has a default route",
        )

    return address
