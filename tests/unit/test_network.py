"""Unit tests for primary address discovery."""

from unittest.mock import MagicMock, patch

import pytest

from swm.core.exceptions import NetworkDiscoveryError, PrerequisiteError
from swm.core.executor import CommandResult
from swm.services.network import get_primary_address, parse_route_source


def _result(return_code: int = 0, stdout: str = "") -> CommandResult:
    return CommandResult(command=[], return_code=return_code, stdout=stdout, stderr="")


class TestParseRouteSource:
    """Tests for parse_route_source."""

    def test_via_gateway(self):
        """The address after 'src' is returned."""
        output = "8.8.8.8 via 203.0.113.1 dev eth0 src 203.0.113.10 uid 0\n    cache\n"
        assert parse_route_source(output) == "203.0.113.10"

    def test_direct_route(self):
        """Routes without a gateway are parsed too."""
        assert parse_route_source("8.8.8.8 dev eth0 src 198.51.100.7\n") == "198.51.100.7"

    def test_no_src(self):
        """Output without 'src' yields nothing."""
        assert parse_route_source("RTNETLINK answers: Network is unreachable") is None


class TestGetPrimaryAddress:
    """Tests for get_primary_address."""

    def test_from_route(self, executor: MagicMock):
        """The default route's source address is used."""
        executor.run.return_value = _result(stdout="8.8.8.8 via 10.0.0.1 dev eth0 src 10.0.0.5 uid 0\n")

        assert get_primary_address(executor) == "10.0.0.5"
        assert executor.run.call_args.args[0] == ["ip", "-4", "route", "get", "8.8.8.8"]
        assert executor.run.call_args.kwargs["read_only"] is True

    def test_custom_probe(self, executor: MagicMock):
        """The probe address comes from configuration."""
        executor.run.return_value = _result(stdout="1.1.1.1 dev eth0 src 10.0.0.5\n")
        get_primary_address(executor, "1.1.1.1")
        assert executor.run.call_args.args[0][-1] == "1.1.1.1"

    def test_socket_fallback_without_iproute2(self, executor: MagicMock):
        """Without the ip tool the UDP socket route lookup is used."""
        executor.run.side_effect = PrerequisiteError("Command not found: ip")
        with patch("swm.services.network._socket_source_address", return_value="10.0.0.9"):
            assert get_primary_address(executor) == "10.0.0.9"

    def test_loopback_rejected(self, executor: MagicMock):
        """A loopback answer is not a primary address."""
        executor.run.return_value = _result(stdout="8.8.8.8 dev lo src 127.0.0.1\n")
        with patch("swm.services.network._socket_source_address", return_value="10.0.0.9"):
            assert get_primary_address(executor) == "10.0.0.9"

    def test_no_address(self, executor: MagicMock):
        """No usable address from either method is an error."""
        executor.run.return_value = _result(2)
        with patch("swm.services.network._socket_source_address", return_value=None):
            with pytest.raises(NetworkDiscoveryError) as exc:
                get_primary_address(executor)
        assert exc.value.exit_code == 23
