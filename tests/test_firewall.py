import os
import subprocess
import sys
from unittest.mock import patch, call

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config.app_config import FirewallConfig
from core.exceptions import FirewallError
from core.firewall import NullFirewall, UfwFirewall, create_firewall


def test_open_port_allows_both_transports():
    with patch("core.firewall.subprocess.run") as mock_run:
        UfwFirewall().open_port(10000)
    assert mock_run.call_args_list == [
        call(["ufw", "allow", "10000/tcp"], check=True, capture_output=True, text=True),
        call(["ufw", "allow", "10000/udp"], check=True, capture_output=True, text=True),
    ]


def test_close_port_deletes_both_rules():
    with patch("core.firewall.subprocess.run") as mock_run:
        UfwFirewall("/usr/sbin/ufw").close_port(10001)
    commands = [c.args[0] for c in mock_run.call_args_list]
    assert commands == [
        ["/usr/sbin/ufw", "delete", "allow", "10001/tcp"],
        ["/usr/sbin/ufw", "delete", "allow", "10001/udp"],
    ]


def test_command_failure_raises_firewall_error():
    failure = subprocess.CalledProcessError(1, ["ufw"], stderr="ERROR: permission denied")
    with patch("core.firewall.subprocess.run", side_effect=failure):
        with pytest.raises(FirewallError) as exc_info:
            UfwFirewall().open_port(10000)
    assert exc_info.value.port == 10000
    assert "permission denied" in str(exc_info.value)


def test_missing_binary_raises_firewall_error():
    with patch("core.firewall.subprocess.run", side_effect=FileNotFoundError("ufw")):
        with pytest.raises(FirewallError):
            UfwFirewall().close_port(10000)


@pytest.mark.parametrize("port", [0, 70000, -1])
def test_invalid_ports_are_rejected_before_running(port):
    with patch("core.firewall.subprocess.run") as mock_run:
        with pytest.raises(FirewallError):
            UfwFirewall().open_port(port)
        with pytest.raises(FirewallError):
            NullFirewall().close_port(port)
    mock_run.assert_not_called()


def test_create_firewall_follows_config():
    assert isinstance(create_firewall(FirewallConfig(enabled=True)), UfwFirewall)
    assert isinstance(create_firewall(FirewallConfig(enabled=False)), NullFirewall)
