"""Shared test fixtures."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from tartrunner.models import RunnerConfig


@pytest.fixture
def default_config() -> RunnerConfig:
    """Return a RunnerConfig with waits shortened for tests."""
    return RunnerConfig(
        vm_name="test-vm",
        network_settle_delay=0,
        network_timeout=0,
        vnc_credentials_timeout=5,
        boot_key_interval=0,
        shutdown_timeout=5,
    )


@pytest.fixture
def fake_supervisor():
    """A ProcessSupervisor stand-in whose VM 'exits' as soon as it is waited on."""
    supervisor = MagicMock()
    supervisor.started = True
    supervisor.pid = 4242
    supervisor.is_running.return_value = True
    supervisor.wait.return_value = 0
    return supervisor


@pytest.fixture
def mock_env(monkeypatch):
    """Helper to set environment variables for tests."""

    def _set(**kwargs):
        for key, value in kwargs.items():
            if value is None:
                monkeypatch.delenv(key, raising=False)
            else:
                monkeypatch.setenv(key, str(value))

    return _set


# All environment variables that parse_env() reads, cleared before each config test.
_PARSE_ENV_VARS = [
    "VM_NAME",
    "TART_BIN",
    "HEADLESS",
    "DISABLE_VNC",
    "RECOVERY",
    "FROM_ISO",
    "EXTRA_ARGS",
    "HTTP_INTERFACE",
    "NETWORK_SETTLE_DELAY",
    "NETWORK_TIMEOUT",
    "VNC_CREDENTIALS_TIMEOUT",
    "VNC_CONNECT_TIMEOUT",
    "BOOT_COMMAND",
    "BOOT_COMMAND_FILE",
    "BOOT_WAIT",
    "BOOT_KEY_INTERVAL",
    "HTTP_DIRECTORY",
    "HTTP_PORT",
    "HTTP_PORT_MIN",
    "HTTP_PORT_MAX",
    "SSH_HOST",
    "SSH_PORT",
    "SSH_USERNAME",
    "SSH_PASSWORD",
    "SSH_TIMEOUT",
    "SHUTDOWN_TIMEOUT",
    "EXIT_TIMEOUT",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Clear all environment variables that parse_env() reads, then set VM_NAME."""
    for key in _PARSE_ENV_VARS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("VM_NAME", "test-vm")
