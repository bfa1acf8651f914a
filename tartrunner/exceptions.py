"""Custom exceptions for tart-vm-runner."""

from __future__ import annotations

from typing import Any, Optional


class RunnerError(RuntimeError):
    """Raised on unrecoverable configuration or runtime errors."""


class ConfigError(RunnerError):
    """Invalid or missing configuration."""


class LaunchError(RunnerError):
    """The tart process could not be started."""


class InterfaceResolutionError(RunnerError):
    """No IPv4 address could be read from the host interface."""


class CredentialScanTimeout(RunnerError):
    """The VNC descriptor did not show up in the tart output in time."""


class ScanCancelled(CredentialScanTimeout):
    """The credential scan was aborted by a cancellation request."""


class VNCConnectError(RunnerError):
    """TCP connection to the VNC server failed."""


class VNCAuthError(VNCConnectError):
    """The RFB handshake or password authentication failed."""


class TemplateError(RunnerError):
    """The boot command template could not be rendered."""


class BootCommandParseError(RunnerError):
    """The rendered boot command contains an unknown directive."""


class InjectError(RunnerError):
    """Sending an input event over VNC failed."""

    def __init__(self, message: str, index: int, event: Optional[Any] = None) -> None:
        super().__init__(message)
        self.index = index
        self.event = event


class ShutdownError(RunnerError):
    """The graceful in-guest shutdown request failed."""


class OperationCancelled(RunnerError):
    """A blocking wait was interrupted by the cancel event."""
