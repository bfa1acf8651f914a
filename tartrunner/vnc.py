"""VNC session used to type boot commands into the guest console."""

from __future__ import annotations

import socket
import threading
from typing import Optional

from vncdotool import api

from tartrunner.bootcommand import BootCommandDriver
from tartrunner.exceptions import VNCAuthError, VNCConnectError
from tartrunner.models import KeystrokeSequence, NetworkEndpoint
from tartrunner.utils import log


class VNCSession:
    """Password-authenticated RFB connection exposing key and pointer events.

    Use as a context manager so the connection is closed on every exit path::

        with VNCSession(endpoint) as session:
            session.inject(sequence, cancel)
    """

    def __init__(
        self,
        endpoint: NetworkEndpoint,
        key_interval: float = 0.1,
        connect_timeout: float = 10.0,
    ) -> None:
        self.endpoint = endpoint
        self.key_interval = key_interval
        self.connect_timeout = connect_timeout
        self.client = None

    def connect(self) -> "VNCSession":
        host, port = self.endpoint.host, self.endpoint.port
        try:
            with socket.create_connection((host, port), timeout=self.connect_timeout):
                pass
        except OSError as exc:
            raise VNCConnectError(f"Failed to connect to the tart VNC server at {self.endpoint.address}: {exc}") from exc

        try:
            self.client = api.connect(
                f"{host}::{port}",
                password=self.endpoint.password,
                timeout=self.connect_timeout,
            )
            # Calls are queued until the handshake completes; a zero pause
            # surfaces authentication failures here instead of on the first key.
            self.client.pause(0)
        except Exception as exc:
            self.close()
            raise VNCAuthError(f"VNC handshake with {self.endpoint.address} failed: {exc}") from exc
        log("SUCCESS", f"Connected to VNC at {self.endpoint.address}")
        return self

    def close(self) -> None:
        client, self.client = self.client, None
        if client is None:
            return
        try:
            client.disconnect()
        except Exception as exc:
            log("DEBUG", f"Ignoring VNC disconnect error: {exc}")

    def __enter__(self) -> "VNCSession":
        if self.client is None:
            self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _require_client(self):
        if self.client is None:
            raise VNCConnectError("VNC session is not connected")
        return self.client

    def key_press(self, key: str) -> None:
        self._require_client().keyPress(key)

    def key_down(self, key: str) -> None:
        self._require_client().keyDown(key)

    def key_up(self, key: str) -> None:
        self._require_client().keyUp(key)

    def mouse_move(self, x: int, y: int) -> None:
        self._require_client().mouseMove(x, y)

    def mouse_click(self, button: int = 1) -> None:
        self._require_client().mousePress(button)

    def inject(self, sequence: KeystrokeSequence, cancel: Optional[threading.Event] = None) -> None:
        """Send every event in order; the first failure aborts the rest."""
        log("INFO", f"Typing the boot command over VNC ({len(sequence)} events)...")
        BootCommandDriver(self, self.key_interval).run(sequence, cancel)
