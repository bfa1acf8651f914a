"""VNC endpoint discovery from the tart process output."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Optional

from tartrunner.constants import CREDENTIAL_POLL_INTERVAL, VNC_DESCRIPTOR_RE
from tartrunner.exceptions import CredentialScanTimeout, OperationCancelled, ScanCancelled
from tartrunner.models import NetworkEndpoint
from tartrunner.process import OutputBuffer
from tartrunner.utils import log, wait_for


def find_vnc_endpoint(text: str) -> Optional[NetworkEndpoint]:
    """Return the first vnc:// descriptor in ``text``, or None."""
    match = VNC_DESCRIPTOR_RE.search(text)
    if match is None:
        return None
    password, host, port = match.groups()
    return NetworkEndpoint(host=host, port=int(port), password=password)


class EndpointDiscoverer(ABC):
    """Source of the guest's VNC endpoint."""

    @abstractmethod
    def discover(
        self,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> NetworkEndpoint:
        """Block until the endpoint is known."""


class LogScrapingDiscoverer(EndpointDiscoverer):
    """Scrapes the descriptor tart prints once its VNC server is listening.

    There is no other signal from tart, so the captured output is re-read
    from the beginning on every attempt.
    """

    def __init__(self, buffer: OutputBuffer, interval: float = CREDENTIAL_POLL_INTERVAL) -> None:
        self.buffer = buffer
        self.interval = interval

    def discover(
        self,
        timeout: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> NetworkEndpoint:
        log("INFO", "Waiting for the VNC server credentials from tart...")
        try:
            endpoint = wait_for(
                lambda: find_vnc_endpoint(self.buffer.snapshot()),
                timeout=timeout,
                interval=self.interval,
                cancel=cancel,
            )
        except OperationCancelled as exc:
            raise ScanCancelled("Cancelled while waiting for VNC credentials") from exc
        except TimeoutError as exc:
            raise CredentialScanTimeout(
                f"tart did not report VNC credentials within {timeout:g}s.\n"
                "  Possible causes:\n"
                "    - the tart process exited early (run with LOG_VERBOSE=1 to see its output)\n"
                "    - this tart version does not support --vnc-experimental"
            ) from exc
        log("INFO", f"Retrieved VNC credentials for {endpoint.address}")
        return endpoint
