"""Command channel into the guest, used for the graceful shutdown request."""

from __future__ import annotations

import socket
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

import paramiko

from tartrunner.exceptions import RunnerError
from tartrunner.utils import log, sleep


class Communicator(ABC):
    @abstractmethod
    def run(self, command: str, timeout: Optional[float] = None) -> int:
        """Run ``command`` in the guest and return its exit status."""

    def close(self) -> None:
        pass


class SSHCommunicator(Communicator):
    """Password-authenticated SSH connection to the guest.

    ``host`` may be a callable so the guest address is only looked up when
    the first command is issued.
    """

    def __init__(
        self,
        host: Union[str, Callable[[], str]],
        username: str,
        password: str,
        port: int = 22,
        connect_timeout: float = 120.0,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self._host = host
        self.username = username
        self.password = password
        self.port = port
        self.connect_timeout = connect_timeout
        self.cancel = cancel
        self.client: Optional[paramiko.SSHClient] = None

    @property
    def host(self) -> str:
        if callable(self._host):
            self._host = self._host()
        return self._host

    def connect(self) -> paramiko.SSHClient:
        if self.client is not None:
            return self.client
        host = self.host
        log("INFO", f"Connecting to {self.username}@{host}:{self.port} over SSH...")
        start = time.time()
        last_error: Optional[Exception] = None
        while time.time() - start < self.connect_timeout:
            try:
                with socket.create_connection((host, self.port), timeout=1.0):
                    pass
                cli = paramiko.SSHClient()
                cli.set_missing_host_key_policy(paramiko.AutoAddPolicy())
                cli.connect(
                    host,
                    port=self.port,
                    username=self.username,
                    password=self.password,
                    banner_timeout=10,
                    auth_timeout=10,
                    timeout=3,
                    look_for_keys=False,
                    allow_agent=False,
                )
                self.client = cli
                log("SUCCESS", f"SSH connection ready ({time.time() - start:.1f}s)")
                return cli
            except paramiko.AuthenticationException as exc:
                raise RunnerError(f"SSH authentication failed for {self.username}@{host}: {exc}") from exc
            except (OSError, paramiko.SSHException) as exc:
                last_error = exc
                waited = time.time() - start
                sleep(0.5 if waited < 5 else 2.0, self.cancel)
        raise RunnerError(f"SSH to {host}:{self.port} not ready within {self.connect_timeout:g}s: {last_error}")

    def run(self, command: str, timeout: Optional[float] = None) -> int:
        cli = self.connect()
        try:
            _, stdout, stderr = cli.exec_command(command, timeout=timeout)
            status = stdout.channel.recv_exit_status()
        except socket.timeout as exc:
            raise RunnerError(f"Remote command timed out after {timeout:g}s") from exc
        except (paramiko.SSHException, OSError) as exc:
            # The guest may drop the session while it powers off.
            raise RunnerError(f"Remote command failed: {exc}") from exc
        err = stderr.read().decode("utf-8", errors="replace").strip()
        if err:
            log("DEBUG", f"remote stderr: {err}")
        return status

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
            self.client = None
