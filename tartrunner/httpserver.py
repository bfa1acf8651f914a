"""Static HTTP server exposing installer files (kickstart, preseed...) to the guest."""

from __future__ import annotations

import functools
import random
import threading
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Optional

from tartrunner.exceptions import ConfigError, RunnerError
from tartrunner.utils import log


class _QuietHandler(SimpleHTTPRequestHandler):
    def log_message(self, format, *args):  # noqa: A002
        log("DEBUG", f"http: {self.address_string()} {format % args}")


class HTTPFileServer:
    def __init__(self, directory: Path, port: int = 0, port_min: int = 8000, port_max: int = 9000) -> None:
        if port_min > port_max:
            raise ConfigError(f"HTTP_PORT_MIN ({port_min}) must be <= HTTP_PORT_MAX ({port_max})")
        self.directory = Path(directory)
        self.requested_port = port
        self.port_min = port_min
        self.port_max = port_max
        self.port = 0
        self._server: Optional[ThreadingHTTPServer] = None
        self._thread: Optional[threading.Thread] = None

    def _bind(self) -> ThreadingHTTPServer:
        handler = functools.partial(_QuietHandler, directory=str(self.directory))
        if self.requested_port:
            candidates = [self.requested_port]
        else:
            candidates = list(range(self.port_min, self.port_max + 1))
            random.shuffle(candidates)
        last_error: Optional[OSError] = None
        for port in candidates:
            try:
                return ThreadingHTTPServer(("0.0.0.0", port), handler)
            except OSError as exc:
                last_error = exc
        raise RunnerError(f"No free port for the HTTP server in {candidates[0]}-{candidates[-1]}: {last_error}")

    def start(self) -> int:
        if not self.directory.is_dir():
            raise ConfigError(f"HTTP_DIRECTORY is not a directory: {self.directory}")
        self._server = self._bind()
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, name="http-server", daemon=True)
        self._thread.start()
        log("INFO", f"Serving {self.directory} over HTTP on port {self.port}")
        return self.port

    def stop(self) -> None:
        server, self._server = self._server, None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
