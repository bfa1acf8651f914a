"""Supervision of the ``tart run`` process."""

from __future__ import annotations

import os
import shlex
import subprocess
import threading
from typing import Dict, List, Optional

from tartrunner.constants import VNC_SUPPRESS_ENV
from tartrunner.exceptions import LaunchError
from tartrunner.models import RunnerConfig
from tartrunner.utils import log, mask_vnc_password


class OutputBuffer:
    """Append-only text buffer shared between the pipe reader and the scanner."""

    def __init__(self) -> None:
        self._chunks: List[str] = []
        self._lock = threading.Lock()

    def append(self, text: str) -> None:
        with self._lock:
            self._chunks.append(text)

    def snapshot(self) -> str:
        with self._lock:
            return "".join(self._chunks)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(chunk) for chunk in self._chunks)


def build_run_args(cfg: RunnerConfig) -> List[str]:
    args = ["run", cfg.vm_name]
    if cfg.headless:
        args.append("--no-graphics")
    else:
        args.append("--graphics")
    if cfg.vnc_enabled:
        args.append("--vnc-experimental")
    if cfg.recovery:
        args.append("--recovery")
    if cfg.extra_args:
        args.extend(shlex.split(cfg.extra_args))
    return args


def build_run_env(cfg: RunnerConfig) -> Optional[Dict[str, str]]:
    if not cfg.vnc_enabled:
        return None
    env = dict(os.environ)
    env.update(VNC_SUPPRESS_ENV)
    return env


class ProcessSupervisor:
    """Owns the VM host process and captures its merged stdout/stderr."""

    def __init__(self) -> None:
        self.output = OutputBuffer()
        self.proc: Optional[subprocess.Popen] = None
        self._reader: Optional[threading.Thread] = None
        self._terminated = False

    @property
    def pid(self) -> Optional[int]:
        return self.proc.pid if self.proc is not None else None

    @property
    def started(self) -> bool:
        return self.proc is not None

    def start(self, executable: str, args: List[str], env: Optional[Dict[str, str]] = None) -> None:
        if self.proc is not None:
            raise LaunchError("VM process already started for this run")
        cmd = [executable, *args]
        log("DEBUG", f"Running: {' '.join(cmd)}")
        try:
            self.proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                env=env,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
            )
        except OSError as exc:
            raise LaunchError(f"Error starting VM: {exc}") from exc
        self._reader = threading.Thread(target=self._pump, name="tart-output", daemon=True)
        self._reader.start()

    def _pump(self) -> None:
        proc = self.proc
        if proc is None or proc.stdout is None:
            return
        for line in proc.stdout:
            self.output.append(line)
            log("DEBUG", f"tart: {mask_vnc_password(line.rstrip())}")

    def is_running(self) -> bool:
        return self.proc is not None and self.proc.poll() is None

    def terminate(self) -> None:
        """Ask tart to stop the VM (SIGTERM); sent at most once."""
        if self.proc is None or self._terminated:
            return
        self._terminated = True
        if self.proc.poll() is None:
            try:
                self.proc.terminate()
            except OSError as exc:
                log("WARN", f"Failed to signal tart process (PID {self.proc.pid}): {exc}")

    def kill(self) -> None:
        if self.proc is not None and self.proc.poll() is None:
            try:
                self.proc.kill()
            except OSError:
                pass

    def wait(self, timeout: Optional[float] = None) -> int:
        if self.proc is None:
            raise LaunchError("VM process was never started")
        try:
            code = self.proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise TimeoutError(f"tart did not exit within {timeout:g}s") from exc
        if self._reader is not None:
            self._reader.join(timeout=5)
        return code
