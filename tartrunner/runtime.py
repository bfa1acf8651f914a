"""Host detection for tart-vm-runner."""

from __future__ import annotations

import platform
import shutil
import subprocess
from dataclasses import dataclass
from typing import Optional

from tartrunner.constants import TART_BIN
from tartrunner.utils import log


@dataclass
class HostInfo:
    system: str  # "Darwin", "Linux", ...
    machine: str  # "arm64", "x86_64", ...
    tart_path: Optional[str]
    tart_version: Optional[str]

    @property
    def supported(self) -> bool:
        # tart only runs on Apple Silicon Macs
        return self.system == "Darwin" and self.machine == "arm64"


def _tart_version(tart_path: str) -> Optional[str]:
    """Return ``tart --version`` output, or None when it cannot be run."""
    try:
        result = subprocess.run(
            [tart_path, "--version"],
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def detect_host(tart_bin: str = TART_BIN) -> HostInfo:
    """Detect the host platform and the tart installation."""
    system = platform.system()
    machine = platform.machine()
    tart_path = shutil.which(tart_bin)
    tart_version = _tart_version(tart_path) if tart_path else None

    info = HostInfo(system=system, machine=machine, tart_path=tart_path, tart_version=tart_version)
    if not info.supported:
        log("WARN", f"Host is {system}/{machine}; tart requires macOS on Apple Silicon")
    if tart_path is None:
        log("DEBUG", f"{tart_bin} not found on PATH")
    return info
