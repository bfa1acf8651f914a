"""Host network interface lookups for tart-vm-runner."""

from __future__ import annotations

import os
import subprocess
import threading
from typing import Optional

from tartrunner.constants import IFCONFIG_PATH, INET_RE, NETWORK_POLL_INTERVAL, TART_BIN
from tartrunner.exceptions import InterfaceResolutionError, RunnerError
from tartrunner.utils import log, sleep, wait_for


def resolve_interface_ip(interface: str, ifconfig_path: str = IFCONFIG_PATH) -> str:
    """Return the first IPv4 address ifconfig reports for ``interface``."""
    # LANG=C keeps the output parseable whatever the user's locale is.
    env = dict(os.environ)
    env.update({"LANG": "C", "LC_ALL": "C"})
    try:
        result = subprocess.run(
            [ifconfig_path, interface],
            capture_output=True,
            text=True,
            env=env,
            check=False,
        )
    except OSError as exc:
        raise InterfaceResolutionError(f"Failed to run {ifconfig_path}: {exc}") from exc
    if result.returncode != 0:
        detail = (result.stderr or "").strip() or f"exit code {result.returncode}"
        raise InterfaceResolutionError(f"ifconfig {interface} failed: {detail}")
    match = INET_RE.search(result.stdout)
    if match is None:
        raise InterfaceResolutionError(f"IP not found in ifconfig output for {interface}")
    return match.group(1)


def wait_for_interface_ip(
    interface: str,
    settle_delay: float,
    timeout: float = 0.0,
    interval: float = NETWORK_POLL_INTERVAL,
    cancel: Optional[threading.Event] = None,
) -> str:
    """Resolve ``interface`` once the settling delay has passed.

    The interface only shows up some time after the VM starts. With
    ``timeout=0`` a single attempt is made after the delay.
    """
    if settle_delay > 0:
        log("INFO", f"Waiting {settle_delay:g}s for {interface} to come up...")
        sleep(settle_delay, cancel)
    if timeout <= 0:
        return resolve_interface_ip(interface)

    last_error: Optional[InterfaceResolutionError] = None

    def _probe() -> Optional[str]:
        nonlocal last_error
        try:
            return resolve_interface_ip(interface)
        except InterfaceResolutionError as exc:
            last_error = exc
            return None

    try:
        return wait_for(_probe, timeout=timeout, interval=interval, cancel=cancel)
    except TimeoutError:
        if last_error is not None:
            raise last_error
        raise InterfaceResolutionError(f"Timed out resolving {interface}")


def guest_ip(vm_name: str, wait: int = 120, tart_bin: str = TART_BIN) -> str:
    """Ask tart for the guest's IP address."""
    try:
        result = subprocess.run(
            [tart_bin, "ip", vm_name, "--wait", str(wait)],
            capture_output=True,
            text=True,
            timeout=wait + 10,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise RunnerError(f"Failed to query guest IP for {vm_name}: {exc}") from exc
    ip = result.stdout.strip()
    if result.returncode != 0 or not ip:
        detail = (result.stderr or "").strip() or f"exit code {result.returncode}"
        raise RunnerError(f"tart ip {vm_name} failed: {detail}")
    return ip
