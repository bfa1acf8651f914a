"""CLI entry points for tart-vm-runner."""

from __future__ import annotations

import argparse
import dataclasses
import signal
import threading
from typing import List, Optional

from tartrunner.bootcommand import flatten_boot_command, parse_boot_command, render_boot_command
from tartrunner.communicator import SSHCommunicator
from tartrunner.config import parse_env
from tartrunner.constants import _SENSITIVE_FIELDS
from tartrunner.controller import RunController
from tartrunner.exceptions import ConfigError, RunnerError
from tartrunner.models import BootContext, RunnerConfig, RunState
from tartrunner.network import guest_ip
from tartrunner.process import build_run_args
from tartrunner.runtime import detect_host
from tartrunner.utils import log


def show_config(cfg: RunnerConfig) -> None:
    """Print the resolved configuration and exit."""
    for field in dataclasses.fields(cfg):
        value = getattr(cfg, field.name)
        if field.name in _SENSITIVE_FIELDS and value:
            print(f"  {field.name}: ********")
        else:
            print(f"  {field.name}: {value}")


def build_communicator(cfg: RunnerConfig, cancel: Optional[threading.Event] = None) -> SSHCommunicator:
    if not cfg.communicator_enabled:
        raise ConfigError("SSH_USERNAME and SSH_PASSWORD are required for the SSH communicator")
    host = cfg.ssh_host or (lambda: guest_ip(cfg.vm_name, wait=int(cfg.ssh_timeout), tart_bin=cfg.tart_bin))
    return SSHCommunicator(
        host,
        username=cfg.ssh_username,
        password=cfg.ssh_password,
        port=cfg.ssh_port,
        connect_timeout=cfg.ssh_timeout,
        cancel=cancel,
    )


def print_startup_banner(cfg: RunnerConfig, state: RunState) -> None:
    """Print a visually distinct access-info banner once the VM is running."""
    lines: List[str] = [f"  VM: {cfg.vm_name}"]
    mode = "headless" if cfg.headless else "graphics"
    if cfg.recovery:
        mode += ", recovery"
    lines.append(f"  Mode: {mode}")
    if state.http_ip:
        lines.append(f"  Host IP: {state.http_ip} ({cfg.http_interface})")
    else:
        lines.append(f"  Host IP: unavailable ({cfg.http_interface})")
    if state.http_port:
        lines.append(f"  HTTP: port {state.http_port}")
    if state.vnc_endpoint is not None:
        lines.append(f"  VNC:  vnc://{state.vnc_endpoint.address}")
    if cfg.communicator_enabled:
        lines.append(f"  SSH:  {cfg.ssh_username}@{cfg.ssh_host or '<tart ip>'}:{cfg.ssh_port}")

    max_len = max(len(line) for line in lines)
    border_len = max_len + 2
    banner_colour = "\033[0;36m"
    reset = "\033[0m"
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)
    for line in lines:
        print(f"{banner_colour}{line}{reset}", flush=True)
    print(f"{banner_colour}{'=' * border_len}{reset}", flush=True)


def dry_run(cfg: RunnerConfig) -> int:
    log("INFO", "=== Configuration ===")
    show_config(cfg)
    log("INFO", "=== Environment Checks ===")
    host = detect_host(cfg.tart_bin)
    if host.tart_path:
        log("SUCCESS", f"tart:         {host.tart_path} ({host.tart_version or 'unknown version'})")
    else:
        log("ERROR", f"tart:         {cfg.tart_bin} NOT found on PATH")
    log("INFO", f"Command:      {cfg.tart_bin} {' '.join(build_run_args(cfg))}")
    if not cfg.boot_command_requested:
        log("INFO", "Boot command: none")
    else:
        placeholder = BootContext(http_ip="<host-ip>", http_port=cfg.http_port)
        try:
            rendered = render_boot_command(flatten_boot_command(cfg.boot_command), placeholder)
            sequence = parse_boot_command(rendered)
        except RunnerError as exc:
            log("ERROR", f"Boot command: {exc}")
            return 1
        log("SUCCESS", f"Boot command: {len(sequence)} events")
    log("INFO", "=== Dry-run complete (no VM started) ===")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Run a tart VM and type its boot command over VNC")
    parser.add_argument("--show-config", action="store_true", help="Show resolved configuration and exit")
    parser.add_argument("--dry-run", action="store_true", help="Validate config and environment, then exit")
    parser.add_argument(
        "--no-wait",
        action="store_true",
        help="Shut the VM down as soon as the boot command has been typed",
    )
    args = parser.parse_args(argv)

    try:
        cfg = parse_env()
    except RunnerError as exc:
        log("ERROR", str(exc))
        return 1

    if args.show_config:
        show_config(cfg)
        return 0

    if args.dry_run:
        return dry_run(cfg)

    host = detect_host(cfg.tart_bin)
    if host.tart_path is None:
        log("ERROR", f"{cfg.tart_bin} not found on PATH. Install it with: brew install cirruslabs/cli/tart")
        return 1
    log("INFO", f"Host: {host.system}/{host.machine} | tart: {host.tart_version or 'unknown version'}")

    cancel = threading.Event()

    def _request_shutdown(signum, frame):
        sig_name = signal.Signals(signum).name
        if cancel.is_set():
            log("WARN", f"{sig_name} received again; shutdown already in progress")
            return
        log("INFO", f"{sig_name} received, shutting down VM")
        cancel.set()

    controller = RunController(cfg, cancel=cancel)
    if cfg.communicator_enabled:
        controller.state.communicator = build_communicator(cfg, cancel=cancel)

    prev_sigterm = signal.signal(signal.SIGTERM, _request_shutdown)
    prev_sigint = signal.signal(signal.SIGINT, _request_shutdown)
    try:
        controller.run()
        print_startup_banner(cfg, controller.state)
        if not args.no_wait:
            controller.wait_until_stopped()
        return 0
    except RunnerError:
        # The controller already reported the failing phase.
        return 1
    except Exception as exc:
        log("ERROR", f"Unexpected error: {exc}")
        import traceback

        traceback.print_exc()
        return 1
    finally:
        controller.teardown()
        signal.signal(signal.SIGTERM, prev_sigterm)
        signal.signal(signal.SIGINT, prev_sigint)
