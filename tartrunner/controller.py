"""Run sequencing for tart-vm-runner.

Phases run strictly in order::

    IDLE -> LAUNCHING -> AWAITING_NETWORK
         -> [AWAITING_CREDENTIALS -> CONNECTING_VNC -> INJECTING_BOOT]
         -> RUNNING -> SHUTTING_DOWN -> TERMINATED

The bracketed phases only run when a boot command has to be typed.
"""

from __future__ import annotations

import shlex
import threading
from typing import Callable, Optional

from tartrunner.bootcommand import flatten_boot_command, parse_boot_command, render_boot_command, uses_http_ip
from tartrunner.constants import PROCESS_POLL_INTERVAL, SHUTDOWN_COMMAND
from tartrunner.discovery import EndpointDiscoverer, LogScrapingDiscoverer
from tartrunner.exceptions import InterfaceResolutionError, RunnerError, ShutdownError
from tartrunner.httpserver import HTTPFileServer
from tartrunner.models import BootContext, KeystrokeSequence, RunnerConfig, RunPhase, RunState
from tartrunner.network import wait_for_interface_ip
from tartrunner.process import ProcessSupervisor, build_run_args, build_run_env
from tartrunner.utils import log, sleep
from tartrunner.vnc import VNCSession

PHASE_LABELS = {
    RunPhase.IDLE: "Preparing the run",
    RunPhase.LAUNCHING: "Starting the VM",
    RunPhase.AWAITING_NETWORK: "Resolving the host IP",
    RunPhase.AWAITING_CREDENTIALS: "Waiting for VNC credentials",
    RunPhase.CONNECTING_VNC: "Connecting to VNC",
    RunPhase.INJECTING_BOOT: "Typing the boot command",
    RunPhase.RUNNING: "Running",
    RunPhase.SHUTTING_DOWN: "Shutting down",
    RunPhase.TERMINATED: "Terminated",
}


class RunController:
    def __init__(
        self,
        cfg: RunnerConfig,
        supervisor: Optional[ProcessSupervisor] = None,
        resolver: Callable[..., str] = wait_for_interface_ip,
        discoverer: Optional[EndpointDiscoverer] = None,
        session_factory: Callable[..., VNCSession] = VNCSession,
        http_server: Optional[HTTPFileServer] = None,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        self.cfg = cfg
        self.supervisor = supervisor or ProcessSupervisor()
        self.resolver = resolver
        self.discoverer = discoverer or LogScrapingDiscoverer(self.supervisor.output)
        self.session_factory = session_factory
        if http_server is None and cfg.http_directory is not None:
            http_server = HTTPFileServer(cfg.http_directory, cfg.http_port, cfg.http_port_min, cfg.http_port_max)
        self.http_server = http_server
        self.cancel = cancel or threading.Event()
        self.state = RunState(http_port=cfg.http_port)

    def _set_phase(self, phase: RunPhase) -> None:
        log("DEBUG", f"Phase: {self.state.phase.value} -> {phase.value}")
        self.state.phase = phase

    # ── Forward path ──────────────────────────────────────────────

    def run(self) -> RunState:
        try:
            self._start_http_server()
            self._launch()
            self._await_network()
            if self.cfg.boot_command_requested:
                self._type_boot_command()
        except RunnerError as exc:
            self._fail(exc)
            raise
        self._set_phase(RunPhase.RUNNING)
        log("SUCCESS", "Successfully started the virtual machine")
        if self.state.http_ip:
            log("INFO", f"Host IP for the guest: {self.state.http_ip}")
        return self.state

    def _start_http_server(self) -> None:
        if self.http_server is None:
            return
        self.state.http_port = self.http_server.start()

    def _launch(self) -> None:
        self._set_phase(RunPhase.LAUNCHING)
        log("INFO", f"Starting the virtual machine {self.cfg.vm_name}...")
        self.supervisor.start(self.cfg.tart_bin, build_run_args(self.cfg), build_run_env(self.cfg))
        log("DEBUG", f"tart running with PID {self.supervisor.pid}")

    def _needs_http_ip(self) -> bool:
        return self.cfg.boot_command_requested and uses_http_ip(flatten_boot_command(self.cfg.boot_command))

    def _await_network(self) -> None:
        self._set_phase(RunPhase.AWAITING_NETWORK)
        interface = self.cfg.http_interface
        try:
            ip = self.resolver(
                interface,
                settle_delay=self.cfg.network_settle_delay,
                timeout=self.cfg.network_timeout,
                cancel=self.cancel,
            )
        except InterfaceResolutionError as exc:
            if self._needs_http_ip():
                raise InterfaceResolutionError(
                    f"Failed to parse IP from {interface} interface and the boot command needs {{{{ .HTTPIP }}}}: {exc}"
                ) from exc
            log("WARN", f"Failed to parse IP from {interface} interface: {exc}")
            self.state.errors.append(exc)
            return
        log("INFO", f"Discovered IP: {ip}")
        self.state.http_ip = ip

    def build_sequence(self) -> KeystrokeSequence:
        template = flatten_boot_command(self.cfg.boot_command)
        context = BootContext(http_ip=self.state.http_ip or "", http_port=self.state.http_port)
        return parse_boot_command(render_boot_command(template, context))

    def _type_boot_command(self) -> None:
        self._set_phase(RunPhase.AWAITING_CREDENTIALS)
        endpoint = self.discoverer.discover(timeout=self.cfg.vnc_credentials_timeout, cancel=self.cancel)
        self.state.vnc_endpoint = endpoint

        self._set_phase(RunPhase.CONNECTING_VNC)
        with self.session_factory(
            endpoint,
            key_interval=self.cfg.boot_key_interval,
            connect_timeout=self.cfg.vnc_connect_timeout,
        ) as session:
            self._set_phase(RunPhase.INJECTING_BOOT)
            sequence = self.build_sequence()
            if self.cfg.boot_wait > 0:
                log("INFO", f"Waiting {self.cfg.boot_wait:g}s before typing the boot command...")
                sleep(self.cfg.boot_wait, self.cancel)
            session.inject(sequence, self.cancel)
        log("SUCCESS", "Boot command typed")

    def _fail(self, exc: RunnerError) -> None:
        label = PHASE_LABELS[self.state.phase]
        log("ERROR", f"{label}: {exc}")
        self.state.error = exc
        self._stop_process(graceful=False)
        self._stop_http_server()
        self._set_phase(RunPhase.TERMINATED)

    # ── Steady state and teardown ─────────────────────────────────

    def wait_until_stopped(self) -> None:
        """Block until the VM process exits or the cancel event is set."""
        log("INFO", f"Waiting for {self.cfg.vm_name} to stop")
        while self.supervisor.is_running():
            if self.cancel.wait(PROCESS_POLL_INTERVAL):
                return
        log("INFO", f"VM {self.cfg.vm_name} is no longer running")

    def teardown(self) -> RunState:
        if self.state.phase is RunPhase.TERMINATED:
            return self.state
        self._set_phase(RunPhase.SHUTTING_DOWN)
        graceful = False
        communicator = self.state.communicator
        if communicator is not None and self.supervisor.is_running():
            log("INFO", "Gracefully shutting down the VM...")
            try:
                self._graceful_shutdown(communicator)
                graceful = True
            except RunnerError as exc:
                error = exc if isinstance(exc, ShutdownError) else ShutdownError(str(exc))
                log("WARN", "Failed to gracefully shutdown VM...")
                log("ERROR", str(error))
                self.state.errors.append(error)
            finally:
                communicator.close()
        self._stop_process(graceful=graceful)
        self._stop_http_server()
        self._set_phase(RunPhase.TERMINATED)
        return self.state

    def _graceful_shutdown(self, communicator) -> None:
        command = SHUTDOWN_COMMAND.format(password=shlex.quote(self.cfg.ssh_password or ""))
        outcome: dict = {}

        def _worker() -> None:
            try:
                outcome["status"] = communicator.run(command, timeout=self.cfg.shutdown_timeout)
            except Exception as exc:
                outcome["error"] = exc

        worker = threading.Thread(target=_worker, name="guest-shutdown", daemon=True)
        worker.start()
        worker.join(self.cfg.shutdown_timeout)
        if worker.is_alive():
            raise ShutdownError(f"Shutdown command did not complete within {self.cfg.shutdown_timeout:g}s")
        if "error" in outcome:
            raise ShutdownError(f"Shutdown command failed: {outcome['error']}")
        status = outcome.get("status")
        if status:
            raise ShutdownError(f"Shutdown command exited with status {status}")

    def _stop_process(self, graceful: bool) -> None:
        if not self.supervisor.started:
            return
        if not graceful:
            self.supervisor.terminate()
        log("INFO", "Waiting for the tart process to exit...")
        try:
            code = self.supervisor.wait(self.cfg.exit_timeout)
        except TimeoutError as exc:
            log("WARN", f"{exc}; killing it")
            self.supervisor.kill()
            code = self.supervisor.wait()
        self.state.exit_code = code
        log("DEBUG", f"tart exited with code {code}")

    def _stop_http_server(self) -> None:
        if self.http_server is not None:
            self.http_server.stop()
