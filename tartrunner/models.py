"""Data models for tart-vm-runner."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True)
class NetworkEndpoint:
    host: str
    port: int
    password: str = field(repr=False)

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class BootContext:
    http_ip: str
    http_port: int


# Input events replayed over VNC


@dataclass(frozen=True)
class KeyPress:
    key: str


@dataclass(frozen=True)
class KeyDown:
    key: str


@dataclass(frozen=True)
class KeyUp:
    key: str


@dataclass(frozen=True)
class TypeText:
    text: str


@dataclass(frozen=True)
class Wait:
    seconds: float


@dataclass(frozen=True)
class MouseMove:
    x: int
    y: int


@dataclass(frozen=True)
class MouseClick:
    button: int = 1


InputEvent = Union[KeyPress, KeyDown, KeyUp, TypeText, Wait, MouseMove, MouseClick]


class KeystrokeSequence:
    """Ordered, immutable list of input events produced from one boot command."""

    def __init__(self, events=()) -> None:
        self._events: Tuple[InputEvent, ...] = tuple(events)

    def __iter__(self) -> Iterator[InputEvent]:
        return iter(self._events)

    def __len__(self) -> int:
        return len(self._events)

    def __getitem__(self, index: int) -> InputEvent:
        return self._events[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeystrokeSequence):
            return NotImplemented
        return self._events == other._events

    def __hash__(self) -> int:
        return hash(self._events)

    def __repr__(self) -> str:
        return f"KeystrokeSequence({list(self._events)!r})"


class RunPhase(enum.Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    AWAITING_NETWORK = "awaiting-network"
    AWAITING_CREDENTIALS = "awaiting-credentials"
    CONNECTING_VNC = "connecting-vnc"
    INJECTING_BOOT = "injecting-boot"
    RUNNING = "running"
    SHUTTING_DOWN = "shutting-down"
    TERMINATED = "terminated"


@dataclass
class RunnerConfig:
    vm_name: str
    tart_bin: str = "tart"
    headless: bool = True
    disable_vnc: bool = False
    recovery: bool = False
    from_iso: List[str] = field(default_factory=list)
    extra_args: str = ""
    # Network
    http_interface: str = "bridge100"
    network_settle_delay: float = 10.0
    network_timeout: float = 0.0
    # VNC / boot command
    vnc_credentials_timeout: Optional[float] = 300.0
    vnc_connect_timeout: float = 10.0
    boot_command: List[str] = field(default_factory=list)
    boot_wait: float = 0.0
    boot_key_interval: float = 0.1
    # HTTP file server
    http_directory: Optional[Path] = None
    http_port: int = 0
    http_port_min: int = 8000
    http_port_max: int = 9000
    # Communicator
    ssh_host: Optional[str] = None
    ssh_port: int = 22
    ssh_username: Optional[str] = None
    ssh_password: Optional[str] = None
    ssh_timeout: float = 120.0
    # Teardown
    shutdown_timeout: float = 300.0
    exit_timeout: Optional[float] = None

    @property
    def vnc_enabled(self) -> bool:
        return not self.disable_vnc

    @property
    def boot_command_requested(self) -> bool:
        return bool(self.boot_command) and self.vnc_enabled and not self.from_iso

    @property
    def communicator_enabled(self) -> bool:
        return bool(self.ssh_username and self.ssh_password)


@dataclass
class RunState:
    """Everything a run produces, handed from phase to phase."""

    phase: RunPhase = RunPhase.IDLE
    http_ip: Optional[str] = None
    http_port: int = 0
    vnc_endpoint: Optional[NetworkEndpoint] = None
    errors: List[Exception] = field(default_factory=list)
    error: Optional[Exception] = None
    communicator: Optional[object] = None
    exit_code: Optional[int] = None
