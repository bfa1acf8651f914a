"""Utility functions for tart-vm-runner."""

from __future__ import annotations

import os
import threading
import time
from typing import Callable, Optional, TypeVar

from tartrunner.constants import _LOG_VERBOSE, TRUTHY, VNC_DESCRIPTOR_RE
from tartrunner.exceptions import ConfigError, OperationCancelled

T = TypeVar("T")


def log(level: str, message: str) -> None:
    """Lightweight structured logging compatible with existing colour expectation."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def get_env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.lower() in TRUTHY


def parse_int_env(name: str, default: str, min_val: int = 1, max_val: Optional[int] = None) -> int:
    raw = get_env(name, default)
    assert raw is not None
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ConfigError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ConfigError(f"{name} must be <= {max_val} (got {value})")
    return value


def parse_float_env(name: str, default: str, min_val: float = 0.0) -> float:
    raw = get_env(name, default)
    assert raw is not None
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number (got '{raw}')")
    if value < min_val:
        raise ConfigError(f"{name} must be >= {min_val:g} (got {value:g})")
    return value


def mask_vnc_password(text: str) -> str:
    """Hide the password part of any vnc:// descriptor in ``text``."""

    def _mask(match):
        start, end = match.span(1)
        offset = match.start()
        raw = match.group(0)
        return raw[: start - offset] + "********" + raw[end - offset :]

    return VNC_DESCRIPTOR_RE.sub(_mask, text)


def sleep(seconds: float, cancel: Optional[threading.Event] = None) -> None:
    """Sleep for ``seconds``; raise OperationCancelled as soon as ``cancel`` is set."""
    if seconds <= 0:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Operation cancelled")
        return
    if cancel is None:
        time.sleep(seconds)
        return
    if cancel.wait(seconds):
        raise OperationCancelled("Operation cancelled")


def wait_for(
    probe: Callable[[], Optional[T]],
    timeout: Optional[float],
    interval: float = 1.0,
    cancel: Optional[threading.Event] = None,
) -> T:
    """Call ``probe`` until it returns a non-None value.

    ``timeout=None`` waits forever. Raises ``TimeoutError`` when the deadline
    passes and ``OperationCancelled`` when ``cancel`` is set.
    """
    deadline = None if timeout is None else time.time() + timeout
    while True:
        if cancel is not None and cancel.is_set():
            raise OperationCancelled("Operation cancelled")
        result = probe()
        if result is not None:
            return result
        if deadline is not None:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise TimeoutError(f"Condition not met within {timeout:g}s")
            sleep(min(interval, remaining), cancel)
        else:
            sleep(interval, cancel)
