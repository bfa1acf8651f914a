"""Boot command rendering, parsing and replay.

A boot command is a flat string mixing literal text with directives in angle
brackets, e.g. ``<esc><wait>linux ks=http://{{ .HTTPIP }}:{{ .HTTPPort }}/ks.cfg<enter>``.
Pointer directives are ``<mouseMoveX,Y>`` and ``<mouseClick>`` (``<mouseClick3>`` for
another button). Rendering substitutes the placeholders; parsing turns the result into a
``KeystrokeSequence``; ``BootCommandDriver`` replays it into a VNC session.
"""

from __future__ import annotations

import re
import threading
from typing import Iterable, List, Optional, Protocol

from tartrunner.exceptions import BootCommandParseError, InjectError, OperationCancelled, TemplateError
from tartrunner.models import (
    BootContext,
    InputEvent,
    KeyDown,
    KeyPress,
    KeystrokeSequence,
    KeyUp,
    MouseClick,
    MouseMove,
    TypeText,
    Wait,
)
from tartrunner.utils import log, sleep

_PLACEHOLDER_RE = re.compile(r"\{\{\s*(.*?)\s*\}\}")
_DIRECTIVE_RE = re.compile(r"<([A-Za-z][A-Za-z0-9.,]*)>")
_WAIT_RE = re.compile(r"^wait((?:\d+(?:\.\d+)?(?:ms|h|m|s))+|\d+(?:\.\d+)?)?$")
_MOUSE_MOVE_RE = re.compile(r"^mousemove(\d+),(\d+)$")
_MOUSE_CLICK_RE = re.compile(r"^mouseclick([1-5])?$")
_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}

# Directive name (lower-cased) -> vncdotool key name
SPECIAL_KEYS = {
    "enter": "enter",
    "return": "enter",
    "esc": "esc",
    "bs": "bsp",
    "del": "delete",
    "tab": "tab",
    "spacebar": " ",
    "insert": "ins",
    "home": "home",
    "end": "end",
    "pageup": "pgup",
    "pagedown": "pgdn",
    "up": "up",
    "down": "down",
    "left": "left",
    "right": "right",
}
SPECIAL_KEYS.update({f"f{n}": f"f{n}" for n in range(1, 13)})

MODIFIER_KEYS = {
    "leftalt": "lalt",
    "rightalt": "ralt",
    "leftctrl": "lctrl",
    "rightctrl": "rctrl",
    "leftshift": "lshift",
    "rightshift": "rshift",
    "leftsuper": "lsuper",
    "rightsuper": "rsuper",
}

PLACEHOLDERS = {".HTTPIP", ".HTTPPort"}


def flatten_boot_command(parts: Iterable[str]) -> str:
    return "".join(parts)


def uses_http_ip(template: str) -> bool:
    return any(m.group(1) == ".HTTPIP" for m in _PLACEHOLDER_RE.finditer(template))


def render_boot_command(template: str, context: BootContext) -> str:
    values = {".HTTPIP": context.http_ip, ".HTTPPort": str(context.http_port)}

    def _substitute(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name not in values:
            raise TemplateError(f"Unknown placeholder '{{{{ {name} }}}}' in boot command")
        return values[name]

    rendered = _PLACEHOLDER_RE.sub(_substitute, template)
    if "{{" in rendered or "}}" in rendered:
        raise TemplateError("Unbalanced '{{' / '}}' in boot command")
    return rendered


def parse_duration(value: str) -> float:
    """Parse ``5``, ``10s``, ``1m30s`` or ``500ms`` into seconds."""
    if re.fullmatch(r"\d+(?:\.\d+)?", value):
        return float(value)
    total = 0.0
    pos = 0
    for match in _DURATION_PART_RE.finditer(value):
        if match.start() != pos:
            raise ValueError(f"Invalid duration '{value}'")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(value) or pos == 0:
        raise ValueError(f"Invalid duration '{value}'")
    return total


def _parse_directive(name: str) -> InputEvent:
    lowered = name.lower()
    wait = _WAIT_RE.match(lowered)
    if wait:
        return Wait(parse_duration(wait.group(1)) if wait.group(1) else 1.0)
    move = _MOUSE_MOVE_RE.match(lowered)
    if move:
        return MouseMove(int(move.group(1)), int(move.group(2)))
    click = _MOUSE_CLICK_RE.match(lowered)
    if click:
        return MouseClick(int(click.group(1) or 1))
    if lowered in SPECIAL_KEYS:
        return KeyPress(SPECIAL_KEYS[lowered])
    if lowered.endswith("on") and lowered[:-2] in MODIFIER_KEYS:
        return KeyDown(MODIFIER_KEYS[lowered[:-2]])
    if lowered.endswith("off") and lowered[:-3] in MODIFIER_KEYS:
        return KeyUp(MODIFIER_KEYS[lowered[:-3]])
    if lowered in MODIFIER_KEYS:
        return KeyPress(MODIFIER_KEYS[lowered])
    raise BootCommandParseError(f"Unknown boot command directive '<{name}>'")


def parse_boot_command(command: str) -> KeystrokeSequence:
    events: List[InputEvent] = []
    pos = 0
    for match in _DIRECTIVE_RE.finditer(command):
        if match.start() > pos:
            events.append(TypeText(command[pos : match.start()]))
        events.append(_parse_directive(match.group(1)))
        pos = match.end()
    if pos < len(command):
        events.append(TypeText(command[pos:]))
    return KeystrokeSequence(events)


class InputSink(Protocol):
    def key_press(self, key: str) -> None: ...

    def key_down(self, key: str) -> None: ...

    def key_up(self, key: str) -> None: ...

    def mouse_move(self, x: int, y: int) -> None: ...

    def mouse_click(self, button: int) -> None: ...


class BootCommandDriver:
    """Replays a keystroke sequence into an input sink, one event at a time."""

    def __init__(self, sink: InputSink, key_interval: float = 0.1) -> None:
        self.sink = sink
        self.key_interval = key_interval

    def run(self, sequence: KeystrokeSequence, cancel: Optional[threading.Event] = None) -> None:
        for index, event in enumerate(sequence):
            try:
                self._apply(event, cancel)
            except OperationCancelled as exc:
                raise InjectError(f"Boot command cancelled at event #{index}", index, event) from exc
            except Exception as exc:
                raise InjectError(f"Failed to send event #{index} ({event!r}): {exc}", index, event) from exc

    def _apply(self, event: InputEvent, cancel: Optional[threading.Event]) -> None:
        if isinstance(event, Wait):
            log("DEBUG", f"Boot command: waiting {event.seconds:g}s")
            sleep(event.seconds, cancel)
        elif isinstance(event, TypeText):
            for char in event.text:
                self.sink.key_press("enter" if char == "\n" else char)
                sleep(self.key_interval, cancel)
        elif isinstance(event, KeyPress):
            self.sink.key_press(event.key)
            sleep(self.key_interval, cancel)
        elif isinstance(event, KeyDown):
            self.sink.key_down(event.key)
            sleep(self.key_interval, cancel)
        elif isinstance(event, KeyUp):
            self.sink.key_up(event.key)
            sleep(self.key_interval, cancel)
        elif isinstance(event, MouseMove):
            self.sink.mouse_move(event.x, event.y)
        elif isinstance(event, MouseClick):
            self.sink.mouse_click(event.button)
        else:
            raise TypeError(f"Unsupported input event {event!r}")
