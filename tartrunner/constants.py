"""Global constants for tart-vm-runner."""

from __future__ import annotations

import os
import re

TART_BIN = "tart"
IFCONFIG_PATH = "/sbin/ifconfig"
DEFAULT_HTTP_INTERFACE = "bridge100"

TRUTHY = {"1", "true", "yes", "on"}

# tart prints "vnc://:<password>@<host>:<port>"; the user part is optional.
VNC_DESCRIPTOR_RE = re.compile(r"vnc://(?:[^:@/\s]*:)?([^@\s]*)@([^:/\s]+):([0-9]{1,5})")
INET_RE = re.compile(r"inet[^\d]+([\d\.]+)\s")

CREDENTIAL_POLL_INTERVAL = 1.0
NETWORK_POLL_INTERVAL = 1.0
PROCESS_POLL_INTERVAL = 1.0

# Keeps tart from opening Screen Sharing against the VNC server it starts.
VNC_SUPPRESS_ENV = {"CI": "true"}

SHUTDOWN_COMMAND = "echo {password} | sudo -S shutdown -h now"

_LOG_VERBOSE = os.environ.get("LOG_VERBOSE", "").lower() in {"1", "true", "yes", "on"}

_SENSITIVE_FIELDS = {"ssh_password"}
