"""tart-vm-runner package."""

__all__ = [
    "bootcommand",
    "cli",
    "communicator",
    "config",
    "constants",
    "controller",
    "discovery",
    "exceptions",
    "httpserver",
    "models",
    "network",
    "process",
    "runtime",
    "utils",
    "vnc",
]
