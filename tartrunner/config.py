"""Configuration loading and environment variable parsing for tart-vm-runner."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

try:
    import yaml  # type: ignore
except ImportError as exc:  # pragma: no cover
    raise SystemExit("PyYAML is required but not installed") from exc

from tartrunner.constants import DEFAULT_HTTP_INTERFACE, TART_BIN
from tartrunner.exceptions import ConfigError
from tartrunner.models import RunnerConfig
from tartrunner.utils import get_env, get_env_bool, log, parse_float_env, parse_int_env


def load_boot_command(path: Path) -> List[str]:
    """Read a boot command from YAML.

    Accepts a mapping with a ``boot_command`` key, a bare list of strings, or
    a single string.
    """
    if not path.exists():
        raise ConfigError(f"BOOT_COMMAND_FILE not found: {path}")
    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as exc:
        raise ConfigError(f"BOOT_COMMAND_FILE contains invalid YAML: {exc}")
    if isinstance(data, dict):
        if "boot_command" not in data:
            raise ConfigError(f"BOOT_COMMAND_FILE has no 'boot_command' key: {path}")
        data = data["boot_command"]
    if data is None:
        return []
    if isinstance(data, str):
        return [data]
    if isinstance(data, list) and all(isinstance(item, str) for item in data):
        return list(data)
    raise ConfigError("boot_command must be a string or a list of strings")


def _optional_timeout(name: str, default: str) -> Optional[float]:
    value = parse_float_env(name, default)
    return value if value > 0 else None


def _optional_str(name: str) -> Optional[str]:
    raw = get_env(name)
    if raw is None:
        return None
    return raw.strip() or None


def parse_env() -> RunnerConfig:
    vm_name = _optional_str("VM_NAME")
    if not vm_name:
        raise ConfigError(
            "VM_NAME must be set to the name of an existing tart VM.\n"
            "  Create one first, e.g.: tart create --from-ipsw=latest my-vm"
        )

    from_iso = [item.strip() for item in (get_env("FROM_ISO") or "").split(",") if item.strip()]

    inline_command = get_env("BOOT_COMMAND")
    command_file = _optional_str("BOOT_COMMAND_FILE")
    if inline_command and command_file:
        raise ConfigError("Set only one of BOOT_COMMAND or BOOT_COMMAND_FILE, not both.")
    boot_command: List[str] = []
    if command_file:
        boot_command = load_boot_command(Path(command_file))
    elif inline_command:
        boot_command = [inline_command]

    http_directory: Optional[Path] = None
    http_directory_env = _optional_str("HTTP_DIRECTORY")
    if http_directory_env:
        http_directory = Path(http_directory_env)
        if not http_directory.is_dir():
            raise ConfigError(f"HTTP_DIRECTORY must point to a directory: {http_directory}")

    http_port = parse_int_env("HTTP_PORT", "0", min_val=0, max_val=65535)
    http_port_min = parse_int_env("HTTP_PORT_MIN", "8000", min_val=1, max_val=65535)
    http_port_max = parse_int_env("HTTP_PORT_MAX", "9000", min_val=1, max_val=65535)
    if http_port_min > http_port_max:
        raise ConfigError(f"HTTP_PORT_MIN ({http_port_min}) must be <= HTTP_PORT_MAX ({http_port_max})")

    ssh_username = _optional_str("SSH_USERNAME")
    ssh_password = get_env("SSH_PASSWORD") or None
    if bool(ssh_username) != bool(ssh_password):
        raise ConfigError("Set both SSH_USERNAME and SSH_PASSWORD to enable the graceful shutdown over SSH.")

    cfg = RunnerConfig(
        vm_name=vm_name,
        tart_bin=_optional_str("TART_BIN") or TART_BIN,
        headless=get_env_bool("HEADLESS", True),
        disable_vnc=get_env_bool("DISABLE_VNC", False),
        recovery=get_env_bool("RECOVERY", False),
        from_iso=from_iso,
        extra_args=(get_env("EXTRA_ARGS") or "").strip(),
        http_interface=_optional_str("HTTP_INTERFACE") or DEFAULT_HTTP_INTERFACE,
        network_settle_delay=parse_float_env("NETWORK_SETTLE_DELAY", "10"),
        network_timeout=parse_float_env("NETWORK_TIMEOUT", "0"),
        vnc_credentials_timeout=_optional_timeout("VNC_CREDENTIALS_TIMEOUT", "300"),
        vnc_connect_timeout=parse_float_env("VNC_CONNECT_TIMEOUT", "10", min_val=0.1),
        boot_command=boot_command,
        boot_wait=parse_float_env("BOOT_WAIT", "0"),
        boot_key_interval=parse_float_env("BOOT_KEY_INTERVAL", "0.1"),
        http_directory=http_directory,
        http_port=http_port,
        http_port_min=http_port_min,
        http_port_max=http_port_max,
        ssh_host=_optional_str("SSH_HOST"),
        ssh_port=parse_int_env("SSH_PORT", "22", min_val=1, max_val=65535),
        ssh_username=ssh_username,
        ssh_password=ssh_password,
        ssh_timeout=parse_float_env("SSH_TIMEOUT", "120", min_val=1),
        shutdown_timeout=parse_float_env("SHUTDOWN_TIMEOUT", "300", min_val=1),
        exit_timeout=_optional_timeout("EXIT_TIMEOUT", "0"),
    )

    if cfg.boot_command and cfg.disable_vnc:
        log("WARN", "DISABLE_VNC is set; the boot command will not be typed")
    elif cfg.boot_command and cfg.from_iso:
        log("INFO", "FROM_ISO detected; skipping the boot command")
    return cfg
