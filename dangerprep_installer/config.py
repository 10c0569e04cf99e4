from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


DEFAULTS: Dict[str, str] = {
    # Network
    "WIFI_SSID": "DangerPrep",
    "WIFI_PASSWORD": "EXAMPLE_PASSWORD",
    "WIFI_INTERFACE": "",
    "WAN_INTERFACE": "",
    "LAN_NETWORK": "192.168.120.0/22",
    "LAN_IP": "192.168.120.1",
    "DHCP_START": "192.168.120.100",
    "DHCP_END": "192.168.120.200",
    # Security
    "SSH_PORT": "2222",
    "FAIL2BAN_BANTIME": "3600",
    "FAIL2BAN_MAXRETRY": "3",
    # Accounts
    "NEW_USERNAME": "dangerprep",
    # Storage
    "NVME_PARTITION_CONFIRMED": "false",
    "NVME_DEVICE": "",
}

# Bindings every rendered template may use without the caller passing them.
TEMPLATE_KEYS = (
    "SSH_PORT",
    "WIFI_SSID",
    "WIFI_PASSWORD",
    "WIFI_INTERFACE",
    "WAN_INTERFACE",
    "LAN_IP",
    "LAN_NETWORK",
    "DHCP_START",
    "DHCP_END",
    "FAIL2BAN_BANTIME",
    "FAIL2BAN_MAXRETRY",
    "PROJECT_ROOT",
    "INSTALL_ROOT",
)

DEFAULT_PACKAGES = [
    "curl",
    "wget",
    "git",
    "vim",
    "htop",
    "jq",
    "fail2ban",
    "ufw",
    "parted",
    "docker.io",
    "docker-compose-v2",
]

DEFAULT_SERVICES = ["ssh", "fail2ban", "docker"]

_IFACE_RE = re.compile(r"^[A-Za-z0-9_-]{1,15}$")
_TRUE = {"1", "true", "yes", "y", "on"}


def validate_ip_address(value: str) -> str:
    parts = value.split(".")
    if len(parts) != 4:
        raise ConfigurationError(f"Invalid IP address: {value!r}")
    for octet in parts:
        if not octet.isdigit() or len(octet) > 3:
            raise ConfigurationError(f"Invalid IP address: {value!r}")
        if len(octet) > 1 and octet.startswith("0"):
            raise ConfigurationError(f"Invalid IP address (leading zero): {value!r}")
        if int(octet) > 255:
            raise ConfigurationError(f"Invalid IP address (octet > 255): {value!r}")
    return value


def validate_port(value: str) -> str:
    if not str(value).isdigit() or not (1 <= int(value) <= 65535):
        raise ConfigurationError(f"Invalid port number: {value!r}")
    return str(int(value))


def validate_interface_name(value: str) -> str:
    if not _IFACE_RE.match(value):
        raise ConfigurationError(f"Invalid interface name: {value!r}")
    return value


def validate_path_safe(value: str) -> str:
    if not value.strip() or ".." in Path(value).parts:
        raise ConfigurationError(f"Unsafe path: {value!r}")
    return value


def _validate_network(value: str) -> str:
    if "/" not in value:
        raise ConfigurationError(f"Invalid network (expected CIDR): {value!r}")
    addr, prefix = value.split("/", 1)
    validate_ip_address(addr)
    if not prefix.isdigit() or int(prefix) > 32:
        raise ConfigurationError(f"Invalid network prefix: {value!r}")
    return value


def _validate_positive_int(value: str) -> str:
    if not str(value).isdigit() or int(value) < 1:
        raise ConfigurationError(f"Expected a positive integer, got {value!r}")
    return str(int(value))


VALIDATORS = {
    "LAN_IP": validate_ip_address,
    "DHCP_START": validate_ip_address,
    "DHCP_END": validate_ip_address,
    "LAN_NETWORK": _validate_network,
    "SSH_PORT": validate_port,
    "FAIL2BAN_BANTIME": _validate_positive_int,
    "FAIL2BAN_MAXRETRY": _validate_positive_int,
}

_OPTIONAL_IFACES = ("WIFI_INTERFACE", "WAN_INTERFACE")


def validate_value(key: str, value: str) -> str:
    """Validate one parameter; raise ConfigurationError on bad input."""

    value = str(value).strip()
    if key in _OPTIONAL_IFACES:
        return validate_interface_name(value) if value else value
    if key == "NVME_DEVICE":
        return validate_path_safe(value) if value else value
    check = VALIDATORS.get(key)
    return check(value) if check else value


@dataclass(frozen=True)
class InstallConfig:
    """Flat parameter map with typed accessors. Read-only once built."""

    values: Mapping[str, str]
    packages: List[str] = field(default_factory=lambda: list(DEFAULT_PACKAGES))
    services: List[str] = field(default_factory=lambda: list(DEFAULT_SERVICES))

    def get(self, key: str, default: str = "") -> str:
        return str(self.values.get(key, default))

    @property
    def ssh_port(self) -> int:
        return int(self.get("SSH_PORT", DEFAULTS["SSH_PORT"]))

    @property
    def nvme_partition_confirmed(self) -> bool:
        return self.get("NVME_PARTITION_CONFIRMED").strip().lower() in _TRUE

    @property
    def nvme_device(self) -> Optional[str]:
        return self.get("NVME_DEVICE").strip() or None

    def with_values(self, **updates: str) -> "InstallConfig":
        merged = dict(self.values)
        merged.update({k: str(v) for k, v in updates.items()})
        return InstallConfig(values=merged, packages=list(self.packages), services=list(self.services))

    def template_bindings(self, *, install_root: str) -> Dict[str, str]:
        extra = {"INSTALL_ROOT": install_root, "PROJECT_ROOT": install_root}
        out: Dict[str, str] = {}
        for key in TEMPLATE_KEYS:
            v = self.values.get(key, extra.get(key, ""))
            if v not in (None, ""):
                out[key] = str(v)
        return out


@dataclass(frozen=True)
class Settings:
    """Contents of the optional YAML settings file."""

    raw: Dict[str, Any]

    @property
    def config(self) -> Dict[str, str]:
        cfg = self.raw.get("config") or {}
        if not isinstance(cfg, dict):
            raise ConfigurationError("settings 'config' must be a mapping")
        return {str(k): "" if v is None else _scalar(v) for k, v in cfg.items()}

    @property
    def packages(self) -> List[str]:
        return [str(p) for p in (self.raw.get("packages") or DEFAULT_PACKAGES)]

    @property
    def services(self) -> List[str]:
        return [str(s) for s in (self.raw.get("services") or DEFAULT_SERVICES)]


def _scalar(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    return str(v)


def load_settings(path: Optional[str]) -> Settings:
    """Load the YAML settings file; a missing file means defaults."""

    if not path:
        return Settings(raw={})
    p = Path(path)
    if not p.exists():
        logger.debug("No settings file at %s, using defaults", p)
        return Settings(raw={})

    if p.suffix.lower() not in {".yaml", ".yml"}:
        raise ConfigurationError("settings file must be YAML")

    try:
        import yaml  # type: ignore
    except Exception as e:
        raise ConfigurationError("PyYAML is required to read the settings file") from e

    raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{p} must contain a mapping/object")
    return Settings(raw=raw)


def build_config(
    *,
    settings: Settings,
    environ: Optional[Mapping[str, str]] = None,
    overrides: Optional[Mapping[str, str]] = None,
) -> InstallConfig:
    """Layer defaults < settings file < environment < overrides, validating each value."""

    env = os.environ if environ is None else environ
    values: Dict[str, str] = dict(DEFAULTS)
    values.update(settings.config)
    for key in DEFAULTS:
        if key in env:
            values[key] = env[key]
    values.update(overrides or {})

    validated = {k: validate_value(k, v) for k, v in values.items()}
    return InstallConfig(values=validated, packages=settings.packages, services=settings.services)
