"""Data models for hostpanel.

Everything here is an immutable value object. A fresh set is built each
refresh and handed to the panel renderer; nothing is shared between cycles.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


@dataclass(frozen=True)
class HostFingerprint:
    """Slowly-changing host facts, collected once per session."""

    os_name: str
    kernel: str
    cpu_model: str
    cpu_cores: int
    disk_type: str
    public_ip: str
    local_ip: str
    hostname: str
    arch: str
    virtualization: str
    versions: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    php_units: tuple[str, ...] = ("php-fpm",)

    def version(self, tool: str) -> str | None:
        return self.versions.get(tool) or None


@dataclass(frozen=True)
class MetricSnapshot:
    """Fast-changing resource usage for one refresh cycle."""

    cpu_percent: int = 0
    load_average: tuple[float, float, float] | None = None
    process_count: int | None = None
    uptime: str = "Unknown"
    mem_total_mb: int = 0
    mem_used_mb: int = 0
    mem_percent: int = 0
    swap_total_mb: int = 0
    swap_used_mb: int = 0
    swap_percent: int = 0
    disk_total: str = "0"
    disk_used: str = "0"
    disk_percent: int = 0


class ServiceState(Enum):
    NOT_INSTALLED = "not-installed"
    OFFLINE = "offline"
    RUNNING = "running"


@dataclass(frozen=True)
class ServiceStatus:
    key: str
    state: ServiceState
    version: str | None = None
    annotation: str | None = None  # e.g. "12 Rules"

    @property
    def display_version(self) -> str | None:
        if self.state is ServiceState.NOT_INSTALLED:
            return None
        return self.version

    @property
    def display_annotation(self) -> str | None:
        if self.state is ServiceState.NOT_INSTALLED:
            return None
        return self.annotation


@dataclass(frozen=True)
class ToolStatus:
    """Presence of a command-line tool or web app that has no daemon."""

    key: str
    installed: bool
    version: str | None = None


class SshHardening(Enum):
    WEAK = "weak"
    MODERATE = "moderate"
    HARDENED = "hardened"


@dataclass(frozen=True)
class ServiceReport:
    services: tuple[ServiceStatus, ...]
    tools: tuple[ToolStatus, ...]
    firewall: ServiceStatus
    ssh: SshHardening
    logging_ok: bool
    backup_configured: bool
    open_ports: str = "None"

    def service(self, key: str) -> ServiceStatus:
        for status in self.services:
            if status.key == key:
                return status
        return ServiceStatus(key, ServiceState.NOT_INSTALLED)

    def tool(self, key: str) -> ToolStatus:
        for status in self.tools:
            if status.key == key:
                return status
        return ToolStatus(key, installed=False)


@dataclass(frozen=True)
class CertificateSummary:
    count: int = 0
    min_days: int | None = None  # None when no certificate could be parsed
    auto_renew: bool = False

    @property
    def installed(self) -> bool:
        return self.count > 0
