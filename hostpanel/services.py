"""Service and security classification, recomputed from scratch each refresh.

A tracked daemon is NOT_INSTALLED unless one of its binaries (or unit names)
is on PATH. An installed daemon is RUNNING if the init system reports any of
its units active, or failing that if the process table shows it; otherwise
it is OFFLINE. No state is carried between calls.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass

import psutil

from hostpanel.executor import GuardedExecutor
from hostpanel.models import (
    HostFingerprint,
    ServiceReport,
    ServiceState,
    ServiceStatus,
    SshHardening,
    ToolStatus,
)

SSHD_CONFIG = "/etc/ssh/sshd_config"
PHPMYADMIN_PATH = "/usr/share/phpmyadmin"
BACKUP_MARKER = "/var/log/hostpanel_backup.log"

PHP_FPM_MASTER = re.compile(r"php.*fpm.*master")
_LOGGING_UNITS = ("auditd", "rsyslog", "systemd-journald")
_PORTS_WIDTH = 45


@dataclass(frozen=True)
class TrackedService:
    key: str
    label: str
    binaries: tuple[str, ...]
    units: tuple[str, ...]
    version_key: str | None = None
    process_pattern: re.Pattern[str] | None = None


TRACKED_SERVICES: tuple[TrackedService, ...] = (
    TrackedService("nginx", "Nginx Server", ("nginx",), ("nginx",), "nginx"),
    TrackedService(
        "mysql", "MariaDB Server",
        ("mysql", "mariadb", "mysqld"), ("mysql", "mariadb", "mysqld"), "mysql",
    ),
    TrackedService(
        "redis", "Redis Server",
        ("redis-server", "redis"), ("redis", "redis-server"), "redis",
    ),
    # Units are filled in from the fingerprint's discovered php*-fpm units
    TrackedService(
        "php-fpm", "PHP-FPM Engine", ("php-fpm",), ("php-fpm",), "php", PHP_FPM_MASTER,
    ),
    TrackedService("memcached", "Memcached", ("memcached",), ("memcached",)),
    TrackedService("fail2ban", "Fail2Ban", ("fail2ban-client",), ("fail2ban",)),
    TrackedService("cron", "Cron Daemon", ("cron",), ("cron", "crond")),
)

# (key, binary or absolute path, fingerprint version key)
TRACKED_TOOLS: tuple[tuple[str, str, str | None], ...] = (
    ("phpmyadmin", PHPMYADMIN_PATH, None),
    ("wp", "wp", "wp"),
    ("git", "git", "git"),
    ("composer", "composer", "composer"),
    ("node", "node", "node"),
)


@dataclass(frozen=True)
class ProcessTable:
    """Names and command lines of every visible process at one instant."""

    names: frozenset[str]
    cmdlines: tuple[str, ...]

    def has_name(self, names: tuple[str, ...]) -> bool:
        return any(name in self.names for name in names)

    def matches(self, pattern: re.Pattern[str]) -> bool:
        return any(pattern.search(cmd) for cmd in self.cmdlines)


def scan_process_table() -> ProcessTable:
    """Single pass over the process table."""
    names: set[str] = set()
    cmdlines: list[str] = []
    for proc in psutil.process_iter(["name", "cmdline"]):
        try:
            name = proc.info["name"] or ""
            cmdline = proc.info["cmdline"] or []
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if name:
            names.add(name)
        if cmdline:
            cmdlines.append(" ".join(cmdline))
    return ProcessTable(frozenset(names), tuple(cmdlines))


def with_php_units(service: TrackedService, units: tuple[str, ...]) -> TrackedService:
    return TrackedService(
        service.key, service.label, service.binaries, units,
        service.version_key, service.process_pattern,
    )


# ── Daemon classification ──────────────────────────────────────────────────


def _is_installed(executor: GuardedExecutor, service: TrackedService) -> bool:
    if service.process_pattern is not None:
        # php-fpm binaries are usually versioned (php8.3-fpm); discovered
        # units other than the bare default are proof enough
        if any(executor.available(b) for b in service.binaries):
            return True
        return service.units != service.binaries
    return any(executor.available(b) for b in (*service.binaries, *service.units))


def _unit_active(executor: GuardedExecutor, unit: str) -> bool:
    _, ok = executor.run("systemctl", "is-active", "--quiet", unit)
    return ok


def _is_running(
    executor: GuardedExecutor,
    service: TrackedService,
    processes: ProcessTable,
) -> bool:
    if executor.available("systemctl"):
        for unit in service.units:
            if unit and _unit_active(executor, unit):
                return True
    if service.process_pattern is not None:
        return processes.matches(service.process_pattern)
    return processes.has_name((*service.binaries, *service.units))


def resolve_service(
    executor: GuardedExecutor,
    service: TrackedService,
    processes: ProcessTable,
    version: str | None = None,
) -> ServiceStatus:
    if not _is_installed(executor, service):
        return ServiceStatus(service.key, ServiceState.NOT_INSTALLED)
    if _is_running(executor, service, processes):
        return ServiceStatus(service.key, ServiceState.RUNNING, version)
    return ServiceStatus(service.key, ServiceState.OFFLINE, version)


def _tool_status(
    executor: GuardedExecutor, key: str, target: str, version: str | None,
) -> ToolStatus:
    if target.startswith("/"):
        installed = os.path.exists(target)
    else:
        installed = executor.available(target)
    return ToolStatus(key, installed, version if installed else None)


# ── Security & maintenance ─────────────────────────────────────────────────


def check_firewall(executor: GuardedExecutor) -> ServiceStatus:
    """Classify ufw; RUNNING carries the rule count as its annotation."""
    if not executor.available("ufw"):
        return ServiceStatus("ufw", ServiceState.NOT_INSTALLED)
    out, ok = executor.run("ufw", "status")
    if not ok or not re.search(r"\bactive\b", out):
        return ServiceStatus("ufw", ServiceState.OFFLINE)
    # Status line, blank, column header and dashes precede the rules
    rules = [line for line in out.splitlines()[4:] if line.strip()]
    return ServiceStatus("ufw", ServiceState.RUNNING, annotation=f"{len(rules)} Rules")


def check_ssh_hardening(path: str = SSHD_CONFIG) -> SshHardening:
    try:
        with open(path) as f:
            config = f.read()
    except OSError:
        return SshHardening.WEAK
    if re.search(r"^PermitRootLogin\s+no\b", config, re.IGNORECASE | re.MULTILINE):
        return SshHardening.HARDENED
    if re.search(
        r"^PermitRootLogin\s+prohibit-password", config, re.IGNORECASE | re.MULTILINE,
    ):
        return SshHardening.MODERATE
    return SshHardening.WEAK


def check_logging(executor: GuardedExecutor) -> bool:
    """True if at least one of auditd, rsyslog or journald is active."""
    if not executor.available("systemctl"):
        return False
    return any(_unit_active(executor, unit) for unit in _LOGGING_UNITS)


def check_backup(executor: GuardedExecutor, marker: str = BACKUP_MARKER) -> bool:
    return os.path.isfile(marker) or executor.available("borg")


def list_open_ports(executor: GuardedExecutor) -> str:
    """Comma-separated listening ports from ``ss -tuln``."""
    out, ok = executor.run("ss", "-tuln")
    if not ok:
        return "None"
    ports: set[int] = set()
    for line in out.splitlines()[1:]:
        fields = line.split()
        if len(fields) < 5:
            continue
        match = re.match(r"\d+", fields[4].rsplit(":", 1)[-1])
        if match:
            ports.add(int(match.group(0)))
    if not ports:
        return "None"
    joined = ",".join(str(p) for p in sorted(ports))
    if len(joined) >= _PORTS_WIDTH:
        return joined[:_PORTS_WIDTH] + "..."
    return joined


# ── Entry point ────────────────────────────────────────────────────────────


def resolve_services(
    executor: GuardedExecutor,
    fingerprint: HostFingerprint,
    backup_marker: str = BACKUP_MARKER,
) -> ServiceReport:
    """Classify every tracked service, tool and security check for this cycle."""
    processes = scan_process_table()

    statuses: list[ServiceStatus] = []
    for service in TRACKED_SERVICES:
        if service.key == "php-fpm":
            service = with_php_units(service, fingerprint.php_units)
        version = fingerprint.version(service.version_key) if service.version_key else None
        statuses.append(resolve_service(executor, service, processes, version))

    tools = tuple(
        _tool_status(executor, key, target, fingerprint.version(vkey) if vkey else None)
        for key, target, vkey in TRACKED_TOOLS
    )

    return ServiceReport(
        services=tuple(statuses),
        tools=tools,
        firewall=check_firewall(executor),
        ssh=check_ssh_hardening(),
        logging_ok=check_logging(executor),
        backup_configured=check_backup(executor, backup_marker),
        open_ports=list_open_ports(executor),
    )
