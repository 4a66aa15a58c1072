"""One-time host fingerprint: OS, kernel, CPU, disk media, IPs and tool versions."""

from __future__ import annotations

import glob
import os
import re
import socket
from types import MappingProxyType

import psutil

from hostpanel.executor import GuardedExecutor
from hostpanel.models import HostFingerprint

# Column budget in the panel
FIELD_WIDTH = 22
CPU_MODEL_WIDTH = 65

OS_RELEASE = "/etc/os-release"
CPUINFO = "/proc/cpuinfo"
SYS_BLOCK = "/sys/block"
PHP_FPM_CONF_GLOB = "/etc/php/*/fpm/php-fpm.conf"

# Scanned in this order; the first non-rotational device decides
_BLOCK_PATTERNS = ("nvme*", "vd*", "sd*", "hd*")

PUBLIC_IP_ENDPOINTS = (
    "https://api.ipify.org",
    "https://ifconfig.me",
    "https://icanhazip.com",
)

_IPV4 = re.compile(r"^\d+\.\d+\.\d+\.\d+$")
_VERSION_3 = re.compile(r"\d+\.\d+\.\d+")
_VERSION_2 = re.compile(r"\d+\.\d+")
_PHP_UNIT = re.compile(r"^php[0-9.]*-fpm(\.service)?", re.IGNORECASE)


def _truncate(value: str, width: int = FIELD_WIDTH) -> str:
    return value[:width]


def extract_version(text: str) -> str | None:
    """Pull the first x.y.z (or failing that x.y) version out of tool output."""
    match = _VERSION_3.search(text) or _VERSION_2.search(text)
    return match.group(0) if match else None


def _read_os_name(path: str = OS_RELEASE) -> str:
    try:
        with open(path) as f:
            for line in f:
                if line.startswith("PRETTY_NAME="):
                    name = line.split("=", 1)[1].strip().strip('"')
                    return name or "Unknown Linux"
    except OSError:
        pass
    return "Unknown Linux"


def _read_cpu_model(path: str = CPUINFO) -> str:
    try:
        with open(path) as f:
            for line in f:
                key, sep, value = line.partition(":")
                if sep and key.strip().lower() == "model name":
                    return value.strip() or "Unknown"
    except OSError:
        pass
    return "Unknown"


def detect_disk_type(root: str = SYS_BLOCK) -> str:
    """Classify the host's storage as "SSD / NVMe", "HDD" or "Unknown"."""
    has_hdd = False
    for pattern in _BLOCK_PATTERNS:
        for device in sorted(glob.glob(os.path.join(root, pattern))):
            try:
                with open(os.path.join(device, "queue", "rotational")) as f:
                    rotational = f.read().strip()
            except OSError:
                continue
            if rotational == "0":
                return "SSD / NVMe"
            if rotational == "1":
                has_hdd = True
    return "HDD" if has_hdd else "Unknown"


def lookup_public_ip(
    executor: GuardedExecutor,
    endpoints: tuple[str, ...] | list[str] = PUBLIC_IP_ENDPOINTS,
) -> str:
    if not executor.available("curl"):
        return "Curl missing"
    for url in endpoints:
        out, _ = executor.run(
            "curl", "-4", "-s", "--connect-timeout", "2", "--max-time", "2", url,
        )
        candidate = out.strip()
        if _IPV4.match(candidate):
            return candidate
    return "Blocked/Fail"


def _lookup_local_ip(executor: GuardedExecutor) -> str:
    out, ok = executor.run("hostname", "-I")
    tokens = out.split() if ok else []
    if tokens:
        return tokens[0]
    try:
        interfaces = psutil.net_if_addrs()
    except (OSError, psutil.Error):
        return "Unavailable"
    for _, addrs in sorted(interfaces.items()):
        for addr in addrs:
            if addr.family == socket.AF_INET and not addr.address.startswith("127."):
                return addr.address
    return "Unavailable"


def _detect_virtualization(executor: GuardedExecutor) -> str:
    if not executor.available("systemd-detect-virt"):
        return "Unknown"
    # Exits non-zero on bare metal, so an empty answer also means "none"
    out, _ = executor.run("systemd-detect-virt")
    virt = out.strip()
    if not virt or "none" in virt.lower():
        return "Dedicated"
    return virt[0].upper() + virt[1:]


def _version_key(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in re.findall(r"\d+", version))


def _php_versions(executor: GuardedExecutor, conf_glob: str = PHP_FPM_CONF_GLOB) -> str | None:
    # /etc/php/<version>/fpm/php-fpm.conf; several versions may coexist
    found = {path.split(os.sep)[-3] for path in glob.glob(conf_glob)}
    if found:
        return ", ".join(sorted(found, key=_version_key))
    out, ok = executor.run("php", "-v")
    if not ok or not out:
        return None
    return extract_version(out.splitlines()[0])


def _php_units(executor: GuardedExecutor) -> tuple[str, ...]:
    if not executor.available("systemctl"):
        return ("php-fpm",)
    out, ok = executor.run("systemctl", "list-unit-files", "--no-legend")
    if not ok:
        return ("php-fpm",)
    units: set[str] = set()
    for line in out.splitlines():
        fields = line.split()
        if not fields:
            continue
        match = _PHP_UNIT.match(fields[0])
        if match:
            units.add(match.group(0).removesuffix(".service"))
    return tuple(sorted(units)) or ("php-fpm",)


def collect_versions(executor: GuardedExecutor) -> dict[str, str]:
    """Probe each tracked tool; tools that aren't installed are left out."""
    probes: dict[str, tuple[tuple[str, ...], dict[str, str] | None]] = {
        "nginx": (("nginx", "-v"), None),
        "mysql": (("mysql", "-V"), None),
        "redis": (("redis-server", "-v"), None),
        "wp": (("wp", "--allow-root", "--skip-wordpress", "--version"), None),
        "git": (("git", "--version"), None),
        "node": (("node", "-v"), None),
        "composer": (
            ("composer", "--version", "--no-interaction"),
            {"COMPOSER_DISABLE_NETWORK": "1", "COMPOSER_ALLOW_SUPERUSER": "1"},
        ),
    }

    versions: dict[str, str] = {}
    for tool, (argv, env) in probes.items():
        out, ok = executor.run(*argv, env=env)
        version = extract_version(out) if ok else None
        if version:
            versions[tool] = version

    php = _php_versions(executor)
    if php:
        versions["php"] = php
    return versions


def collect_fingerprint(
    executor: GuardedExecutor,
    public_ip_endpoints: tuple[str, ...] | list[str] = PUBLIC_IP_ENDPOINTS,
) -> HostFingerprint:
    """Gather the host fingerprint. Each field degrades on its own."""
    kernel, ok = executor.run("uname", "-r")
    kernel = kernel.strip() if ok and kernel.strip() else "Unknown"
    arch, ok = executor.run("uname", "-m")
    arch = arch.strip() if ok and arch.strip() else "Unknown"

    try:
        hostname = socket.gethostname() or "Unknown"
    except OSError:
        hostname = "Unknown"

    return HostFingerprint(
        os_name=_truncate(_read_os_name()),
        kernel=_truncate(kernel),
        cpu_model=_truncate(_read_cpu_model(), CPU_MODEL_WIDTH),
        cpu_cores=os.cpu_count() or 1,
        disk_type=detect_disk_type(),
        public_ip=_truncate(lookup_public_ip(executor, public_ip_endpoints)),
        local_ip=_truncate(_lookup_local_ip(executor)),
        hostname=_truncate(hostname),
        arch=_truncate(arch),
        virtualization=_truncate(_detect_virtualization(executor)),
        versions=MappingProxyType(collect_versions(executor)),
        php_units=_php_units(executor),
    )
