"""Fixed-geometry text panel.

Every value is cut or padded to its column width on plain text before any
colour code is attached, so long values never push the separator or the
next column sideways. :func:`render_panel` has no hidden state: the same
inputs always give the same bytes.
"""

from __future__ import annotations

from typing import Any

from hostpanel.config import DEFAULT_CONFIG
from hostpanel.menu import RESERVED, Action, MENU_ITEMS
from hostpanel.models import (
    CertificateSummary,
    HostFingerprint,
    MetricSnapshot,
    ServiceReport,
    ServiceState,
    ServiceStatus,
    SshHardening,
    ToolStatus,
)

# ── ANSI helpers ────────────────────────────────────────────────────────────

BOLD = "\033[1m"
RED = "\033[91m"
YELLOW = "\033[93m"
GREEN = "\033[92m"
CYAN = "\033[96m"
PURPLE = "\033[95m"
WHITE = "\033[97m"
GRAY = "\033[90m"
RESET = "\033[0m"

# ── Geometry ────────────────────────────────────────────────────────────────

INDENT = 6
LABEL_WIDTH = 16
MID_COL = 47  # column of the "│" separator
LEFT_VALUE_WIDTH = MID_COL - INDENT - LABEL_WIDTH - 3
RIGHT_VALUE_WIDTH = 28
RULE_WIDTH = 97
FULL_VALUE_WIDTH = RULE_WIDTH - INDENT - LABEL_WIDTH - 2
BAR_SLOTS = 40

Segment = tuple[str, str]  # (text, ANSI style)


def _fit(segments: list[Segment], width: int, pad: bool = True) -> str:
    """Lay coloured segments into exactly *width* visible columns."""
    out: list[str] = []
    room = width
    for text, style in segments:
        if room <= 0:
            break
        piece = text[:room]
        room -= len(piece)
        out.append(f"{style}{piece}{RESET}" if style else piece)
    if pad and room > 0:
        out.append(" " * room)
    return "".join(out)


def _cell(label: str, value: list[Segment], width: int, pad: bool = True) -> str:
    head = f"{label[:LABEL_WIDTH]:<{LABEL_WIDTH}}: "
    return _fit([(head, ""), *value], LABEL_WIDTH + 2 + width, pad)


def _plain(value: str) -> list[Segment]:
    return [(value, WHITE)]


def _row(
    left_label: str, left: list[Segment], right_label: str, right: list[Segment],
) -> str:
    return (
        " " * INDENT
        + _cell(left_label, left, LEFT_VALUE_WIDTH)
        + " "
        + f"{GRAY}│{RESET} "
        + _cell(right_label, right, RIGHT_VALUE_WIDTH, pad=False)
    )


def _wide_row(label: str, value: list[Segment]) -> str:
    return " " * INDENT + _cell(label, value, FULL_VALUE_WIDTH, pad=False)


def _rule(left: str = "├", right: str = "┤") -> str:
    return f"{CYAN}{left}{'─' * RULE_WIDTH}{right}{RESET}"


def _section(title: str) -> str:
    return f"   {PURPLE}{BOLD}{title}{RESET}"


# ── Colour bands ────────────────────────────────────────────────────────────


def _band(thresholds: dict[str, Any], metric: str) -> tuple[float, float]:
    defaults = DEFAULT_CONFIG["thresholds"][metric]
    levels = thresholds.get(metric, {})
    return (
        float(levels.get("warning", defaults["warning"])),
        float(levels.get("critical", defaults["critical"])),
    )


def severity_color(value: float, warn: float, crit: float, normal: str = WHITE) -> str:
    if value >= crit:
        return RED
    if value >= warn:
        return YELLOW
    return normal


def cert_color(days: int | None, warn_days: float, crit_days: float) -> str:
    """Fewer days is worse: <= critical red, <= warning yellow, else green."""
    if days is None:
        return GREEN
    if days <= crit_days:
        return RED
    if days <= warn_days:
        return YELLOW
    return GREEN


# ── Gauges ──────────────────────────────────────────────────────────────────


def draw_bar(percent: int, color: str = WHITE, slots: int = BAR_SLOTS) -> str:
    """Render ``[####----] 42%`` with a fixed slot count."""
    pct = max(0, min(100, int(percent)))
    filled = pct * slots // 100
    empty = slots - filled
    return (
        f"{color}[{'#' * filled}{RESET}"
        f"{GRAY}{'-' * empty}{RESET}"
        f"{color}]{RESET} {BOLD}{pct:>3}%{RESET}"
    )


def _gauge_row(label: str, percent: int, color: str, suffix: str = "") -> str:
    head = " " * INDENT + f"{label[:LABEL_WIDTH]:<{LABEL_WIDTH}}: "
    return head + draw_bar(percent, color) + suffix


# ── Status labels ───────────────────────────────────────────────────────────


def service_segments(
    status: ServiceStatus, running: str = "RUNNING", offline: str = "OFFLINE",
) -> list[Segment]:
    """Presentation of a three-state status; NOT_INSTALLED never shows details."""
    if status.state is ServiceState.NOT_INSTALLED:
        return [("○ NOT INSTALLED", GRAY)]
    if status.state is ServiceState.RUNNING:
        segments = [(f"● {running}", GREEN)]
    else:
        segments = [(f"○ {offline}", RED)]
    if status.display_version:
        segments.append((f" (v{status.display_version})", GRAY))
    if status.display_annotation:
        segments.append((f" ({status.display_annotation})", GRAY))
    return segments


def tool_segments(tool: ToolStatus) -> list[Segment]:
    if not tool.installed:
        return [("○ NOT INSTALLED", GRAY)]
    segments = [("● INSTALLED", GREEN)]
    if tool.version:
        segments.append((f" (v{tool.version})", GRAY))
    return segments


_SSH_LABELS: dict[SshHardening, list[Segment]] = {
    SshHardening.WEAK: [("● WEAK", RED), (" (Root Allowed)", GRAY)],
    SshHardening.MODERATE: [("● MODERATE", YELLOW), (" (Key Only)", GRAY)],
    SshHardening.HARDENED: [("● HARDENED", GREEN), (" (Root Denied)", GRAY)],
}


def cert_segments(certs: CertificateSummary, thresholds: dict[str, Any]) -> list[Segment]:
    if not certs.installed:
        return [("○ NOT INSTALLED", GRAY)]
    warn, crit = _band(thresholds, "cert_days")
    days = "?" if certs.min_days is None else str(certs.min_days)
    auto = "ON" if certs.auto_renew else "OFF"
    return [
        ("● OK", cert_color(certs.min_days, warn, crit)),
        (f" ({certs.count} certs | shortest: {days} days | Auto: {auto})", GRAY),
    ]


# ── Sections ────────────────────────────────────────────────────────────────


def _server_info(fp: HostFingerprint, snap: MetricSnapshot) -> list[str]:
    return [
        _section("SERVER INFORMATION"),
        _row("OS", _plain(fp.os_name), "Kernel", _plain(fp.kernel)),
        _row("Hostname", _plain(fp.hostname), "Architecture", _plain(fp.arch)),
        _row("Public IP", _plain(fp.public_ip), "Local IP", _plain(fp.local_ip)),
        _row("Uptime", _plain(snap.uptime), "Virtualization", _plain(fp.virtualization)),
    ]


def _resources(fp: HostFingerprint, snap: MetricSnapshot) -> list[str]:
    if snap.load_average is None:
        load = "N/A"
    else:
        load = ", ".join(f"{v:.2f}" for v in snap.load_average)
    procs = "Unknown" if snap.process_count is None else str(snap.process_count)
    return [
        _section("SYSTEM RESOURCES"),
        _wide_row("CPU Model", _plain(fp.cpu_model)),
        _row("CPU Cores", _plain(f"{fp.cpu_cores} Cores"), "Load Average", _plain(load)),
        _row("Total RAM", _plain(f"{snap.mem_total_mb} MB"), "Active Procs", _plain(procs)),
        _row("Total Disk", _plain(snap.disk_total), "Disk Type", _plain(fp.disk_type)),
    ]


def _utilization(snap: MetricSnapshot, thresholds: dict[str, Any]) -> list[str]:
    cpu_c = severity_color(snap.cpu_percent, *_band(thresholds, "cpu_percent"))
    ram_c = severity_color(snap.mem_percent, *_band(thresholds, "ram_percent"))
    swap_c = severity_color(snap.swap_percent, *_band(thresholds, "swap_percent"))
    disk_c = severity_color(snap.disk_percent, *_band(thresholds, "disk_percent"))
    return [
        _section("RESOURCE UTILIZATION"),
        _gauge_row("CPU Usage", snap.cpu_percent, cpu_c),
        _gauge_row(
            "RAM Usage", snap.mem_percent, ram_c,
            f"  ({snap.mem_used_mb} / {snap.mem_total_mb} MB)",
        ),
        _gauge_row(
            "Swap Usage", snap.swap_percent, swap_c,
            f"  ({snap.swap_used_mb} / {snap.swap_total_mb} MB)",
        ),
        _gauge_row(
            "Disk Usage", snap.disk_percent, disk_c,
            f"  ({snap.disk_used} / {snap.disk_total})",
        ),
    ]


def _web_stack(
    report: ServiceReport, certs: CertificateSummary, thresholds: dict[str, Any],
) -> list[str]:
    php = report.service("php-fpm")
    php_label = "PHP-FPM Pools" if "," in (php.display_version or "") else "PHP-FPM Engine"
    return [
        _section("WEB, DATABASE & CACHE"),
        _row(
            "Nginx Server", service_segments(report.service("nginx")),
            php_label, service_segments(php),
        ),
        _row(
            "MariaDB Server", service_segments(report.service("mysql")),
            "phpMyAdmin", tool_segments(report.tool("phpmyadmin")),
        ),
        _row(
            "Redis Server", service_segments(report.service("redis")),
            "Memcached", service_segments(report.service("memcached")),
        ),
        _wide_row("SSL Status", cert_segments(certs, thresholds)),
        _wide_row("Open Ports", _plain(report.open_ports)),
    ]


def _tools(report: ServiceReport) -> list[str]:
    return [
        _section("MANAGEMENT TOOLS"),
        _row(
            "WP-CLI", tool_segments(report.tool("wp")),
            "Git Version", tool_segments(report.tool("git")),
        ),
        _row(
            "Composer", tool_segments(report.tool("composer")),
            "Node.js Runtime", tool_segments(report.tool("node")),
        ),
    ]


def _security(report: ServiceReport) -> list[str]:
    logging_segments = (
        [("● Auditd/Syslog OK", GREEN)] if report.logging_ok else [("○ OFFLINE", RED)]
    )
    backup_segments = (
        [("● CONFIGURED", GREEN)]
        if report.backup_configured
        else [("○ NOT CONFIGURED", GRAY)]
    )
    return [
        _section("SECURITY & MAINTENANCE"),
        _row(
            "UFW Firewall", service_segments(report.firewall, "ACTIVE", "INACTIVE"),
            "Fail2Ban", service_segments(report.service("fail2ban")),
        ),
        _row(
            "SSH Hardening", _SSH_LABELS[report.ssh],
            "Logging System", logging_segments,
        ),
        _row(
            "Cron Daemon", service_segments(report.service("cron")),
            "Backup Status", backup_segments,
        ),
    ]


def _submenu_row(left: list[Segment], right: list[Segment]) -> str:
    return (
        " " * INDENT
        + _fit(left, MID_COL - INDENT)
        + f"{GRAY}│{RESET} "
        + _fit(right, RIGHT_VALUE_WIDTH, pad=False)
    )


def _actions() -> list[str]:
    soon: list[Segment] = [("   (Options coming soon...)", GRAY)]
    items = []
    for code, label in MENU_ITEMS:
        color = RED if RESERVED[code] is Action.QUIT else CYAN
        items.append(f"{color}({code}){RESET} {label}")
    return [
        _section("ACTIONS & OPERATIONS"),
        "",
        _submenu_row([("PROJECTS & SITES", BOLD)], [("SYSTEM & STACK", BOLD)]),
        _submenu_row(soon, soon),
        _submenu_row([], []),
        _submenu_row([("SERVICE & SERVER CTRL", BOLD)], [("HEAVY MAINTENANCE", BOLD)]),
        _submenu_row(soon, soon),
        "",
        f"   {GRAY}{'─' * (RULE_WIDTH - 4)}{RESET}",
        "   " + "   ".join(items),
    ]


def render_panel(
    fingerprint: HostFingerprint,
    snapshot: MetricSnapshot,
    report: ServiceReport,
    certs: CertificateSummary,
    thresholds: dict[str, Any] | None = None,
    now: str = "",
) -> str:
    """Render the whole dashboard. *now* is the server-time string shown in the header."""
    if thresholds is None:
        thresholds = DEFAULT_CONFIG["thresholds"]

    lines = [
        _rule("┌", "┐"),
        f"   {BOLD}{WHITE}{'HOSTPANEL':<50}{RESET}    {GREEN}Server Time: {now:<20}{RESET}",
        _rule(),
        *_server_info(fingerprint, snapshot),
        _rule(),
        *_resources(fingerprint, snapshot),
        _rule(),
        *_utilization(snapshot, thresholds),
        _rule(),
        *_web_stack(report, certs, thresholds),
        _rule(),
        *_tools(report),
        _rule(),
        *_security(report),
        _rule(),
        *_actions(),
        _rule("└", "┘"),
    ]
    return "\n".join(lines) + "\n"
