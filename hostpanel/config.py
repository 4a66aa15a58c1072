"""hostpanel settings: timeouts, file locations, IP lookup endpoints and colour bands.

A `--config` file wins over ~/.config/hostpanel/config.toml; with neither,
DEFAULT_CONFIG is used as is.
"""

from __future__ import annotations

import os
import sys
import tomllib
from pathlib import Path
from typing import Any


def _default_lock_file() -> str:
    run_dir = "/run" if os.path.isdir("/run") else "/var/run"
    return f"{run_dir}/hostpanel.lock"


DEFAULT_CONFIG: dict[str, Any] = {
    "executor_timeout": 2.0,
    "cpu_sample_interval": 0.2,
    "min_columns": 95,
    "lock_file": _default_lock_file(),
    "log_file": "/var/log/hostpanel.log",
    "fallback_log_file": "/tmp/hostpanel.log",
    "cert_dir": "/etc/letsencrypt/live",
    "backup_marker": "/var/log/hostpanel_backup.log",
    "public_ip_endpoints": [
        "https://api.ipify.org",
        "https://ifconfig.me",
        "https://icanhazip.com",
    ],
    "thresholds": {
        "cpu_percent": {"warning": 70, "critical": 90},
        "ram_percent": {"warning": 70, "critical": 90},
        "swap_percent": {"warning": 30, "critical": 60},
        "disk_percent": {"warning": 80, "critical": 90},
        # Days left; lower is worse
        "cert_days": {"warning": 15, "critical": 5},
    },
}

_DEFAULT_PATH = Path.home() / ".config" / "hostpanel" / "config.toml"


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """Overlay user settings on *base*, one table level deep.

    ``[thresholds.cpu_percent]`` in the user file replaces that metric's whole
    band while the other metrics keep their defaults. A band that sets only
    ``warning`` or ``critical`` is completed per level by ``panel._band``.
    """
    merged = dict(base)
    for key, value in overlay.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = {**merged[key], **value}
        else:
            # Scalars and lists (public_ip_endpoints) are replaced outright
            merged[key] = value
    return merged


def load_config(path: Path | None = None) -> dict[str, Any]:
    """Return hostpanel's settings with any user TOML merged over DEFAULT_CONFIG.

    Args:
        path: File given with ``--config``. When None, the per-user file
              ``~/.config/hostpanel/config.toml`` is used if it exists.

    Raises:
        SystemExit: The ``--config`` file is missing or isn't valid TOML.
            A broken per-user file is skipped with a warning.
    """
    if path is not None:
        if not path.is_file():
            print(f"hostpanel: config file not found: {path}", file=sys.stderr)
            raise SystemExit(1)
        try:
            user_config = tomllib.loads(path.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError as e:
            print(f"hostpanel: invalid TOML in {path}: {e}", file=sys.stderr)
            raise SystemExit(1) from e
        return _deep_merge(DEFAULT_CONFIG, user_config)

    if _DEFAULT_PATH.is_file():
        try:
            user_config = tomllib.loads(_DEFAULT_PATH.read_text(encoding="utf-8"))
            return _deep_merge(DEFAULT_CONFIG, user_config)
        except tomllib.TOMLDecodeError:
            print(
                f"hostpanel: warning: ignoring invalid TOML in {_DEFAULT_PATH}",
                file=sys.stderr,
            )

    return dict(DEFAULT_CONFIG)


def dump_default_config() -> str:
    """Return the default configuration as a TOML string."""
    lines = [
        "# hostpanel configuration",
        "# Place this file at ~/.config/hostpanel/config.toml",
        "",
    ]

    for key in (
        "executor_timeout",
        "cpu_sample_interval",
        "min_columns",
    ):
        lines.append(f"{key} = {DEFAULT_CONFIG[key]}")
    for key in (
        "lock_file",
        "log_file",
        "fallback_log_file",
        "cert_dir",
        "backup_marker",
    ):
        lines.append(f'{key} = "{DEFAULT_CONFIG[key]}"')

    endpoints = ", ".join(f'"{url}"' for url in DEFAULT_CONFIG["public_ip_endpoints"])
    lines.append(f"public_ip_endpoints = [{endpoints}]")
    lines.append("")

    # Thresholds
    for metric, levels in DEFAULT_CONFIG["thresholds"].items():
        lines.append(f"[thresholds.{metric}]")
        lines.append(f"warning = {levels['warning']}")
        lines.append(f"critical = {levels['critical']}")
        lines.append("")

    return "\n".join(lines) + "\n"
