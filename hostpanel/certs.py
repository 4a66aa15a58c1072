"""Certificate store scan: shortest remaining lifetime and renewal automation."""

from __future__ import annotations

import glob
import os
import time
from datetime import datetime, timezone

from hostpanel.executor import GuardedExecutor
from hostpanel.models import CertificateSummary

CERT_DIR = "/etc/letsencrypt/live"
CRON_FILES = ("/etc/crontab", "/etc/cron.*/*")

_SECONDS_PER_DAY = 86400


def parse_enddate(output: str) -> datetime | None:
    """Parse ``notAfter=Jan  5 12:00:00 2027 GMT`` from ``openssl x509 -enddate``."""
    _, sep, value = output.strip().partition("=")
    if not sep:
        return None
    try:
        expiry = datetime.strptime(value.strip(), "%b %d %H:%M:%S %Y %Z")
    except ValueError:
        return None
    return expiry.replace(tzinfo=timezone.utc)


def days_remaining(expiry: datetime, now: float | None = None) -> int:
    """Whole days until *expiry*, truncated toward zero."""
    if now is None:
        now = time.time()
    return int((expiry.timestamp() - now) / _SECONDS_PER_DAY)


def _renewal_in_cron(patterns: tuple[str, ...] = CRON_FILES) -> bool:
    for pattern in patterns:
        for path in glob.glob(pattern):
            try:
                with open(path, errors="replace") as f:
                    if "certbot" in f.read():
                        return True
            except OSError:
                continue
    return False


def renewal_automated(executor: GuardedExecutor) -> bool:
    _, timer_active = executor.run("systemctl", "is-active", "--quiet", "certbot.timer")
    return timer_active or _renewal_in_cron()


def scan_certificates(
    executor: GuardedExecutor,
    cert_dir: str = CERT_DIR,
    now: float | None = None,
) -> CertificateSummary:
    """Summarise every certificate under *cert_dir*.

    Always re-reads the disk; expiry dates are not cached between cycles.
    """
    domains = sorted(
        entry for entry in glob.glob(os.path.join(cert_dir, "*")) if os.path.isdir(entry)
    )
    if not domains:
        return CertificateSummary()

    min_days: int | None = None
    for domain in domains:
        pem = os.path.join(domain, "cert.pem")
        if not os.path.exists(pem):
            continue
        out, ok = executor.run("openssl", "x509", "-enddate", "-noout", "-in", pem)
        expiry = parse_enddate(out) if ok else None
        if expiry is None:
            continue
        days = days_remaining(expiry, now)
        if min_days is None or days < min_days:
            min_days = days

    return CertificateSummary(
        count=len(domains),
        min_days=min_days,
        auto_renew=renewal_automated(executor),
    )
