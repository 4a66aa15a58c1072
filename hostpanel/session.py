"""Interactive dashboard session.

Usage:
    sudo hostpanel
    sudo hostpanel --config path/to/config.toml
    hostpanel --dump-config > ~/.config/hostpanel/config.toml
"""

from __future__ import annotations

import argparse
import logging
import os
import shutil
import signal
import sys
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from hostpanel.certs import scan_certificates
from hostpanel.config import DEFAULT_CONFIG, dump_default_config, load_config
from hostpanel.errors import PrivilegeError, StartupError
from hostpanel.executor import GuardedExecutor
from hostpanel.fingerprint import collect_fingerprint
from hostpanel.lock import instance_lock
from hostpanel.logsink import open_log_sink
from hostpanel.menu import Action, dispatch
from hostpanel.models import HostFingerprint
from hostpanel.panel import BOLD, GRAY, GREEN, RED, RESET, WHITE, YELLOW, render_panel
from hostpanel.sampler import sample_metrics
from hostpanel.services import resolve_services

CLEAR = "\033[H\033[2J"
PROMPT = f"\n   {BOLD}{WHITE}Select an option:{RESET} "


def require_root() -> None:
    if os.geteuid() != 0:
        raise PrivilegeError("must be run as root")


def _ignore_interrupt(signum: int, frame: Any) -> None:
    pass


@contextmanager
def terminal_handoff() -> Iterator[None]:
    """Let an external tool own Ctrl+C until the block exits.

    A Python-level handler (unlike SIG_IGN) is reset to the default in the
    child on exec, so the interrupt stops the tool while the session carries on.
    """
    previous = signal.getsignal(signal.SIGINT)
    signal.signal(signal.SIGINT, _ignore_interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous if previous is not None else signal.SIG_DFL)


class Session:
    """Refresh loop: sample, render, read one line, dispatch."""

    def __init__(
        self,
        config: dict[str, Any],
        logger: logging.Logger,
        executor: GuardedExecutor | None = None,
        read_line: Callable[[str], str] = input,
    ) -> None:
        self.config = config
        self.logger = logger
        self.executor = executor or GuardedExecutor(
            float(config.get("executor_timeout", DEFAULT_CONFIG["executor_timeout"]))
        )
        self._read_line = read_line
        self.fingerprint: HostFingerprint | None = None

    # ── Startup ─────────────────────────────────────────────────────────

    def _warn_if_narrow(self) -> None:
        min_columns = int(self.config.get("min_columns", DEFAULT_CONFIG["min_columns"]))
        columns = shutil.get_terminal_size((100, 24)).columns
        if columns < min_columns:
            print(f"{YELLOW}Warning: Terminal width ({columns}) is too narrow. UI may distort.{RESET}")
            print(f"{GRAY}Recommended: {min_columns}+ columns. Starting in 3 seconds...{RESET}")
            time.sleep(3)

    def start(self) -> None:
        self._warn_if_narrow()
        print(f"{YELLOW}Gathering system footprint, please wait...{RESET}")
        endpoints = self.config.get(
            "public_ip_endpoints", DEFAULT_CONFIG["public_ip_endpoints"]
        )
        self.fingerprint = collect_fingerprint(self.executor, endpoints)

    # ── Refresh ─────────────────────────────────────────────────────────

    def refresh(self) -> str:
        """Sample everything afresh and return the rendered panel."""
        if self.fingerprint is None:
            self.start()
        assert self.fingerprint is not None

        snapshot = sample_metrics(
            self.executor,
            float(self.config.get("cpu_sample_interval", DEFAULT_CONFIG["cpu_sample_interval"])),
        )
        report = resolve_services(
            self.executor,
            self.fingerprint,
            str(self.config.get("backup_marker", DEFAULT_CONFIG["backup_marker"])),
        )
        certs = scan_certificates(
            self.executor, str(self.config.get("cert_dir", DEFAULT_CONFIG["cert_dir"])),
        )
        return render_panel(
            self.fingerprint,
            snapshot,
            report,
            certs,
            self.config.get("thresholds", DEFAULT_CONFIG["thresholds"]),
            time.strftime("%Y-%m-%d %H:%M:%S"),
        )

    # ── Live tools ──────────────────────────────────────────────────────

    def _launch(self, command: str, *args: str) -> None:
        self.logger.info("handing terminal to %s", command)
        status = self.executor.hand_off(command, *args)
        if status is None:
            self.logger.warning("%s is not available", command)
            print(f"   {RED}{command} is not available on this host.{RESET}")
            time.sleep(1)
        else:
            self.logger.info("%s exited with status %d", command, status)

    def process_monitor(self) -> None:
        with terminal_handoff():
            self._launch("htop" if self.executor.available("htop") else "top")

    def log_tail(self) -> None:
        with terminal_handoff():
            print(f"\n   {YELLOW}>>> Tailing live system logs... "
                  f"Press [Ctrl+C] to return to the dashboard. <<<{RESET}\n")
            if self.executor.available("systemctl") and self.executor.available("journalctl"):
                self._launch("journalctl", "-f", "-n", "50")
            else:
                self._launch("tail", "-f", "/var/log/syslog", "/var/log/messages")

    def connection_view(self) -> None:
        with terminal_handoff():
            print(f"\n   {YELLOW}>>> Live Network Ports & Connections... "
                  f"Press [Ctrl+C] to return. <<<{RESET}\n")
            if self.executor.available("watch"):
                self._launch("watch", "-n", "2", "-t", "ss -tupan | head -n 30")
                return
            out, _ = self.executor.run("ss", "-tupan")
            print("\n".join(out.splitlines()[:30]))
            try:
                self._read_line(f"\n   {GRAY}Press Enter to return...{RESET}")
            except EOFError:
                pass

    # ── Loop ────────────────────────────────────────────────────────────

    def handle(self, choice: str) -> bool:
        """Act on one line of input. Returns False when the session should end."""
        action, code = dispatch(choice)
        if action is Action.QUIT:
            print(f"\n   {GREEN}Detaching from the console. Goodbye!{RESET}\n")
            return False
        if action is Action.REDRAW:
            return True
        if action is Action.PROCESS_MONITOR:
            self.process_monitor()
        elif action is Action.LOG_TAIL:
            self.log_tail()
        elif action is Action.CONNECTIONS:
            self.connection_view()
        elif action is Action.MODULE:
            self.logger.info("module %d selected (under construction)", code)
            print(f"   {YELLOW}Module ({code}) is currently under construction.{RESET}")
            time.sleep(2)
        else:
            self.logger.warning("invalid option %r", choice)
            print(f"   {RED}Invalid Option! Please enter a valid number.{RESET}")
            time.sleep(1)
        return True

    def run(self) -> None:
        self.logger.info("session started")
        while True:
            panel = self.refresh()
            sys.stdout.write(CLEAR + panel)
            sys.stdout.flush()
            try:
                choice = self._read_line(PROMPT)
            except (EOFError, KeyboardInterrupt):
                print()
                break
            if not self.handle(choice):
                break
        self.logger.info("session ended")


# ── CLI entry point ────────────────────────────────────────────────────────


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Live operations dashboard for a single Linux host.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        metavar="PATH",
        help="Path to TOML config file",
    )
    parser.add_argument(
        "--dump-config",
        action="store_true",
        help="Print the default configuration as TOML and exit",
    )
    args = parser.parse_args()

    if args.dump_config:
        print(dump_default_config(), end="")
        return

    config = load_config(args.config)
    try:
        require_root()
        with instance_lock(Path(config["lock_file"])):
            logger = open_log_sink(
                Path(config["log_file"]), Path(config["fallback_log_file"]),
            )
            Session(config, logger).run()
    except StartupError as e:
        print(f"{RED}hostpanel: {e}{RESET}", file=sys.stderr)
        raise SystemExit(1) from e
    except KeyboardInterrupt:
        print("\nhostpanel: stopped.")


if __name__ == "__main__":
    main()
