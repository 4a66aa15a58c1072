"""Guarded execution of external inspection commands.

Every probe that shells out goes through :class:`GuardedExecutor`. A missing
binary is detected before anything is spawned, the child never gets a usable
stdin, and a child that outlives the timeout is killed together with its
process group. Failures come back as ``("", False)`` rather than exceptions.
"""

from __future__ import annotations

import os
import shutil
import signal
import subprocess

DEFAULT_TIMEOUT = 2.0
KILL_GRACE = 0.2


class GuardedExecutor:
    """Run inspection commands with a hard wall-clock limit."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    def available(self, command: str) -> bool:
        return shutil.which(command) is not None

    def run(
        self,
        command: str,
        *args: str,
        env: dict[str, str] | None = None,
    ) -> tuple[str, bool]:
        """Run ``command args...`` and return ``(output, ok)``.

        stderr is folded into the output since several tools (``nginx -v``,
        ``redis-server -v``) report their version there. Non-zero exit,
        timeout or a missing binary all yield ``("", False)``.
        """
        path = shutil.which(command)
        if path is None:
            return "", False

        child_env = {**os.environ, "PAGER": "cat", **(env or {})}
        try:
            proc = subprocess.Popen(
                [path, *args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                env=child_env,
                start_new_session=True,
            )
        except OSError:
            return "", False

        try:
            stdout, _ = proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            _kill_group(proc)
            _reap(proc)
            return "", False

        if proc.returncode != 0:
            return "", False
        return stdout, True

    def hand_off(self, command: str, *args: str) -> int | None:
        """Give the terminal to an interactive tool until it exits.

        Returns the exit status, or None if the tool isn't installed.
        """
        path = shutil.which(command)
        if path is None:
            return None
        try:
            return subprocess.run([path, *args], check=False).returncode
        except OSError:
            return None


def _kill_group(proc: subprocess.Popen[str]) -> None:
    # SIGKILL can't be ignored; the child's own session holds any grandchildren
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _reap(proc: subprocess.Popen[str]) -> None:
    """Collect a killed child without waiting on its stdout pipe.

    A descendant that moved to its own session survives the group kill and
    can hold the pipe open indefinitely, so the drain gets a short grace
    period and the pipe is then abandoned.
    """
    try:
        proc.communicate(timeout=KILL_GRACE)
    except subprocess.TimeoutExpired:
        if proc.stdout is not None:
            proc.stdout.close()
        proc.wait()
