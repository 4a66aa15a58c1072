"""Single-instance advisory lock.

The lock file must not be a symlink and, if it already exists, must belong
to the invoking user. Acquisition never waits: a second instance fails at
once. The kernel drops a ``flock`` when its descriptor closes, so the lock
also goes away if the process dies without running its cleanup.
"""

from __future__ import annotations

import fcntl
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from hostpanel.errors import LockHeldError, LockSecurityError, StartupError


def _check_lock_path(path: Path) -> None:
    if path.is_symlink():
        raise LockSecurityError(f"lock file {path} is a symlink, aborting")
    try:
        owner = path.stat().st_uid
    except FileNotFoundError:
        return
    if owner != os.geteuid():
        raise LockSecurityError(f"lock file {path} is owned by another user, aborting")


@contextmanager
def instance_lock(path: Path) -> Iterator[int]:
    """Hold an exclusive, non-blocking ``flock`` on *path* for the block's duration.

    Raises:
        LockSecurityError: The path is a symlink or foreign-owned.
        LockHeldError: Another instance already holds the lock.
        StartupError: The lock file can't be opened.
    """
    _check_lock_path(path)

    old_umask = os.umask(0o077)
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_APPEND | os.O_NOFOLLOW, 0o600)
    except OSError as e:
        # ELOOP here means a symlink appeared after the check
        raise StartupError(f"cannot open lock file {path}: {e.strerror}") from e
    finally:
        os.umask(old_umask)

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise LockHeldError("another instance is already running") from e
        yield fd
    finally:
        os.close(fd)
