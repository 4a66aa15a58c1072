"""Tests for hostpanel.lock."""

from __future__ import annotations

import os
import stat
from pathlib import Path
from unittest.mock import patch

import pytest

from hostpanel.errors import LockHeldError, LockSecurityError, StartupError
from hostpanel.lock import instance_lock


class TestInstanceLock:
    def test_creates_private_file(self, tmp_path: Path) -> None:
        path = tmp_path / "hostpanel.lock"
        with instance_lock(path):
            assert path.exists()
            assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_second_acquisition_fails_immediately(self, tmp_path: Path) -> None:
        path = tmp_path / "hostpanel.lock"
        with instance_lock(path):
            with pytest.raises(LockHeldError):
                with instance_lock(path):
                    pass

    def test_not_inherited_by_child_processes(self, tmp_path: Path) -> None:
        with instance_lock(tmp_path / "hostpanel.lock") as fd:
            assert os.get_inheritable(fd) is False

    def test_released_after_block(self, tmp_path: Path) -> None:
        path = tmp_path / "hostpanel.lock"
        with instance_lock(path):
            pass
        with instance_lock(path) as fd:
            assert fd >= 0

    def test_released_when_block_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "hostpanel.lock"
        with pytest.raises(RuntimeError):
            with instance_lock(path):
                raise RuntimeError("boom")
        with instance_lock(path):
            pass

    def test_stale_file_reused(self, tmp_path: Path) -> None:
        path = tmp_path / "hostpanel.lock"
        path.write_text("")
        os.chmod(path, 0o600)
        with instance_lock(path):
            pass

    def test_symlink_rejected(self, tmp_path: Path) -> None:
        target = tmp_path / "elsewhere"
        target.write_text("")
        link = tmp_path / "hostpanel.lock"
        link.symlink_to(target)
        with pytest.raises(LockSecurityError):
            with instance_lock(link):
                pass

    def test_dangling_symlink_rejected(self, tmp_path: Path) -> None:
        link = tmp_path / "hostpanel.lock"
        link.symlink_to(tmp_path / "does-not-exist")
        with pytest.raises(LockSecurityError):
            with instance_lock(link):
                pass
        assert not (tmp_path / "does-not-exist").exists()

    def test_foreign_owner_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "hostpanel.lock"
        path.write_text("")
        with patch("hostpanel.lock.os.geteuid", return_value=os.geteuid() + 1):
            with pytest.raises(LockSecurityError):
                with instance_lock(path):
                    pass

    def test_unopenable_path(self, tmp_path: Path) -> None:
        with pytest.raises(StartupError):
            with instance_lock(tmp_path / "missing-dir" / "hostpanel.lock"):
                pass

    def test_lock_errors_are_startup_errors(self) -> None:
        assert issubclass(LockHeldError, StartupError)
        assert issubclass(LockSecurityError, StartupError)
