"""Tests for hostpanel.session."""

from __future__ import annotations

import copy
import os
import signal
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from hostpanel.config import DEFAULT_CONFIG
from hostpanel.errors import PrivilegeError
from hostpanel.lock import instance_lock
from hostpanel.session import Session, _ignore_interrupt, main, require_root, terminal_handoff

from conftest import FakeExecutor


class SignalRecordingExecutor(FakeExecutor):
    """Notes which SIGINT handler was installed while each tool ran."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.handlers: list[object] = []

    def hand_off(self, command: str, *args: str) -> int | None:
        self.handlers.append(signal.getsignal(signal.SIGINT))
        return super().hand_off(command, *args)


def _session(executor: FakeExecutor | None = None, read_line=None) -> Session:
    return Session(
        copy.deepcopy(DEFAULT_CONFIG),
        MagicMock(),
        executor or FakeExecutor(),
        read_line or MagicMock(side_effect=EOFError),
    )


# ── Privilege and signal handling ─────────────────────────────────────────


class TestRequireRoot:
    @patch("hostpanel.session.os.geteuid", return_value=1000)
    def test_non_root_rejected(self, mock_euid: MagicMock) -> None:
        with pytest.raises(PrivilegeError):
            require_root()

    @patch("hostpanel.session.os.geteuid", return_value=0)
    def test_root_accepted(self, mock_euid: MagicMock) -> None:
        require_root()


class TestTerminalHandoff:
    def test_installs_and_restores(self) -> None:
        before = signal.getsignal(signal.SIGINT)
        with terminal_handoff():
            assert signal.getsignal(signal.SIGINT) is _ignore_interrupt
        assert signal.getsignal(signal.SIGINT) == before

    def test_restores_after_exception(self) -> None:
        before = signal.getsignal(signal.SIGINT)
        with pytest.raises(RuntimeError):
            with terminal_handoff():
                raise RuntimeError("tool crashed")
        assert signal.getsignal(signal.SIGINT) == before

    def test_not_sig_ign(self) -> None:
        # SIG_IGN would be inherited across exec and make the tool unkillable
        with terminal_handoff():
            assert signal.getsignal(signal.SIGINT) is not signal.SIG_IGN


# ── Live tools ────────────────────────────────────────────────────────────


@patch("hostpanel.session.time.sleep")
class TestLiveTools:
    def test_prefers_htop(self, mock_sleep: MagicMock) -> None:
        ex = SignalRecordingExecutor(binaries={"htop", "top"})
        _session(ex).process_monitor()
        assert ex.handed_off == [("htop",)]
        assert ex.handlers == [_ignore_interrupt]

    def test_falls_back_to_top(self, mock_sleep: MagicMock) -> None:
        ex = FakeExecutor(binaries={"top"})
        _session(ex).process_monitor()
        assert ex.handed_off == [("top",)]

    def test_missing_tool_reported(
        self, mock_sleep: MagicMock, capsys: pytest.CaptureFixture[str],
    ) -> None:
        ex = FakeExecutor()
        session = _session(ex)
        session.process_monitor()
        assert "top is not available" in capsys.readouterr().out
        session.logger.warning.assert_called_once()
        assert signal.getsignal(signal.SIGINT) is not _ignore_interrupt

    def test_log_tail_journal(self, mock_sleep: MagicMock) -> None:
        ex = FakeExecutor(binaries={"systemctl", "journalctl"})
        _session(ex).log_tail()
        assert ex.handed_off == [("journalctl", "-f", "-n", "50")]

    def test_log_tail_files(self, mock_sleep: MagicMock) -> None:
        ex = FakeExecutor(binaries={"tail"})
        _session(ex).log_tail()
        assert ex.handed_off == [("tail", "-f", "/var/log/syslog", "/var/log/messages")]

    def test_connections_watch(self, mock_sleep: MagicMock) -> None:
        ex = FakeExecutor(binaries={"watch"})
        _session(ex).connection_view()
        assert ex.handed_off[0][0] == "watch"

    def test_connections_snapshot_without_watch(
        self, mock_sleep: MagicMock, capsys: pytest.CaptureFixture[str],
    ) -> None:
        listing = "\n".join(f"tcp ESTAB line-{i}" for i in range(50))
        ex = FakeExecutor(binaries={"ss"}, outputs={("ss", "-tupan"): (listing, True)})
        read_line = MagicMock(return_value="")
        _session(ex, read_line).connection_view()
        out = capsys.readouterr().out
        assert "line-29" in out
        assert "line-30" not in out
        assert ex.handed_off == []
        read_line.assert_called_once()

    def test_tool_exit_status_logged(self, mock_sleep: MagicMock) -> None:
        ex = FakeExecutor(binaries={"htop"}, hand_off_status=130)
        session = _session(ex)
        session.process_monitor()
        session.logger.info.assert_any_call("%s exited with status %d", "htop", 130)


# ── Dispatch ──────────────────────────────────────────────────────────────


@patch("hostpanel.session.time.sleep")
class TestHandle:
    def test_quit(self, mock_sleep: MagicMock) -> None:
        assert _session().handle("90") is False

    def test_redraw(self, mock_sleep: MagicMock) -> None:
        assert _session().handle("91") is True
        mock_sleep.assert_not_called()

    def test_module_placeholder(
        self, mock_sleep: MagicMock, capsys: pytest.CaptureFixture[str],
    ) -> None:
        session = _session()
        assert session.handle("7") is True
        assert "Module (7) is currently under construction." in capsys.readouterr().out
        session.logger.info.assert_called_once()
        mock_sleep.assert_called_once_with(2)

    def test_invalid(
        self, mock_sleep: MagicMock, capsys: pytest.CaptureFixture[str],
    ) -> None:
        session = _session()
        assert session.handle("hello") is True
        assert "Invalid Option!" in capsys.readouterr().out
        session.logger.warning.assert_called_once()
        mock_sleep.assert_called_once_with(1)

    def test_live_tool_returns_to_loop(self, mock_sleep: MagicMock) -> None:
        ex = FakeExecutor(binaries={"htop"}, hand_off_status=1)
        assert _session(ex).handle("94") is True


# ── Refresh loop ──────────────────────────────────────────────────────────


@patch("hostpanel.session.time.sleep")
class TestRun:
    @patch.object(Session, "refresh", return_value="PANEL\n")
    def test_redraw_then_quit(self, mock_refresh: MagicMock, mock_sleep: MagicMock) -> None:
        session = _session(read_line=MagicMock(side_effect=["91", "90"]))
        session.run()
        assert mock_refresh.call_count == 2
        session.logger.info.assert_any_call("session started")
        session.logger.info.assert_any_call("session ended")

    @patch.object(Session, "refresh", return_value="PANEL\n")
    def test_end_of_input_quits(self, mock_refresh: MagicMock, mock_sleep: MagicMock) -> None:
        session = _session(read_line=MagicMock(side_effect=EOFError))
        session.run()
        assert mock_refresh.call_count == 1

    @patch.object(Session, "refresh", return_value="PANEL\n")
    def test_interrupt_at_prompt_quits(
        self, mock_refresh: MagicMock, mock_sleep: MagicMock,
    ) -> None:
        session = _session(read_line=MagicMock(side_effect=KeyboardInterrupt))
        session.run()
        session.logger.info.assert_any_call("session ended")

    @patch.object(Session, "refresh", return_value="PANEL\n")
    def test_panel_written_after_clear(
        self, mock_refresh: MagicMock, mock_sleep: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        _session(read_line=MagicMock(side_effect=["90"])).run()
        assert "\033[H\033[2JPANEL\n" in capsys.readouterr().out

    @patch("hostpanel.session.render_panel", return_value="PANEL\n")
    @patch("hostpanel.session.scan_certificates")
    @patch("hostpanel.session.resolve_services")
    @patch("hostpanel.session.sample_metrics")
    @patch("hostpanel.session.collect_fingerprint")
    def test_fingerprint_collected_once(
        self,
        mock_fp: MagicMock,
        mock_sample: MagicMock,
        mock_resolve: MagicMock,
        mock_certs: MagicMock,
        mock_render: MagicMock,
        mock_sleep: MagicMock,
    ) -> None:
        session = _session()
        session.refresh()
        session.refresh()
        mock_fp.assert_called_once()
        assert mock_sample.call_count == 2
        assert mock_resolve.call_count == 2
        assert mock_certs.call_count == 2
        # Both renders see the same fingerprint object
        first, second = (c.args[0] for c in mock_render.call_args_list)
        assert first is second is mock_fp.return_value

    @patch("hostpanel.session.shutil.get_terminal_size", return_value=os.terminal_size((80, 24)))
    @patch("hostpanel.session.collect_fingerprint")
    def test_narrow_terminal_warning(
        self, mock_fp: MagicMock, mock_size: MagicMock, mock_sleep: MagicMock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        _session().start()
        assert "Terminal width (80) is too narrow" in capsys.readouterr().out
        mock_sleep.assert_called_once_with(3)


# ── CLI ───────────────────────────────────────────────────────────────────


def _config(tmp_path: Path) -> dict:
    config = copy.deepcopy(DEFAULT_CONFIG)
    config["lock_file"] = str(tmp_path / "hostpanel.lock")
    config["log_file"] = str(tmp_path / "hostpanel.log")
    config["fallback_log_file"] = str(tmp_path / "fallback.log")
    return config


class TestMain:
    @patch("sys.argv", ["hostpanel", "--dump-config"])
    def test_dump_config(self, capsys: pytest.CaptureFixture[str]) -> None:
        main()
        assert "[thresholds.cpu_percent]" in capsys.readouterr().out

    @patch("sys.argv", ["hostpanel"])
    @patch("hostpanel.session.os.geteuid", return_value=1000)
    def test_non_root_exits_1(
        self, mock_euid: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        with patch("hostpanel.session.load_config", return_value=_config(tmp_path)):
            with pytest.raises(SystemExit) as exc:
                main()
        assert exc.value.code == 1
        assert "must be run as root" in capsys.readouterr().err
        assert not (tmp_path / "hostpanel.lock").exists()

    @patch("sys.argv", ["hostpanel"])
    @patch("hostpanel.session.require_root")
    def test_lock_held_exits_1(
        self, mock_root: MagicMock, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        config = _config(tmp_path)
        with patch("hostpanel.session.load_config", return_value=config):
            with instance_lock(Path(config["lock_file"])):
                with pytest.raises(SystemExit) as exc:
                    main()
        assert exc.value.code == 1
        assert "already running" in capsys.readouterr().err

    @patch("sys.argv", ["hostpanel"])
    @patch("hostpanel.session.require_root")
    def test_log_sink_failure_exits_1(self, mock_root: MagicMock, tmp_path: Path) -> None:
        config = _config(tmp_path)
        config["log_file"] = str(tmp_path / "a" / "x.log")
        config["fallback_log_file"] = str(tmp_path / "b" / "y.log")
        with patch("hostpanel.session.load_config", return_value=config):
            with pytest.raises(SystemExit) as exc:
                main()
        assert exc.value.code == 1

    @patch("sys.argv", ["hostpanel"])
    @patch("hostpanel.session.open_log_sink")
    @patch("hostpanel.session.require_root")
    @patch.object(Session, "run")
    def test_normal_exit_releases_lock(
        self, mock_run: MagicMock, mock_root: MagicMock, mock_sink: MagicMock,
        tmp_path: Path,
    ) -> None:
        config = _config(tmp_path)
        with patch("hostpanel.session.load_config", return_value=config):
            main()
        mock_run.assert_called_once()
        with instance_lock(Path(config["lock_file"])):
            pass
