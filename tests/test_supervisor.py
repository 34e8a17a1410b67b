"""ProcessSupervisor のユニットテスト"""

import os
import signal
import time
from collections.abc import Callable
from pathlib import Path

import pytest
from rotel_supervisor import supervisor as supervisor_module
from rotel_supervisor.config import Config
from rotel_supervisor.exceptions import AgentError, AgentErrorCodes
from rotel_supervisor.models import Options, OTLPExporter
from rotel_supervisor.supervisor import ProcessSupervisor, resolve_agent_path
from structlog.testing import capture_logs

WriteAgent = Callable[[str], str]


def _config(tmp_path: Path, **fields: object) -> Config:
    return Config(
        Options(enabled=True, pid_file=str(tmp_path / "agent.pid"), **fields),
        environ={},
    )


def _running(pid_file: Path) -> ProcessSupervisor:
    supervisor = ProcessSupervisor(
        "/nonexistent/rotel-agent", stop_timeout=0.3, stop_poll_interval=0.05
    )
    supervisor.running = True
    supervisor.pid_file = str(pid_file)
    return supervisor


def test_start_failure_reports_output(tmp_path: Path, write_agent: WriteAgent) -> None:
    """確認時間内に非ゼロで終了したら起動失敗になること。"""
    agent = write_agent('echo "bad config"\necho "oops" >&2\nexit 1\n')
    supervisor = ProcessSupervisor(agent)
    with capture_logs() as logs:
        assert supervisor.start(_config(tmp_path)) is False
    assert supervisor.running is False
    failure = next(e for e in logs if e["event"] == "rotel agent is unable to start")
    assert failure["return_code"] == 1
    assert failure["output"] == "bad config - oops"


def test_stop_after_failed_start_is_noop(tmp_path: Path, write_agent: WriteAgent) -> None:
    """起動失敗後の stop は何もしないこと。"""
    supervisor = ProcessSupervisor(write_agent("exit 1\n"))
    supervisor.start(_config(tmp_path))
    with capture_logs() as logs:
        supervisor.stop()
    assert [e["event"] for e in logs] == ["rotel agent is not running"]


def test_start_zero_exit_is_success(tmp_path: Path, write_agent: WriteAgent) -> None:
    """終了コード 0 なら起動成功になり pid ファイルが記録されること。"""
    supervisor = ProcessSupervisor(write_agent("exit 0\n"))
    assert supervisor.start(_config(tmp_path)) is True
    assert supervisor.running is True
    assert supervisor.pid_file == str(tmp_path / "agent.pid")


def test_start_passes_agent_arguments_and_environment(
    tmp_path: Path, write_agent: WriteAgent
) -> None:
    """デーモンモードの引数と ROTEL_ 変数が渡されること。"""
    out = tmp_path / "out.txt"
    agent = write_agent(f'echo "$@ $ROTEL_OTLP_EXPORTER_PROTOCOL" > "{out}"\nexit 0\n')
    supervisor = ProcessSupervisor(agent)
    assert supervisor.start(_config(tmp_path, exporter=OTLPExporter(protocol="http"))) is True
    assert out.read_text().strip() == "start --daemon http"


def test_long_running_agent_is_left_running(tmp_path: Path, write_agent: WriteAgent) -> None:
    """確認時間を過ぎても動いているプロセスは成功扱いで停止させないこと。"""
    agent = write_agent('echo $$ > "$ROTEL_PID_FILE"\nexec sleep 30\n')
    supervisor = ProcessSupervisor(agent, startup_timeout=0.5)
    assert supervisor.start(_config(tmp_path)) is True
    pid = int((tmp_path / "agent.pid").read_text())
    os.kill(pid, 0)

    with capture_logs() as logs:
        supervisor.stop()
    assert supervisor.running is False
    assert "rotel agent stopped" in [e["event"] for e in logs]
    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


def test_start_spawn_failure(tmp_path: Path) -> None:
    """実行ファイルを起動できなければ失敗になること。"""
    supervisor = ProcessSupervisor(str(tmp_path / "missing-agent"))
    assert supervisor.start(_config(tmp_path)) is False
    assert supervisor.running is False


def test_start_without_binary_on_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """PATH に実行ファイルがなければ失敗になること。"""
    monkeypatch.setattr(supervisor_module.shutil, "which", lambda name: None)
    supervisor = ProcessSupervisor()
    assert supervisor.start(_config(tmp_path)) is False


def test_resolve_agent_path_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    """実行ファイルが見つからなければ AgentError(AGENT_NOT_FOUND) になること。"""
    monkeypatch.setattr(supervisor_module.shutil, "which", lambda name: None)
    with pytest.raises(AgentError) as exc_info:
        resolve_agent_path()
    assert exc_info.value.code == AgentErrorCodes.AGENT_NOT_FOUND


def test_resolve_agent_path_found(monkeypatch: pytest.MonkeyPatch) -> None:
    """PATH 上の rotel-agent を返すこと。"""
    monkeypatch.setattr(supervisor_module.shutil, "which", lambda name: f"/usr/bin/{name}")
    assert resolve_agent_path() == "/usr/bin/rotel-agent"


def test_stop_missing_pid_file_is_benign(tmp_path: Path) -> None:
    """pid ファイルがなくても例外にならないこと。"""
    supervisor = _running(tmp_path / "missing.pid")
    with capture_logs() as logs:
        supervisor.stop()
    assert supervisor.running is False
    assert logs[0]["event"] == "unable to locate agent pid file"


def test_stop_unreadable_pid_file_raises(tmp_path: Path) -> None:
    """pid ファイルの読み込み失敗は AgentError(PID_FILE_READ_ERROR) になること。"""
    pid_dir = tmp_path / "pid-dir"
    pid_dir.mkdir()
    supervisor = _running(pid_dir)
    with pytest.raises(AgentError) as exc_info:
        supervisor.stop()
    assert exc_info.value.code == AgentErrorCodes.PID_FILE_READ
    assert isinstance(exc_info.value.__cause__, OSError)


def test_stop_already_exited(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """プロセスが既に終了していれば何もせず戻ること。"""
    pid_file = tmp_path / "agent.pid"
    pid_file.write_text("4242\n")

    def fake_kill(pid: int, sig: int) -> None:
        raise ProcessLookupError

    monkeypatch.setattr(supervisor_module.os, "kill", fake_kill)
    supervisor = _running(pid_file)
    with capture_logs() as logs:
        supervisor.stop()
    assert supervisor.running is False
    assert logs[-1]["event"] == "rotel agent has already exited"


def test_stop_polls_until_exit(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """SIGTERM を 1 回だけ送り、終了を確認したら戻ること。"""
    pid_file = tmp_path / "agent.pid"
    pid_file.write_text("4242")
    calls: list[tuple[int, int]] = []

    def fake_kill(pid: int, sig: int) -> None:
        calls.append((pid, sig))
        if sig == 0 and len(calls) > 3:
            raise ProcessLookupError

    monkeypatch.setattr(supervisor_module.os, "kill", fake_kill)
    supervisor = _running(pid_file)
    supervisor.stop()
    assert calls[0] == (4242, signal.SIGTERM)
    assert [sig for _, sig in calls].count(signal.SIGTERM) == 1
    assert calls[1:] == [(4242, 0)] * 3


def test_stop_returns_at_deadline(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """プロセスが終了しなくても期限で戻ること。"""
    pid_file = tmp_path / "agent.pid"
    pid_file.write_text("4242")
    signals: list[int] = []
    monkeypatch.setattr(supervisor_module.os, "kill", lambda pid, sig: signals.append(sig))
    supervisor = _running(pid_file)

    started = time.monotonic()
    with capture_logs() as logs:
        supervisor.stop()
    elapsed = time.monotonic() - started

    assert 0.3 <= elapsed < 1.0
    assert signals.count(signal.SIGTERM) == 1
    assert len(signals) > 2
    assert logs[-1]["event"] == "rotel agent did not exit in time"
    assert supervisor.running is False


def test_stop_unparseable_pid_is_benign(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """pid ファイルの内容が数値でなければシグナルを送らないこと。"""
    pid_file = tmp_path / "agent.pid"
    pid_file.write_text("not-a-pid")
    signals: list[int] = []
    monkeypatch.setattr(supervisor_module.os, "kill", lambda pid, sig: signals.append(sig))
    supervisor = _running(pid_file)
    supervisor.stop()
    assert signals == []
    assert supervisor.running is False


def test_start_failure_while_descendant_holds_pipes(
    tmp_path: Path, write_agent: WriteAgent
) -> None:
    """子孫がパイプを握ったまま非ゼロで終了しても起動失敗になること。"""
    agent = write_agent("sleep 3 &\necho 'config error' >&2\nexit 1\n")
    supervisor = ProcessSupervisor(agent, startup_timeout=0.5)
    with capture_logs() as logs:
        assert supervisor.start(_config(tmp_path)) is False
    assert supervisor.running is False
    failure = next(e for e in logs if e["event"] == "rotel agent is unable to start")
    assert failure["return_code"] == 1
    assert failure["output"] == "config error"


def test_stop_closes_agent_pipes(tmp_path: Path, write_agent: WriteAgent) -> None:
    """停止後にエージェントの出力パイプが閉じられ、プロセスが回収されること。"""
    agent = write_agent('echo $$ > "$ROTEL_PID_FILE"\nexec sleep 30\n')
    supervisor = ProcessSupervisor(agent, startup_timeout=0.5)
    assert supervisor.start(_config(tmp_path)) is True
    process = supervisor._process
    assert process is not None

    supervisor.stop()
    assert process.stdout is not None and process.stdout.closed
    assert process.stderr is not None and process.stderr.closed
    assert process.returncode is not None
    assert supervisor._process is None


@pytest.mark.parametrize("content", ["0", "-1", "-4242"])
def test_stop_non_positive_pid_is_benign(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, content: str
) -> None:
    """pid が 0 以下ならシグナルを送らないこと。"""
    pid_file = tmp_path / "agent.pid"
    pid_file.write_text(content)
    signals: list[tuple[int, int]] = []
    monkeypatch.setattr(
        supervisor_module.os, "kill", lambda pid, sig: signals.append((pid, sig))
    )
    supervisor = _running(pid_file)
    with capture_logs() as logs:
        supervisor.stop()
    assert signals == []
    assert supervisor.running is False
    assert logs[-1]["event"] == "agent pid file does not hold a pid"


def test_stop_not_permitted_is_benign(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """SIGTERM を送る権限がなくても例外にならないこと。"""
    pid_file = tmp_path / "agent.pid"
    pid_file.write_text("4242")

    def fake_kill(pid: int, sig: int) -> None:
        raise PermissionError

    monkeypatch.setattr(supervisor_module.os, "kill", fake_kill)
    supervisor = _running(pid_file)
    with capture_logs() as logs:
        supervisor.stop()
    assert supervisor.running is False
    assert logs[-1]["event"] == "not permitted to signal rotel agent"
