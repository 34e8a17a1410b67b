"""rotel エージェントプロセスの起動と停止"""

from __future__ import annotations

import os
import shutil
import signal
import subprocess
import time
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from .exceptions import AgentError, AgentErrorCodes

if TYPE_CHECKING:
    from .config import Config

logger = structlog.get_logger(__name__)

AGENT_BINARY_NAME = "rotel-agent"


def resolve_agent_path() -> str:
    """PATH から rotel-agent の実行ファイルを探す。

    Raises:
        AgentError: 実行ファイルが見つからない場合
    """
    path = shutil.which(AGENT_BINARY_NAME)
    if path is None:
        raise AgentError(
            code=AgentErrorCodes.AGENT_NOT_FOUND,
            message=f"Couldn't find {AGENT_BINARY_NAME} executable on PATH",
        )
    return path


def _decode(output: bytes | None) -> str:
    if not output:
        return ""
    return output.decode("utf-8", errors="replace").strip()


def _release(process: subprocess.Popen[bytes]) -> None:
    """出力パイプを閉じ、終了済みなら回収する。"""
    for stream in (process.stdout, process.stderr):
        if stream is not None:
            stream.close()
    process.poll()


class ProcessSupervisor:
    """rotel エージェントプロセスを管理する。

    start はデーモンモードで起動して一定時間だけ終了コードを待つ。
    時間内に終了しなければ起動成功とみなす。stop は pid ファイルの
    プロセスに SIGTERM を送り、一定間隔で終了を確認する。
    """

    STARTUP_TIMEOUT_SECONDS: float = 1.0
    STOP_TIMEOUT_SECONDS: float = 2.0
    STOP_POLL_INTERVAL_SECONDS: float = 0.25

    def __init__(
        self,
        agent_path: str | None = None,
        *,
        startup_timeout: float | None = None,
        stop_timeout: float | None = None,
        stop_poll_interval: float | None = None,
    ) -> None:
        self._agent_path = agent_path
        self._startup_timeout = (
            self.STARTUP_TIMEOUT_SECONDS if startup_timeout is None else startup_timeout
        )
        self._stop_timeout = self.STOP_TIMEOUT_SECONDS if stop_timeout is None else stop_timeout
        self._stop_poll_interval = (
            self.STOP_POLL_INTERVAL_SECONDS if stop_poll_interval is None else stop_poll_interval
        )
        self._process: subprocess.Popen[bytes] | None = None
        self.running = False
        self.pid_file: str | None = None

    @property
    def agent_path(self) -> str:
        if self._agent_path is None:
            self._agent_path = resolve_agent_path()
        return self._agent_path

    def start(self, config: Config) -> bool:
        """エージェントを起動する。起動に成功したら True を返す。"""
        if self.running:
            logger.warning("rotel agent is already running", pid_file=self.pid_file)
            return True

        agent_env = config.build_agent_environment()
        try:
            agent_path = self.agent_path
            process = subprocess.Popen(
                [agent_path, "start", "--daemon"],
                env=agent_env,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except (AgentError, OSError) as e:
            logger.error("failed to launch rotel agent", error=str(e))
            return False

        try:
            outs, errs = process.communicate(timeout=self._startup_timeout)
        except subprocess.TimeoutExpired as e:
            # パイプを子孫プロセスが握ったまま本体だけ終了していることがある
            outs, errs = e.output, e.stderr
            if process.poll() is None:
                # 動き続けているなら正常とみなし停止はしない
                logger.debug("rotel agent still running after startup window", pid=process.pid)

        if process.returncode is not None and process.returncode != 0:
            output = " - ".join(s for s in (_decode(outs), _decode(errs)) if s)
            logger.error(
                "rotel agent is unable to start",
                return_code=process.returncode,
                output=output,
            )
            _release(process)
            return False

        self._process = process
        self.running = True
        self.pid_file = config.options.pid_file
        logger.info("rotel agent started", pid_file=self.pid_file)
        return True

    def stop(self) -> None:
        """エージェントを停止する。

        終了を待つのは最大 stop_timeout 秒まで。それを過ぎたら終了を確認せずに戻る。

        Raises:
            AgentError: pid ファイルの読み込みに失敗した場合（ファイルが無い場合を除く）
        """
        if not self.running:
            logger.info("rotel agent is not running")
            return

        pid = self._read_pid()
        self.running = False
        if pid is not None:
            self._terminate(pid)
        if self._process is not None:
            _release(self._process)
            self._process = None

    def _terminate(self, pid: int) -> None:
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            # 別ワーカーが既に停止させていることがある
            logger.info("rotel agent has already exited", pid=pid)
            return
        except PermissionError:
            logger.warning("not permitted to signal rotel agent", pid=pid)
            return
        self._wait_for_exit(pid)

    def _read_pid(self) -> int | None:
        if self.pid_file is None:
            logger.warning("no pid file recorded for rotel agent")
            return None
        try:
            text = Path(self.pid_file).read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.warning("unable to locate agent pid file", pid_file=self.pid_file)
            return None
        except OSError as e:
            raise AgentError(
                code=AgentErrorCodes.PID_FILE_READ,
                message=f"Failed to read agent pid file: {self.pid_file}",
                cause=e,
            ) from e
        try:
            pid = int(text.strip())
        except ValueError:
            pid = 0
        # 0 以下はプロセスグループ宛てのシグナルになるので受け付けない
        if pid <= 0:
            logger.warning("agent pid file does not hold a pid", pid_file=self.pid_file)
            return None
        return pid

    def _is_alive(self, pid: int) -> bool:
        # 自分の子プロセスなら poll で回収する（ゾンビを生存と誤認しない）
        if self._process is not None and self._process.pid == pid:
            return self._process.poll() is None
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def _wait_for_exit(self, pid: int) -> None:
        deadline = time.monotonic() + self._stop_timeout
        while self._is_alive(pid):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(
                    "rotel agent did not exit in time",
                    pid=pid,
                    timeout=self._stop_timeout,
                )
                return
            time.sleep(min(self._stop_poll_interval, remaining))
        logger.info("rotel agent stopped", pid=pid)
