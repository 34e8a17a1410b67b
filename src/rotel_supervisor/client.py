"""設定とエージェントプロセスをまとめる Client"""

from __future__ import annotations

from .config import Config
from .models import Options
from .supervisor import ProcessSupervisor

# 最後に構築された Client。構築のたびに上書きされる
_current: Client | None = None


class Client:
    """設定からエージェントを起動・停止するクライアント。

    構築時に Config を組み立て、プロセス全体で 1 つのスロットに自身を登録する。
    """

    def __init__(
        self,
        options: Options | None = None,
        supervisor: ProcessSupervisor | None = None,
    ) -> None:
        global _current
        self.config = Config(options)
        self.supervisor = supervisor if supervisor is not None else ProcessSupervisor()
        _current = self

    def start(self) -> bool:
        """設定が有効ならエージェントを起動する。"""
        if not self.config.is_active():
            return False
        return self.supervisor.start(self.config)

    def stop(self) -> None:
        """設定が有効ならエージェントを停止する。"""
        if self.config.is_active():
            self.supervisor.stop()


def get_client() -> Client | None:
    """最後に構築された Client を返す。"""
    return _current
