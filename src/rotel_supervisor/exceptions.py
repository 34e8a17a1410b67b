"""rotel-supervisor の例外型定義"""

from __future__ import annotations


class RotelError(Exception):
    """rotel-supervisor のエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class ConfigError(RotelError):
    """設定の検証エラー。送出されず、検証結果として記録される。"""

    def __init__(self, code: str, message: str, *, field: str | None = None) -> None:
        super().__init__(code, message)
        self.field = field


class AgentError(RotelError):
    """エージェントプロセス操作のエラー。"""


class ConfigErrorCodes:
    """ConfigError のエラーコード定数。"""

    VALIDATION: str = "VALIDATION_ERROR"


class AgentErrorCodes:
    """AgentError のエラーコード定数。"""

    AGENT_NOT_FOUND: str = "AGENT_NOT_FOUND"
    PID_FILE_READ: str = "PID_FILE_READ_ERROR"
