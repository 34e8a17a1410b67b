"""マージ済みエージェント設定"""

from __future__ import annotations

from collections.abc import Mapping

from .loader import load_options_from_env
from .merger import merge_options
from .models import Options
from .serializer import build_agent_environment
from .validator import ValidationState, validate_options


def _to_flag(state: ValidationState) -> bool | None:
    if state is ValidationState.NOT_EVALUATED:
        return None
    return state is ValidationState.VALID


class Config:
    """デフォルト値、環境変数、明示指定の Options をマージした設定。

    構築時に一度だけマージと検証を行い、以降 options は変更しない。
    """

    DEFAULT_OPTIONS: Options = Options(
        enabled=False,
        otlp_grpc_endpoint="localhost:4317",
        otlp_http_endpoint="localhost:4318",
        pid_file="/tmp/rotel-agent.pid",
        log_file="/tmp/rotel-agent.log",
    )

    def __init__(
        self,
        options: Options | None = None,
        environ: Mapping[str, str] | None = None,
    ) -> None:
        self._options = merge_options(
            self.DEFAULT_OPTIONS,
            load_options_from_env(environ),
            options,
        )
        self._validation_state = validate_options(self._options)

    @property
    def options(self) -> Options:
        return self._options

    @property
    def validation_state(self) -> ValidationState:
        return self._validation_state

    @property
    def valid(self) -> bool | None:
        """検証結果。未検証なら None。"""
        return _to_flag(self._validation_state)

    def validate(self) -> bool | None:
        """現在の options を再検証する。結果はキャッシュしない。"""
        return _to_flag(validate_options(self._options))

    def is_active(self) -> bool:
        """enabled かつ検証に通っているか。"""
        return bool(self._options.enabled) and self.valid is True

    def build_agent_environment(self, base_env: Mapping[str, str] | None = None) -> dict[str, str]:
        """エージェント起動用の環境変数を返す。"""
        return build_agent_environment(self._options, base_env)
