"""Options をエージェントの環境変数に展開する"""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from .loader import (
    SIGNALS,
    SINGLE_EXPORTER_PREFIXES,
    expand_env_key,
    field_env_key,
    multi_exporter_prefix,
)
from .models import Exporter, OTLPExporter, Options

_AGENT_OPTION_FIELDS: tuple[str, ...] = (
    "pid_file",
    "log_file",
    "log_format",
    "debug_log",
    "otlp_grpc_endpoint",
    "otlp_http_endpoint",
    "otlp_receiver_traces_disabled",
    "otlp_receiver_metrics_disabled",
    "otlp_receiver_logs_disabled",
)

# フィールド群として直接は出力しないもの
_NESTED_FIELDS: frozenset[str] = frozenset({"type", *SIGNALS})


def stringify(value: Any) -> str:
    """設定値を環境変数の文字列表現に変換する。"""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    if isinstance(value, dict):
        return ",".join(f"{k}={v}" for k, v in value.items())
    return str(value)


def _set_fields(updates: dict[str, Any], pfx: str, model: BaseModel) -> None:
    for name in type(model).model_fields:
        if name in _NESTED_FIELDS:
            continue
        updates[pfx + field_env_key(name)] = getattr(model, name)


def _set_exporter(updates: dict[str, Any], pfx: str, exporter: Exporter) -> None:
    _set_fields(updates, pfx, exporter)
    if isinstance(exporter, OTLPExporter):
        for signal in SIGNALS:
            override = getattr(exporter, signal)
            if override is not None:
                _set_fields(updates, f"{pfx}{signal.upper()}_", override)


def exporter_token(name: str, exporter: Exporter) -> str:
    """EXPORTERS に並べる "name" または "name:kind" を返す。"""
    if name == exporter.type:
        return name
    return f"{name}:{exporter.type}"


def _agent_updates(options: Options) -> dict[str, Any]:
    updates: dict[str, Any] = {
        field_env_key(name): getattr(options, name) for name in _AGENT_OPTION_FIELDS
    }

    if options.exporters is not None:
        tokens: list[str] = []
        for name, exporter in options.exporters.items():
            tokens.append(exporter_token(name, exporter))
            _set_exporter(updates, multi_exporter_prefix(name), exporter)
        updates["EXPORTERS"] = tokens
        for signal in SIGNALS:
            routes = getattr(options, f"exporters_{signal}")
            if routes:
                updates[f"EXPORTERS_{signal.upper()}"] = routes
    elif options.exporter is not None:
        kind = options.exporter.type
        updates["EXPORTER"] = kind
        _set_exporter(updates, SINGLE_EXPORTER_PREFIXES[kind], options.exporter)

    return updates


def build_agent_environment(
    options: Options,
    base_env: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """エージェント起動用の環境変数を組み立てる。

    base_env（省略時は os.environ）のコピーに ROTEL_ 変数を上書きする。
    未設定の値は出力しない。
    """
    env = dict(os.environ if base_env is None else base_env)
    for key, value in _agent_updates(options).items():
        if value is None:
            continue
        env[expand_env_key(key)] = stringify(value)
    return env
