"""環境変数からの設定読み込み

値はすべて ROTEL_ 名前空間の環境変数から読む。解釈できない値は「未設定」として扱い、
例外は送出しない。
"""

from __future__ import annotations

import os
from collections.abc import Callable, Mapping
from typing import Any

import structlog

from .models import Options

logger = structlog.get_logger(__name__)

ENV_PREFIX = "ROTEL_"

SIGNALS: tuple[str, ...] = ("traces", "metrics", "logs")

# フィールド名と環境変数名が一致しないもの
_FIELD_ENV_KEYS: dict[str, str] = {"headers": "CUSTOM_HEADERS"}


def expand_env_key(key: str) -> str:
    """キーを ROTEL_ 名前空間の環境変数名に展開する。"""
    if key.startswith(ENV_PREFIX):
        return key
    return ENV_PREFIX + key.upper()


def field_env_key(field: str) -> str:
    """モデルのフィールド名に対応する環境変数名の末尾部分を返す。"""
    return _FIELD_ENV_KEYS.get(field, field.upper())


def as_bool(value: str | None) -> bool | None:
    if value is None:
        return None
    lowered = value.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def as_list(value: str | None) -> list[str] | None:
    if value is None:
        return None
    return value.split(",")


def as_int(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return int(value, 10)
    except ValueError:
        return None


def as_lower(value: str | None) -> str | None:
    if value is None:
        return None
    return value.lower()


def as_dict(value: str | None) -> dict[str, str] | None:
    """k1=v1,k2=v2 形式の文字列をヘッダー辞書に変換する。

    "=" がちょうど 1 つでないペアは黙って捨てる。
    """
    if value is None:
        return None
    headers: dict[str, str] = {}
    for pair in value.split(","):
        parts = pair.split("=")
        if len(parts) != 2:
            continue
        headers[parts[0]] = parts[1]
    return headers


def _as_str(value: str | None) -> str | None:
    return value


_Parser = Callable[[str | None], Any]

_OPTION_FIELDS: dict[str, _Parser] = {
    "enabled": as_bool,
    "pid_file": _as_str,
    "log_file": _as_str,
    "log_format": _as_str,
    "debug_log": as_list,
    "otlp_grpc_endpoint": _as_str,
    "otlp_http_endpoint": _as_str,
    "otlp_receiver_traces_disabled": as_bool,
    "otlp_receiver_metrics_disabled": as_bool,
    "otlp_receiver_logs_disabled": as_bool,
}

_OTLP_ENDPOINT_FIELDS: dict[str, _Parser] = {
    "endpoint": _as_str,
    "protocol": as_lower,
    "headers": as_dict,
    "compression": as_lower,
    "request_timeout": _as_str,
    "retry_initial_backoff": _as_str,
    "retry_max_backoff": _as_str,
    "retry_max_elapsed_time": _as_str,
    "batch_max_size": as_int,
    "batch_timeout": _as_str,
    "tls_cert_file": _as_str,
    "tls_key_file": _as_str,
    "tls_ca_file": _as_str,
    "tls_skip_verify": as_bool,
}

_DATADOG_FIELDS: dict[str, _Parser] = {
    "region": _as_str,
    "custom_endpoint": _as_str,
    "api_key": _as_str,
}

_CLICKHOUSE_FIELDS: dict[str, _Parser] = {
    "endpoint": _as_str,
    "database": _as_str,
    "table_prefix": _as_str,
    "compression": _as_str,
    "async_insert": as_bool,
    "user": _as_str,
    "password": _as_str,
    "enable_json": as_bool,
}

# 単一エクスポーターモードでの種類ごとの固定プレフィックス
SINGLE_EXPORTER_PREFIXES: dict[str, str] = {
    "otlp": "OTLP_EXPORTER_",
    "datadog": "DATADOG_EXPORTER_",
    "clickhouse": "CLICKHOUSE_EXPORTER_",
    "blackhole": "BLACKHOLE_EXPORTER_",
}


def multi_exporter_prefix(name: str) -> str:
    """複数エクスポーターモードでのエクスポーター別プレフィックスを返す。"""
    return f"EXPORTER_{name.upper()}_"


class _EnvReader:
    """ROTEL_ 名前空間の環境変数を読むヘルパー。"""

    def __init__(self, environ: Mapping[str, str]) -> None:
        self._environ = environ

    def get(self, key: str) -> str | None:
        return self._environ.get(expand_env_key(key))

    def read_fields(self, pfx: str, fields: Mapping[str, _Parser]) -> dict[str, Any]:
        """プレフィックス配下のフィールド群を読み、設定済みのものだけを返す。"""
        values: dict[str, Any] = {}
        for name, parse in fields.items():
            value = parse(self.get(pfx + field_env_key(name)))
            if value is not None:
                values[name] = value
        return values


def _load_otlp_endpoint(reader: _EnvReader, pfx: str) -> dict[str, Any] | None:
    # 1 つもフィールドがなければ未設定扱いにして、マージで既存値を潰さない
    endpoint = reader.read_fields(pfx, _OTLP_ENDPOINT_FIELDS)
    return endpoint or None


def _load_otlp_exporter(reader: _EnvReader, pfx: str) -> dict[str, Any]:
    exporter = _load_otlp_endpoint(reader, pfx) or {}
    exporter["type"] = "otlp"
    for signal in SIGNALS:
        override = _load_otlp_endpoint(reader, f"{pfx}{signal.upper()}_")
        if override is not None:
            exporter[signal] = override
    return exporter


def _load_exporter(reader: _EnvReader, kind: str, pfx: str) -> dict[str, Any] | None:
    """種類に応じてエクスポーター設定を読む。未知の種類は None。"""
    if kind == "otlp":
        return _load_otlp_exporter(reader, pfx)
    if kind == "datadog":
        return {"type": "datadog", **reader.read_fields(pfx, _DATADOG_FIELDS)}
    if kind == "clickhouse":
        return {"type": "clickhouse", **reader.read_fields(pfx, _CLICKHOUSE_FIELDS)}
    if kind == "blackhole":
        return {"type": "blackhole"}
    return None


def parse_exporter_token(token: str) -> tuple[str, str]:
    """name または name:kind 形式のトークンを (name, kind) に分解する。

    kind を省略した場合は name をそのまま kind とする。
    """
    name, sep, kind = token.partition(":")
    if not sep:
        kind = name
    return name, kind


def _load_exporters(reader: _EnvReader, tokens: str) -> dict[str, Any]:
    exporters: dict[str, Any] = {}
    for token in tokens.split(","):
        name, kind = parse_exporter_token(token)
        exporter = _load_exporter(reader, kind, multi_exporter_prefix(name))
        if exporter is None:
            logger.warning("unknown exporter type, skipping", exporter=name, type=kind)
            continue
        exporters[name] = exporter
    return exporters


def load_options_from_env(environ: Mapping[str, str] | None = None) -> Options:
    """環境変数から Options を読み込む。

    environ: 読み込み元（省略時は os.environ）
    """
    reader = _EnvReader(os.environ if environ is None else environ)
    data = reader.read_fields("", _OPTION_FIELDS)

    tokens = as_lower(reader.get("EXPORTERS"))
    if tokens is not None:
        data["exporters"] = _load_exporters(reader, tokens)
        for signal in SIGNALS:
            routes = as_list(as_lower(reader.get(f"EXPORTERS_{signal.upper()}")))
            if routes is not None:
                data[f"exporters_{signal}"] = routes
    else:
        kind = as_lower(reader.get("EXPORTER")) or "otlp"
        exporter = _load_exporter(reader, kind, SINGLE_EXPORTER_PREFIXES.get(kind, ""))
        if exporter is None:
            logger.warning("unknown exporter type, ignoring", type=kind)
        else:
            data["exporter"] = exporter

    return Options.model_validate(data)
