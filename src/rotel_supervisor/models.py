"""設定型定義（pydantic BaseModel）"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Tag, model_validator


class _FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class OTLPEndpoint(_FrozenModel):
    """OTLP エクスポーターの送信先設定。

    期間系のフィールドはコレクターの期間文字列（例: "100ms", "30s"）をそのまま保持する。
    """

    endpoint: str | None = None
    protocol: str | None = None
    headers: dict[str, str] | None = None
    compression: str | None = None
    request_timeout: str | None = None
    retry_initial_backoff: str | None = None
    retry_max_backoff: str | None = None
    retry_max_elapsed_time: str | None = None
    batch_max_size: int | None = None
    batch_timeout: str | None = None
    tls_cert_file: str | None = None
    tls_key_file: str | None = None
    tls_ca_file: str | None = None
    tls_skip_verify: bool | None = None


class OTLPExporter(OTLPEndpoint):
    """OTLP エクスポーター。シグナル別の送信先で上書きできる。"""

    type: Literal["otlp"] = "otlp"
    traces: OTLPEndpoint | None = None
    metrics: OTLPEndpoint | None = None
    logs: OTLPEndpoint | None = None


class DatadogExporter(_FrozenModel):
    """Datadog エクスポーター。"""

    type: Literal["datadog"] = "datadog"
    region: str | None = None
    custom_endpoint: str | None = None
    api_key: str | None = None


class ClickhouseExporter(_FrozenModel):
    """ClickHouse エクスポーター。"""

    type: Literal["clickhouse"] = "clickhouse"
    endpoint: str | None = None
    database: str | None = None
    table_prefix: str | None = None
    compression: str | None = None
    async_insert: bool | None = None
    user: str | None = None
    password: str | None = None
    enable_json: bool | None = None


class BlackholeExporter(_FrozenModel):
    """受信したテレメトリーを破棄するエクスポーター。"""

    type: Literal["blackhole"] = "blackhole"


def _exporter_kind(value: Any) -> str:
    # type を持たない入力は OTLP として扱う
    if isinstance(value, dict):
        return value.get("type") or "otlp"
    return getattr(value, "type", None) or "otlp"


Exporter = Annotated[
    Union[
        Annotated[OTLPExporter, Tag("otlp")],
        Annotated[DatadogExporter, Tag("datadog")],
        Annotated[ClickhouseExporter, Tag("clickhouse")],
        Annotated[BlackholeExporter, Tag("blackhole")],
    ],
    Discriminator(_exporter_kind),
]


class Options(_FrozenModel):
    """エージェント設定。None は「未設定」を表す。

    exporter（単一エクスポーター）と exporters（複数エクスポーター）は排他。
    リスト系フィールドはタプルで保持する。headers と exporters の dict は
    書き換え可能なままなので、呼び出し側で変更しないこと。
    """

    enabled: bool | None = None
    pid_file: str | None = None
    log_file: str | None = None
    log_format: str | None = None
    debug_log: tuple[str, ...] | None = None
    otlp_grpc_endpoint: str | None = None
    otlp_http_endpoint: str | None = None
    otlp_receiver_traces_disabled: bool | None = None
    otlp_receiver_metrics_disabled: bool | None = None
    otlp_receiver_logs_disabled: bool | None = None
    exporter: Exporter | None = None
    exporters: dict[str, Exporter] | None = None
    exporters_traces: tuple[str, ...] | None = None
    exporters_metrics: tuple[str, ...] | None = None
    exporters_logs: tuple[str, ...] | None = None

    @model_validator(mode="after")
    def check_exporter_mode(self) -> Options:
        if self.exporter is not None and self.exporters is not None:
            raise ValueError("exporter and exporters are mutually exclusive")
        return self


def otlp_exporter(**fields: Any) -> OTLPExporter:
    """OTLP エクスポーター設定を生成する。"""
    return OTLPExporter(**fields)


def datadog_exporter(**fields: Any) -> DatadogExporter:
    """Datadog エクスポーター設定を生成する。"""
    return DatadogExporter(**fields)


def clickhouse_exporter(**fields: Any) -> ClickhouseExporter:
    """ClickHouse エクスポーター設定を生成する。"""
    return ClickhouseExporter(**fields)


def blackhole_exporter() -> BlackholeExporter:
    """Blackhole エクスポーター設定を生成する。"""
    return BlackholeExporter()
