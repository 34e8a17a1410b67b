"""rotel-supervisor: rotel エージェントの設定と起動管理"""

from .client import Client, get_client
from .config import Config
from .exceptions import AgentError, AgentErrorCodes, ConfigError, ConfigErrorCodes, RotelError
from .loader import load_options_from_env
from .merger import deep_merge, merge_options
from .models import (
    BlackholeExporter,
    ClickhouseExporter,
    DatadogExporter,
    Exporter,
    Options,
    OTLPEndpoint,
    OTLPExporter,
    blackhole_exporter,
    clickhouse_exporter,
    datadog_exporter,
    otlp_exporter,
)
from .serializer import build_agent_environment
from .supervisor import ProcessSupervisor, resolve_agent_path
from .validator import ValidationState, validate_options

__all__ = [
    "Options",
    "OTLPEndpoint",
    "OTLPExporter",
    "DatadogExporter",
    "ClickhouseExporter",
    "BlackholeExporter",
    "Exporter",
    "otlp_exporter",
    "datadog_exporter",
    "clickhouse_exporter",
    "blackhole_exporter",
    "load_options_from_env",
    "deep_merge",
    "merge_options",
    "ValidationState",
    "validate_options",
    "build_agent_environment",
    "Config",
    "ProcessSupervisor",
    "resolve_agent_path",
    "Client",
    "get_client",
    "RotelError",
    "ConfigError",
    "ConfigErrorCodes",
    "AgentError",
    "AgentErrorCodes",
]
