"""Options の意味検証"""

from __future__ import annotations

from enum import Enum

import structlog

from .exceptions import ConfigError, ConfigErrorCodes
from .loader import SIGNALS
from .models import OTLPEndpoint, OTLPExporter, Options

logger = structlog.get_logger(__name__)

LOG_FORMATS: frozenset[str] = frozenset({"json", "text"})
OTLP_PROTOCOLS: frozenset[str] = frozenset({"grpc", "http"})


class ValidationState(str, Enum):
    """検証結果。無効化されている設定は検証しない。"""

    NOT_EVALUATED = "not_evaluated"
    VALID = "valid"
    INVALID = "invalid"


def _invalid(field: str, message: str) -> ConfigError:
    return ConfigError(ConfigErrorCodes.VALIDATION, message, field=field)


def _check_otlp_endpoint(field: str, endpoint: OTLPEndpoint) -> list[ConfigError]:
    errors: list[ConfigError] = []
    if endpoint.protocol is not None and endpoint.protocol not in OTLP_PROTOCOLS:
        errors.append(_invalid(f"{field}.protocol", "exporter protocol must be 'grpc' or 'http'"))
    if endpoint.batch_max_size is not None and endpoint.batch_max_size < 0:
        errors.append(_invalid(f"{field}.batch_max_size", "batch_max_size must be non-negative"))
    return errors


def _check_otlp_exporter(field: str, exporter: OTLPExporter) -> list[ConfigError]:
    errors = _check_otlp_endpoint(field, exporter)
    for signal in SIGNALS:
        override = getattr(exporter, signal)
        if override is not None:
            errors.extend(_check_otlp_endpoint(f"{field}.{signal}", override))
    return errors


def collect_errors(options: Options) -> list[ConfigError]:
    """Options の検証エラーをすべて集めて返す。enabled かどうかは見ない。"""
    errors: list[ConfigError] = []

    if options.log_format is not None and options.log_format not in LOG_FORMATS:
        errors.append(_invalid("log_format", "log_format must be 'json' or 'text'"))

    if isinstance(options.exporter, OTLPExporter):
        errors.extend(_check_otlp_exporter("exporter", options.exporter))

    exporters = options.exporters or {}
    for name, exporter in exporters.items():
        if isinstance(exporter, OTLPExporter):
            errors.extend(_check_otlp_exporter(f"exporters.{name}", exporter))

    for signal in SIGNALS:
        field = f"exporters_{signal}"
        for name in getattr(options, field) or []:
            if name not in exporters:
                errors.append(_invalid(field, f"{field} references unknown exporter '{name}'"))

    return errors


def validate_options(options: Options) -> ValidationState:
    """Options を検証する。

    enabled でなければ何も検証せず NOT_EVALUATED を返す。
    エラーはログに出すだけで送出しない。
    """
    if not options.enabled:
        return ValidationState.NOT_EVALUATED

    errors = collect_errors(options)
    for error in errors:
        logger.error("invalid rotel configuration", field=error.field, error=str(error))
    if errors:
        return ValidationState.INVALID
    return ValidationState.VALID
