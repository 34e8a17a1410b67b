"""Options のディープマージ"""

from __future__ import annotations

from typing import Any

from .models import Options


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """base と override をディープマージして新しい辞書を返す。

    override の値が優先される。None は上書きしない。リストは置換（マージしない）。
    """
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        else:
            result[key] = value
    return result


def _merge_exporter(base: dict[str, Any] | None, override: dict[str, Any]) -> dict[str, Any]:
    # 種類が異なるエクスポーター同士はフィールド単位で混ぜられないので置換する
    if base is None or base.get("type") != override.get("type"):
        return dict(override)
    return deep_merge(base, override)


def _merge_layer(base: dict[str, Any], layer: dict[str, Any]) -> dict[str, Any]:
    exporter = layer.pop("exporter", None)
    exporters = layer.pop("exporters", None)
    result = deep_merge(base, layer)
    if exporter is not None:
        result["exporter"] = _merge_exporter(result.get("exporter"), exporter)
    if exporters is not None:
        merged: dict[str, Any] = dict(result.get("exporters") or {})
        for name, value in exporters.items():
            merged[name] = _merge_exporter(merged.get(name), value)
        result["exporters"] = merged
    return result


def merge_options(*layers: Options | None) -> Options:
    """Options を優先度の低い順に重ねて 1 つにまとめる。

    例: merge_options(defaults, from_env, explicit)
    複数エクスポーター設定がある場合、単一エクスポーター設定は捨てる。
    """
    data: dict[str, Any] = {}
    for layer in layers:
        if layer is None:
            continue
        data = _merge_layer(data, layer.model_dump(exclude_none=True))
    if "exporters" in data:
        data.pop("exporter", None)
    return Options.model_validate(data)
