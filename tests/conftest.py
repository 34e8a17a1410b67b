"""共通フィクスチャ"""

import os
from collections.abc import Callable
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def clean_rotel_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """実行環境の ROTEL_ 変数がテストに混ざらないようにする。"""
    for key in list(os.environ):
        if key.startswith("ROTEL_"):
            monkeypatch.delenv(key)


@pytest.fixture
def write_agent(tmp_path: Path) -> Callable[[str], str]:
    """任意のシェルスクリプトをエージェント実行ファイルとして書き出す。"""

    def _write(body: str) -> str:
        script = tmp_path / "rotel-agent"
        script.write_text("#!/bin/sh\n" + body)
        script.chmod(0o755)
        return str(script)

    return _write
