"""CLI テスト共通フィクスチャ。"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterator
from pathlib import Path

import pytest

VALID_REQUEST: dict[str, object] = {
    "prNumber": 17,
    "prTitle": "Add rate limiter",
    "prDescription": "Token bucket per client",
    "author": "dev",
    "diff": "+ class RateLimiter: ...",
}


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """カレントディレクトリ・ホーム・SHINSA_* 環境変数をテストごとに隔離する。"""
    workdir = tmp_path / "work"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    for key in list(os.environ):
        if key.startswith("SHINSA_"):
            monkeypatch.delenv(key)
    return workdir


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    """CLI が設定したルートロガーのハンドラとレベルをテスト後に戻す。"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def journal_dir(tmp_path: Path) -> Path:
    return tmp_path / "journal"


@pytest.fixture
def request_file(tmp_path: Path) -> Path:
    path = tmp_path / "request.json"
    path.write_text(json.dumps(VALID_REQUEST), encoding="utf-8")
    return path
