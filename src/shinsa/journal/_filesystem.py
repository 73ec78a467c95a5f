"""FilesystemEventJournal — JSONL ファイルによる永続ジャーナル。

実行ごとに ``{journal_dir}/{execution_id}.jsonl`` を1ファイル持ち、1行1イベントで
追記する。append は flush と fsync の完了後に返る。

書き込み途中でプロセスが停止した場合、末尾に改行のない不完全な行が残りうる。
読み込み時はその行を無視し、次の追記の前に切り詰める。
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path
from typing import Final

from shinsa.journal._base import ExecutionLocks, check_sequence, find_latest_outcome
from shinsa.models.event import Event

logger = logging.getLogger(__name__)

_SUFFIX: Final[str] = ".jsonl"
_EXECUTION_ID_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


class JournalIOError(Exception):
    """ジャーナルファイルの読み書きエラー。ディレクトリ作成失敗、I/O エラー等。"""


class FilesystemEventJournal:
    """EventJournal のファイルシステム実装。"""

    def __init__(self, journal_dir: Path) -> None:
        self.journal_dir = journal_dir
        self._locks = ExecutionLocks()
        self._last_sequence: dict[str, int] = {}

    def _path_for(self, execution_id: str) -> Path:
        """実行 ID から JSONL ファイルパスを解決する。

        Raises:
            ValueError: 実行 ID にパス区切り等の使用できない文字が含まれる場合。
        """
        if not _EXECUTION_ID_RE.fullmatch(execution_id):
            raise ValueError(
                f"Invalid execution id '{execution_id}': "
                "only letters, digits, '.', '_' and '-' are allowed"
            )
        return self.journal_dir / f"{execution_id}{_SUFFIX}"

    def append(self, execution_id: str, event: Event) -> None:
        path = self._path_for(execution_id)
        with self._locks.for_execution(execution_id):
            last = self._load_last_sequence(execution_id, path)
            check_sequence(execution_id, last, event)
            try:
                self.journal_dir.mkdir(parents=True, exist_ok=True)
                _truncate_torn_tail(path)
                with path.open("a", encoding="utf-8") as f:
                    f.write(event.model_dump_json())
                    f.write("\n")
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as exc:
                raise JournalIOError(
                    f"Failed to append event to {path}: {exc}\n"
                    "Check directory permissions and available disk space."
                ) from exc
            self._last_sequence[execution_id] = event.sequence_number

    def read_all(self, execution_id: str) -> list[Event]:
        path = self._path_for(execution_id)
        with self._locks.for_execution(execution_id):
            return _read_events(path)

    def latest_outcome(self, execution_id: str, step_name: str) -> Event | None:
        return find_latest_outcome(self.read_all(execution_id), step_name)

    def list_executions(self) -> list[str]:
        if not self.journal_dir.is_dir():
            return []
        return sorted(p.stem for p in self.journal_dir.glob(f"*{_SUFFIX}"))

    def _load_last_sequence(self, execution_id: str, path: Path) -> int:
        """最後に記録された sequence_number を返す（初回のみファイルから読む）。"""
        cached = self._last_sequence.get(execution_id)
        if cached is not None:
            return cached
        events = _read_events(path)
        last = events[-1].sequence_number if events else 0
        self._last_sequence[execution_id] = last
        return last


def _read_events(path: Path) -> list[Event]:
    """JSONL ファイルからイベント列を読み込む。

    改行で終わらない末尾行は書き込み途中の断片として無視する。

    Raises:
        JournalIOError: ファイルの読み込みに失敗した場合。
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return []
    except OSError as exc:
        raise JournalIOError(f"Failed to read journal {path}: {exc}") from exc

    lines = text.split("\n")
    torn = lines.pop()
    if torn:
        logger.warning("Ignoring torn trailing line in journal %s", path)
    return [Event.model_validate_json(line) for line in lines if line]


def _truncate_torn_tail(path: Path) -> None:
    """ファイル末尾の改行で終わらない断片を切り詰める。"""
    try:
        with path.open("rb") as f:
            if f.seek(0, os.SEEK_END) == 0:
                return
            f.seek(-1, os.SEEK_END)
            if f.read(1) == b"\n":
                return
    except FileNotFoundError:
        return
    data = path.read_bytes()
    keep = data.rfind(b"\n") + 1
    logger.warning("Truncating torn trailing line in journal %s", path)
    with path.open("r+b") as f:
        f.truncate(keep)
        f.flush()
        os.fsync(f.fileno())
