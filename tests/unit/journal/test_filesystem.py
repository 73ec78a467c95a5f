"""FilesystemEventJournal 固有の動作テスト。

永続化、不完全な末尾行の扱い、実行 ID の検証を確認する。
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from shinsa.journal import FilesystemEventJournal, JournalIOError, OutOfOrderEventError
from shinsa.models.event import Event, EventKind

_NOW = datetime(2026, 1, 1, tzinfo=UTC)


def _event(seq: int) -> Event:
    return Event(
        sequence_number=seq,
        step_name="security",
        kind=EventKind.STEP_STARTED,
        recorded_at=_NOW,
    )


class TestPersistence:
    """プロセス再起動を模したインスタンス間の永続性を検証。"""

    def test_events_survive_new_instance(self, tmp_path: Path) -> None:
        FilesystemEventJournal(tmp_path).append("exec-1", _event(1))
        reopened = FilesystemEventJournal(tmp_path)
        assert [e.sequence_number for e in reopened.read_all("exec-1")] == [1]

    def test_new_instance_continues_sequence(self, tmp_path: Path) -> None:
        """再オープン後もファイル上の最終連番から検証する。"""
        first = FilesystemEventJournal(tmp_path)
        first.append("exec-1", _event(1))
        first.append("exec-1", _event(2))
        reopened = FilesystemEventJournal(tmp_path)
        with pytest.raises(OutOfOrderEventError):
            reopened.append("exec-1", _event(2))
        reopened.append("exec-1", _event(3))
        assert len(reopened.read_all("exec-1")) == 3

    def test_one_json_line_per_event(self, tmp_path: Path) -> None:
        journal = FilesystemEventJournal(tmp_path)
        journal.append("exec-1", _event(1))
        journal.append("exec-1", _event(2))
        lines = (tmp_path / "exec-1.jsonl").read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert Event.model_validate_json(lines[1]).sequence_number == 2

    def test_creates_missing_directory(self, tmp_path: Path) -> None:
        journal_dir = tmp_path / "nested" / "journal"
        FilesystemEventJournal(journal_dir).append("exec-1", _event(1))
        assert (journal_dir / "exec-1.jsonl").is_file()


class TestTornTail:
    """書き込み途中で停止した末尾行の扱いを検証。"""

    def _write_torn(self, tmp_path: Path) -> Path:
        journal = FilesystemEventJournal(tmp_path)
        journal.append("exec-1", _event(1))
        path = tmp_path / "exec-1.jsonl"
        with path.open("a", encoding="utf-8") as f:
            f.write(_event(2).model_dump_json()[:20])
        return path

    def test_torn_line_ignored_on_read(self, tmp_path: Path) -> None:
        self._write_torn(tmp_path)
        events = FilesystemEventJournal(tmp_path).read_all("exec-1")
        assert [e.sequence_number for e in events] == [1]

    def test_torn_line_truncated_before_append(self, tmp_path: Path) -> None:
        path = self._write_torn(tmp_path)
        journal = FilesystemEventJournal(tmp_path)
        journal.append("exec-1", _event(2))
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert [e.sequence_number for e in journal.read_all("exec-1")] == [1, 2]


class TestExecutionIdValidation:
    """実行 ID の検証を確認。"""

    @pytest.mark.parametrize("bad_id", ["../escape", "a/b", "", ".hidden"])
    def test_invalid_id_rejected(self, tmp_path: Path, bad_id: str) -> None:
        with pytest.raises(ValueError, match="Invalid execution id"):
            FilesystemEventJournal(tmp_path).read_all(bad_id)

    def test_list_ignores_other_files(self, tmp_path: Path) -> None:
        (tmp_path / "notes.txt").write_text("x", encoding="utf-8")
        FilesystemEventJournal(tmp_path).append("exec-1", _event(1))
        assert FilesystemEventJournal(tmp_path).list_executions() == ["exec-1"]

    def test_list_missing_dir_is_empty(self, tmp_path: Path) -> None:
        assert FilesystemEventJournal(tmp_path / "absent").list_executions() == []


class TestIOErrors:
    """I/O エラーが JournalIOError に変換されることを検証。"""

    def test_unwritable_directory(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("not a directory", encoding="utf-8")
        journal = FilesystemEventJournal(blocker / "journal")
        with pytest.raises(JournalIOError):
            journal.append("exec-1", _event(1))
