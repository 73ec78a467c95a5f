"""EventJournal 実装（メモリ・ファイルシステム）共通の契約テスト。"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

import pytest

from shinsa.journal import (
    EventJournal,
    FilesystemEventJournal,
    InMemoryEventJournal,
    OutOfOrderEventError,
)
from shinsa.models.event import EXECUTION_STEP, Event, EventKind

_NOW = datetime(2026, 1, 1, tzinfo=UTC)


def _event(
    seq: int,
    kind: EventKind = EventKind.STEP_STARTED,
    step_name: str = "security",
    **payload: object,
) -> Event:
    return Event(
        sequence_number=seq,
        step_name=step_name,
        kind=kind,
        payload=dict(payload),
        recorded_at=_NOW,
    )


@pytest.fixture(params=["memory", "filesystem"])
def journal(request: pytest.FixtureRequest, tmp_path: Path) -> EventJournal:
    if request.param == "memory":
        return InMemoryEventJournal()
    return FilesystemEventJournal(tmp_path / "journal")


class TestProtocolConformance:
    """両実装が EventJournal プロトコルを満たすことを検証。"""

    def test_is_event_journal(self, journal: EventJournal) -> None:
        assert isinstance(journal, EventJournal)


class TestAppend:
    """append の順序検証を確認。"""

    def test_appends_in_order(self, journal: EventJournal) -> None:
        for seq in (1, 2, 3):
            journal.append("exec-1", _event(seq))
        assert [e.sequence_number for e in journal.read_all("exec-1")] == [1, 2, 3]

    def test_first_event_must_be_one(self, journal: EventJournal) -> None:
        with pytest.raises(OutOfOrderEventError) as exc_info:
            journal.append("exec-1", _event(2))
        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2

    def test_gap_rejected(self, journal: EventJournal) -> None:
        journal.append("exec-1", _event(1))
        with pytest.raises(OutOfOrderEventError, match="expected sequence 2, got 3"):
            journal.append("exec-1", _event(3))

    def test_duplicate_sequence_rejected(self, journal: EventJournal) -> None:
        journal.append("exec-1", _event(1))
        with pytest.raises(OutOfOrderEventError):
            journal.append("exec-1", _event(1))

    def test_rejected_event_not_persisted(self, journal: EventJournal) -> None:
        journal.append("exec-1", _event(1))
        with pytest.raises(OutOfOrderEventError):
            journal.append("exec-1", _event(5))
        assert len(journal.read_all("exec-1")) == 1

    def test_executions_are_independent(self, journal: EventJournal) -> None:
        """異なる実行の連番は互いに独立している。"""
        journal.append("exec-1", _event(1))
        journal.append("exec-2", _event(1))
        journal.append("exec-1", _event(2))
        assert len(journal.read_all("exec-1")) == 2
        assert len(journal.read_all("exec-2")) == 1


class TestReadAll:
    """read_all を検証。"""

    def test_unknown_execution_is_empty(self, journal: EventJournal) -> None:
        assert journal.read_all("missing") == []

    def test_payload_round_trip(self, journal: EventJournal) -> None:
        event = _event(1, EventKind.EXECUTION_SUBMITTED, EXECUTION_STEP, request={"a": 1})
        journal.append("exec-1", event)
        assert journal.read_all("exec-1") == [event]

    def test_returns_copy(self, journal: EventJournal) -> None:
        journal.append("exec-1", _event(1))
        journal.read_all("exec-1").clear()
        assert len(journal.read_all("exec-1")) == 1


class TestLatestOutcome:
    """latest_outcome を検証。"""

    def test_none_without_terminal_event(self, journal: EventJournal) -> None:
        journal.append("exec-1", _event(1))
        journal.append("exec-1", _event(2, EventKind.STEP_FAILED, terminal=False))
        assert journal.latest_outcome("exec-1", "security") is None

    def test_returns_success(self, journal: EventJournal) -> None:
        journal.append("exec-1", _event(1))
        journal.append("exec-1", _event(2, EventKind.STEP_SUCCEEDED, attempt=1))
        outcome = journal.latest_outcome("exec-1", "security")
        assert outcome is not None
        assert outcome.kind == EventKind.STEP_SUCCEEDED

    def test_returns_terminal_failure(self, journal: EventJournal) -> None:
        journal.append("exec-1", _event(1))
        journal.append("exec-1", _event(2, EventKind.STEP_FAILED, terminal=True))
        outcome = journal.latest_outcome("exec-1", "security")
        assert outcome is not None
        assert outcome.sequence_number == 2

    def test_filters_by_step(self, journal: EventJournal) -> None:
        journal.append("exec-1", _event(1, EventKind.STEP_SUCCEEDED, "code-quality"))
        assert journal.latest_outcome("exec-1", "security") is None


class TestListExecutions:
    """list_executions を検証。"""

    def test_empty(self, journal: EventJournal) -> None:
        assert journal.list_executions() == []

    def test_lists_sorted_ids(self, journal: EventJournal) -> None:
        journal.append("b-exec", _event(1))
        journal.append("a-exec", _event(1))
        assert journal.list_executions() == ["a-exec", "b-exec"]
