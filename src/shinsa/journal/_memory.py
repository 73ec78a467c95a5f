"""InMemoryEventJournal — プロセス内メモリに保持するジャーナル。

テストと単一プロセス実行向け。プロセス終了で内容は失われる。
"""

from __future__ import annotations

from shinsa.journal._base import ExecutionLocks, check_sequence, find_latest_outcome
from shinsa.models.event import Event


class InMemoryEventJournal:
    """EventJournal のメモリ実装。"""

    def __init__(self) -> None:
        self._events: dict[str, list[Event]] = {}
        self._locks = ExecutionLocks()

    def append(self, execution_id: str, event: Event) -> None:
        with self._locks.for_execution(execution_id):
            events = self._events.setdefault(execution_id, [])
            last = events[-1].sequence_number if events else 0
            check_sequence(execution_id, last, event)
            events.append(event)

    def read_all(self, execution_id: str) -> list[Event]:
        with self._locks.for_execution(execution_id):
            return list(self._events.get(execution_id, ()))

    def latest_outcome(self, execution_id: str, step_name: str) -> Event | None:
        return find_latest_outcome(self.read_all(execution_id), step_name)

    def list_executions(self) -> list[str]:
        return sorted(self._events)
