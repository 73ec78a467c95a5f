"""EventJournal — 追記専用イベントジャーナルのプロトコルと共通部品。

ジャーナルは実行ごとに順序付けられたイベント列を保持する唯一の真実の源。
更新・削除の操作は存在しない。
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from shinsa.models.event import Event


class OutOfOrderEventError(Exception):
    """追記しようとしたイベントの sequence_number が直前の値 + 1 でない。

    Executor の不具合を示し、その実行にとって致命的なエラーとして扱う。
    """

    def __init__(self, execution_id: str, expected: int, actual: int) -> None:
        self.execution_id = execution_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Out-of-order event for execution '{execution_id}': "
            f"expected sequence {expected}, got {actual}"
        )


@runtime_checkable
class EventJournal(Protocol):
    """実行ごとの追記専用イベントログ。"""

    def append(self, execution_id: str, event: Event) -> None:
        """イベントを永続化してから返る。

        Raises:
            OutOfOrderEventError: sequence_number が直前の値 + 1 でない場合。
        """
        ...

    def read_all(self, execution_id: str) -> list[Event]:
        """実行の全イベントを sequence_number 順で返す。未知の実行は空リスト。"""
        ...

    def latest_outcome(self, execution_id: str, step_name: str) -> Event | None:
        """ステップの最新の終端イベントを返す。存在しなければ None。"""
        ...

    def list_executions(self) -> list[str]:
        """ジャーナルに記録された実行 ID を返す。"""
        ...


def find_latest_outcome(events: Sequence[Event], step_name: str) -> Event | None:
    """イベント列からステップの最新の終端イベント（成功 or 終端失敗）を探す。"""
    for event in reversed(events):
        if event.step_name == step_name and event.is_step_terminal:
            return event
    return None


def check_sequence(execution_id: str, last_sequence: int, event: Event) -> None:
    """event が last_sequence の直後に追記可能か検証する。

    Raises:
        OutOfOrderEventError: 連番でない場合。
    """
    expected = last_sequence + 1
    if event.sequence_number != expected:
        raise OutOfOrderEventError(execution_id, expected, event.sequence_number)


class ExecutionLocks:
    """実行 ID ごとのロックを遅延生成して保持する。

    異なる実行のジャーナルは独立しており、共有ロックはロック生成時のみ使う。
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def for_execution(self, execution_id: str) -> threading.Lock:
        """execution_id 専用のロックを返す。"""
        with self._guard:
            lock = self._locks.get(execution_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[execution_id] = lock
            return lock
