"""イベントジャーナル。

公開 API:
    - プロトコル: EventJournal
    - 実装: InMemoryEventJournal, FilesystemEventJournal
    - 再生: replay, ExecutionState, StepState, StepStatus, ExecutionFailure
    - エラー: OutOfOrderEventError, InvalidTransitionError, JournalIOError
"""

from shinsa.journal._base import EventJournal, OutOfOrderEventError
from shinsa.journal._filesystem import FilesystemEventJournal, JournalIOError
from shinsa.journal._memory import InMemoryEventJournal
from shinsa.journal._replay import (
    ExecutionFailure,
    ExecutionState,
    InvalidTransitionError,
    StepState,
    StepStatus,
    replay,
)

__all__ = [
    "EventJournal",
    "ExecutionFailure",
    "ExecutionState",
    "FilesystemEventJournal",
    "InMemoryEventJournal",
    "InvalidTransitionError",
    "JournalIOError",
    "OutOfOrderEventError",
    "StepState",
    "StepStatus",
    "replay",
]
