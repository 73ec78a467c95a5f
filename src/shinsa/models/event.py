"""実行イベントの定義。

イベントジャーナルに記録される不変の事実。sequence_number は実行ごとに
1 から始まり欠番なく単調増加する。payload はジャーナルにとって不透明な
JSON オブジェクトで、解釈は replay が担当する。
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Final

from pydantic import Field

from shinsa.models._base import ShinsaBaseModel

EXECUTION_STEP: Final[str] = "__execution__"
"""実行レベルのイベント（ExecutionSubmitted/Completed/Failed）に使うステップ名。"""


class EventKind(StrEnum):
    """イベント種別。"""

    EXECUTION_SUBMITTED = "ExecutionSubmitted"
    STEP_STARTED = "StepStarted"
    STEP_SUCCEEDED = "StepSucceeded"
    STEP_FAILED = "StepFailed"
    STEP_RETRY_SCHEDULED = "StepRetryScheduled"
    EXECUTION_COMPLETED = "ExecutionCompleted"
    EXECUTION_FAILED = "ExecutionFailed"


TERMINAL_EXECUTION_KINDS: Final[frozenset[EventKind]] = frozenset(
    {EventKind.EXECUTION_COMPLETED, EventKind.EXECUTION_FAILED}
)
"""実行を終端状態にするイベント種別。これ以降のイベント追記は不可。"""


class ExecutionStatus(StrEnum):
    """実行レベルの状態。"""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def is_terminal(self) -> bool:
        """終端状態（Completed/Failed）か。"""
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


class Event(ShinsaBaseModel):
    """実行について記録された1つの事実。

    Attributes:
        sequence_number: 実行内の通し番号（1 始まり、欠番なし）。
        step_name: 対象ステップ名。実行レベルのイベントは EXECUTION_STEP。
        kind: イベント種別。
        payload: ステップ結果や失敗詳細。ジャーナルは内容を解釈しない。
        recorded_at: イベントが最初に生成された時刻（UTC）。再生時に再計算しない。
    """

    sequence_number: int = Field(ge=1)
    step_name: str = Field(min_length=1)
    kind: EventKind
    payload: dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime

    @property
    def is_step_terminal(self) -> bool:
        """ステップにとって終端のイベント（成功、または再試行されない失敗）か。"""
        if self.kind == EventKind.STEP_SUCCEEDED:
            return True
        return self.kind == EventKind.STEP_FAILED and bool(
            self.payload.get("terminal", False)
        )
