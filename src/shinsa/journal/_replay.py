"""Replay — イベント列の左畳み込みによる実行状態の再構築。

実行状態はイベント列だけから一意に決まる。replay() は純粋関数で、同じイベント列を
何度再生しても等しい ExecutionState を返す。ExecutionState.apply() は状態遷移の妥当性も
検証するため、Executor は追記前にこれを通して不正なイベントの永続化を防ぐ。

ステップごとのイベント順序:
    StepStarted → (StepFailed → StepRetryScheduled)* → (StepSucceeded | StepFailed[terminal])
    非終端の StepFailed の直後に再試行しないと判断した場合は、同じ試行番号の
    StepFailed[terminal] でステップを閉じる。
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from shinsa.models.event import EXECUTION_STEP, Event, EventKind, ExecutionStatus
from shinsa.models.review import ReviewRequest, ReviewResponse
from shinsa.models.step_result import StepError, StepResult


class InvalidTransitionError(Exception):
    """イベントが実行・ステップの状態遷移規則に違反している。"""


class StepStatus(StrEnum):
    """ステップ単位の状態。"""

    NOT_STARTED = "NotStarted"
    DISPATCHED = "Dispatched"
    SUCCEEDED = "Succeeded"
    EXHAUSTED_RETRIES = "ExhaustedRetries"


@dataclass
class StepState:
    """再生で導出される1ステップの状態。

    Attributes:
        name: ステップ名。
        status: ステップ状態。
        attempts_failed: 失敗として記録された試行数。
        result: 成功時の結果。
        last_error: 直近の失敗エラー。
        pending_retry_delay: 直近に予約された再試行の待機秒数。
        awaiting_retry_decision: 非終端の StepFailed の後、StepRetryScheduled が未記録。
    """

    name: str
    status: StepStatus = StepStatus.NOT_STARTED
    attempts_failed: int = 0
    result: StepResult | None = None
    last_error: StepError | None = None
    pending_retry_delay: float | None = None
    awaiting_retry_decision: bool = False

    @property
    def next_attempt(self) -> int:
        """次に実行する試行番号（1 始まり）。"""
        return self.attempts_failed + 1


@dataclass
class ExecutionFailure:
    """実行失敗の詳細。"""

    step: str
    error: StepError


@dataclass
class ExecutionState:
    """イベント列から導出される実行状態。永続化はしない。"""

    execution_id: str
    status: ExecutionStatus = ExecutionStatus.PENDING
    request: ReviewRequest | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    steps: dict[str, StepState] = field(default_factory=dict)
    response: ReviewResponse | None = None
    failure: ExecutionFailure | None = None
    last_sequence: int = 0

    @property
    def exists(self) -> bool:
        """ExecutionSubmitted が記録済みか。"""
        return self.request is not None

    def step(self, name: str) -> StepState:
        """ステップ状態を返す。未記録のステップは NotStarted の新しい状態を返す。"""
        existing = self.steps.get(name)
        return existing if existing is not None else StepState(name=name)

    def apply(self, event: Event) -> None:
        """イベントを1件適用する（検証付き）。

        Raises:
            InvalidTransitionError: 連番の欠落や状態遷移規則違反の場合。
        """
        if event.sequence_number != self.last_sequence + 1:
            raise InvalidTransitionError(
                f"Sequence gap in execution '{self.execution_id}': expected "
                f"{self.last_sequence + 1}, got {event.sequence_number}"
            )
        if self.status.is_terminal:
            raise InvalidTransitionError(
                f"Execution '{self.execution_id}' is already {self.status.value}; "
                f"cannot apply {event.kind.value}"
            )
        if event.kind == EventKind.EXECUTION_SUBMITTED:
            self._apply_submitted(event)
        elif not self.exists:
            raise InvalidTransitionError(
                f"Execution '{self.execution_id}' has no ExecutionSubmitted event "
                f"before {event.kind.value}"
            )
        elif event.step_name == EXECUTION_STEP:
            self._apply_execution_event(event)
        else:
            self._apply_step_event(event)
        self.last_sequence = event.sequence_number

    def _apply_submitted(self, event: Event) -> None:
        if self.exists or event.step_name != EXECUTION_STEP:
            raise InvalidTransitionError(
                f"ExecutionSubmitted must be the first execution-level event "
                f"of '{self.execution_id}'"
            )
        self.request = ReviewRequest.model_validate(event.payload["request"])

    def _apply_execution_event(self, event: Event) -> None:
        if event.kind == EventKind.EXECUTION_COMPLETED:
            self.response = ReviewResponse.model_validate(event.payload["response"])
            self.status = ExecutionStatus.COMPLETED
        elif event.kind == EventKind.EXECUTION_FAILED:
            self.failure = ExecutionFailure(
                step=str(event.payload["step"]),
                error=StepError.model_validate(event.payload["error"]),
            )
            self.status = ExecutionStatus.FAILED
        else:
            raise InvalidTransitionError(
                f"{event.kind.value} is not an execution-level event"
            )
        self.completed_at = event.recorded_at

    def _apply_step_event(self, event: Event) -> None:
        state = self.step(event.step_name)
        kind = event.kind

        if kind == EventKind.STEP_STARTED:
            if state.status != StepStatus.NOT_STARTED:
                raise _step_error(event, state)
            state.status = StepStatus.DISPATCHED
            if self.started_at is None:
                self.started_at = event.recorded_at
            self.status = ExecutionStatus.RUNNING

        elif kind == EventKind.STEP_FAILED:
            if state.status != StepStatus.DISPATCHED:
                raise _step_error(event, state)
            terminal = bool(event.payload.get("terminal", False))
            if state.awaiting_retry_decision:
                # 再試行しないという判断は、直前の試行を終端として記録し直す
                if not terminal:
                    raise _step_error(event, state)
                _check_attempt(event, state.attempts_failed)
                error = StepError.model_validate(event.payload["error"])
                state.awaiting_retry_decision = False
            else:
                _check_attempt(event, state.next_attempt)
                error = StepError.model_validate(event.payload["error"])
                state.attempts_failed += 1
            state.last_error = error
            state.pending_retry_delay = None
            if terminal:
                state.status = StepStatus.EXHAUSTED_RETRIES
            else:
                state.awaiting_retry_decision = True

        elif kind == EventKind.STEP_RETRY_SCHEDULED:
            if not state.awaiting_retry_decision:
                raise _step_error(event, state)
            _check_attempt(event, state.next_attempt)
            delay = float(event.payload["delay_seconds"])
            state.awaiting_retry_decision = False
            state.pending_retry_delay = delay

        elif kind == EventKind.STEP_SUCCEEDED:
            if state.status == StepStatus.SUCCEEDED:
                raise InvalidTransitionError(
                    f"Step '{event.step_name}' of execution '{self.execution_id}' "
                    "already succeeded"
                )
            if (
                state.status != StepStatus.DISPATCHED
                or state.awaiting_retry_decision
            ):
                raise _step_error(event, state)
            state.result = StepResult.model_validate(event.payload["result"])
            state.status = StepStatus.SUCCEEDED
            state.pending_retry_delay = None

        else:
            raise InvalidTransitionError(
                f"{kind.value} must use step name '{EXECUTION_STEP}'"
            )

        self.steps[event.step_name] = state


def _step_error(event: Event, state: StepState) -> InvalidTransitionError:
    return InvalidTransitionError(
        f"Cannot apply {event.kind.value} to step '{event.step_name}' "
        f"in state {state.status.value}"
        + (" (awaiting retry decision)" if state.awaiting_retry_decision else "")
    )


def _check_attempt(event: Event, expected: int) -> None:
    attempt = event.payload.get("attempt")
    if attempt != expected:
        raise InvalidTransitionError(
            f"{event.kind.value} for step '{event.step_name}' records attempt "
            f"{attempt}, expected {expected}"
        )


def replay(execution_id: str, events: Iterable[Event]) -> ExecutionState:
    """イベント列を先頭から畳み込み、実行状態を再構築する。

    Args:
        execution_id: 実行 ID。
        events: sequence_number 順のイベント列。

    Returns:
        再構築された ExecutionState。イベントが空なら exists=False の状態。

    Raises:
        InvalidTransitionError: イベント列が状態遷移規則に違反する場合。
    """
    state = ExecutionState(execution_id=execution_id)
    for event in events:
        state.apply(event)
    return state


# =============================================================================
# payload ビルダー。replay が解釈する形式と対になる
# =============================================================================


def submitted_payload(request: ReviewRequest) -> dict[str, Any]:
    return {"request": request.model_dump(mode="json", by_alias=True)}


def step_failed_payload(attempt: int, error: StepError, terminal: bool) -> dict[str, Any]:
    return {
        "attempt": attempt,
        "error": error.model_dump(mode="json"),
        "terminal": terminal,
    }


def retry_scheduled_payload(next_attempt: int, delay_seconds: float) -> dict[str, Any]:
    return {"attempt": next_attempt, "delay_seconds": delay_seconds}


def step_succeeded_payload(attempt: int, result: StepResult) -> dict[str, Any]:
    return {"attempt": attempt, "result": result.model_dump(mode="json", by_alias=True)}


def completed_payload(response: ReviewResponse) -> dict[str, Any]:
    return {"response": response.model_dump(mode="json", by_alias=True)}


def execution_failed_payload(step: str, error: StepError) -> dict[str, Any]:
    return {"step": step, "error": error.model_dump(mode="json")}
