"""WorkflowExecutor — ジャーナル駆動の決定的な実行状態機械。

新規実行と障害後の再開を同一のアルゴリズムで扱う:
    1. ジャーナルを再生し、StepSucceeded が記録済みのステップは結果を再利用する
    2. 最初の未成功ステップを TaskDispatcher で実行する
    3. 成功なら StepSucceeded を記録して次へ、終端失敗なら ExecutionFailed で終了する
    4. 全ステップ成功後に集約し、ExecutionCompleted に ReviewResponse を記録する

制御フローはジャーナル内容とステップ結果のみで決まる。時計はイベントの
recorded_at を刻むためだけに読む。Executor は実行ごとの唯一のジャーナル書き手。
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from typing import Any

from anyio import to_thread

from shinsa.engine._aggregator import build_response
from shinsa.engine._dispatcher import CANCELLED_ERROR_TYPE, TaskDispatcher
from shinsa.engine._progress import NullProgressReporter, ProgressReporter
from shinsa.journal._base import EventJournal
from shinsa.journal._replay import (
    ExecutionState,
    StepState,
    StepStatus,
    completed_payload,
    execution_failed_payload,
    replay,
    retry_scheduled_payload,
    step_failed_payload,
    step_succeeded_payload,
    submitted_payload,
)
from shinsa.models.event import EXECUTION_STEP, Event, EventKind
from shinsa.models.review import ReviewRequest
from shinsa.models.step_result import (
    StepError,
    StepFailure,
    StepOutcome,
    StepResult,
)
from shinsa.steps._base import ReviewContext
from shinsa.steps._catalog import StepPlan

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """現在時刻（UTC）を返す。"""
    return datetime.now(UTC)


class ExecutionNotFoundError(Exception):
    """指定された実行 ID の ExecutionSubmitted がジャーナルに存在しない。"""

    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' not found in the journal")


class ExecutionExistsError(Exception):
    """同じ実行 ID の実行が既にジャーナルに存在する。"""

    def __init__(self, execution_id: str) -> None:
        self.execution_id = execution_id
        super().__init__(f"Execution '{execution_id}' already exists in the journal")


class _ExecutionRecorder:
    """1回の run における実行状態とジャーナル追記を束ねる。

    イベントは ExecutionState.apply で遷移を検証してから追記する。追記（fsync を
    含む）はワーカースレッドで行い、他の実行のイベントループを止めない。
    DispatchListener として Dispatcher の通知をイベントに変換する。
    """

    def __init__(
        self,
        journal: EventJournal,
        state: ExecutionState,
        clock: Clock,
        reporter: ProgressReporter,
        is_cancelled: Callable[[], bool],
    ) -> None:
        self.journal = journal
        self.state = state
        self.clock = clock
        self.reporter = reporter
        self._is_cancelled = is_cancelled

    async def record(
        self,
        step_name: str,
        kind: EventKind,
        payload: dict[str, Any],
        recorded_at: datetime | None = None,
    ) -> Event:
        event = Event(
            sequence_number=self.state.last_sequence + 1,
            step_name=step_name,
            kind=kind,
            payload=payload,
            recorded_at=recorded_at if recorded_at is not None else self.clock(),
        )
        self.state.apply(event)
        await to_thread.run_sync(
            self.journal.append, self.state.execution_id, event
        )
        logger.debug(
            "Recorded %s #%d for '%s' step '%s'",
            kind.value,
            event.sequence_number,
            self.state.execution_id,
            step_name,
        )
        return event

    # --- DispatchListener ---

    async def on_attempt_start(self, step_name: str, attempt: int) -> None:
        self.reporter.on_step_start(self.state.execution_id, step_name, attempt)

    async def on_attempt_failed(
        self, step_name: str, attempt: int, error: StepError, terminal: bool
    ) -> None:
        await self.record(
            step_name,
            EventKind.STEP_FAILED,
            step_failed_payload(attempt, error, terminal),
        )

    async def on_retry_scheduled(
        self, step_name: str, next_attempt: int, delay_seconds: float
    ) -> None:
        await self.record(
            step_name,
            EventKind.STEP_RETRY_SCHEDULED,
            retry_scheduled_payload(next_attempt, delay_seconds),
        )
        self.reporter.on_step_retry(
            self.state.execution_id, step_name, next_attempt, delay_seconds
        )

    def cancel_requested(self) -> bool:
        return self._is_cancelled()


class WorkflowExecutor:
    """固定ロスターのステップを順に実行する状態機械。

    Args:
        journal: イベントジャーナル。
        dispatcher: ステップを再試行付きで実行する Dispatcher。
        plans: ロスター順の StepPlan。空は不可。
        model_name: ReviewResponse.metadata.model に記録するモデル識別子。
        clock: recorded_at に使う時計。
        reporter: 進捗レポーター。
    """

    def __init__(
        self,
        journal: EventJournal,
        dispatcher: TaskDispatcher,
        plans: Sequence[StepPlan],
        *,
        model_name: str,
        clock: Clock = utc_now,
        reporter: ProgressReporter | None = None,
    ) -> None:
        if not plans:
            raise ValueError("At least one step plan is required")
        names = [plan.name for plan in plans]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate step names in roster: {names}")
        self.journal = journal
        self.dispatcher = dispatcher
        self.plans: tuple[StepPlan, ...] = tuple(plans)
        self.model_name = model_name
        self.clock = clock
        self.reporter: ProgressReporter = reporter or NullProgressReporter()
        self._cancel_requested: set[str] = set()

    @property
    def step_names(self) -> tuple[str, ...]:
        return tuple(plan.name for plan in self.plans)

    def state(self, execution_id: str) -> ExecutionState:
        """ジャーナルを再生して現在の実行状態を返す。"""
        return replay(execution_id, self.journal.read_all(execution_id))

    def submit(self, execution_id: str, request: ReviewRequest) -> None:
        """ExecutionSubmitted を記録して実行を作成する。

        Raises:
            ExecutionExistsError: 同じ実行 ID が既に存在する場合。
        """
        state = self.state(execution_id)
        if state.exists:
            raise ExecutionExistsError(execution_id)
        event = Event(
            sequence_number=1,
            step_name=EXECUTION_STEP,
            kind=EventKind.EXECUTION_SUBMITTED,
            payload=submitted_payload(request),
            recorded_at=self.clock(),
        )
        state.apply(event)
        self.journal.append(execution_id, event)
        logger.info("Submitted execution '%s'", execution_id)

    def request_cancel(self, execution_id: str) -> None:
        """実行のキャンセルを要求する。

        ステップ間、または試行の失敗後の再試行前に観測される。存在しない実行と
        終端済みの実行への要求は無視する。
        """
        state = self.state(execution_id)
        if not state.exists or state.status.is_terminal:
            logger.debug("Ignoring cancel request for '%s'", execution_id)
            return
        self._cancel_requested.add(execution_id)

    def cancel_pending(self, execution_id: str) -> bool:
        """実行にキャンセル要求が残っていれば True。"""
        return execution_id in self._cancel_requested

    async def run(self, execution_id: str) -> ExecutionState:
        """実行を終端状態まで進める。

        終端済みの実行はジャーナルに何も追記せずに状態を返す。

        Returns:
            終端状態（Completed または Failed）の ExecutionState。

        Raises:
            ExecutionNotFoundError: 実行がジャーナルに存在しない場合。
            InvalidTransitionError: ジャーナルが状態遷移規則に違反している場合。
            OutOfOrderEventError: 追記の連番が崩れた場合（Executor の不具合）。
        """
        state = self.state(execution_id)
        request = state.request
        if request is None:
            raise ExecutionNotFoundError(execution_id)
        if state.status.is_terminal:
            logger.debug("Execution '%s' is already %s", execution_id, state.status)
            self._cancel_requested.discard(execution_id)
            return state

        recorder = _ExecutionRecorder(
            self.journal,
            state,
            self.clock,
            self.reporter,
            lambda: self.cancel_pending(execution_id),
        )
        for plan in self.plans:
            if state.step(plan.name).status == StepStatus.NOT_STARTED:
                self.reporter.on_step_pending(execution_id, plan.name)

        results: list[StepResult] = []
        for plan in self.plans:
            step = state.step(plan.name)

            if step.status == StepStatus.SUCCEEDED and step.result is not None:
                logger.debug(
                    "Reusing recorded result of step '%s' for '%s'",
                    plan.name,
                    execution_id,
                )
                results.append(step.result)
                continue

            if step.status == StepStatus.EXHAUSTED_RETRIES and step.last_error:
                # 終端の StepFailed の記録後、ExecutionFailed の記録前に中断した
                await self._fail(recorder, plan.name, step.last_error)
                return state

            if self.cancel_pending(execution_id):
                if step.awaiting_retry_decision:
                    await self._close_awaiting_step(recorder, step)
                await self._fail(
                    recorder,
                    plan.name,
                    StepError(
                        message=f"Execution cancelled before step '{plan.name}'",
                        retryable=False,
                        error_type=CANCELLED_ERROR_TYPE,
                    ),
                )
                return state

            outcome = await self._run_step(plan, step, recorder, request, results)
            self.reporter.on_step_complete(execution_id, plan.name, outcome)
            if isinstance(outcome, StepFailure):
                await self._fail(recorder, plan.name, outcome.error)
                return state

            attempt = state.step(plan.name).next_attempt
            await recorder.record(
                plan.name,
                EventKind.STEP_SUCCEEDED,
                step_succeeded_payload(attempt, outcome.result),
            )
            results.append(outcome.result)

        await self._complete(recorder, request, results)
        return state

    async def _run_step(
        self,
        plan: StepPlan,
        step: StepState,
        recorder: _ExecutionRecorder,
        request: ReviewRequest,
        prior_results: list[StepResult],
    ) -> StepOutcome:
        """ステップを記録済みの進捗から再開し、終端の結果まで実行する。"""
        state = recorder.state
        context = ReviewContext(
            execution_id=state.execution_id,
            request=request,
            prior_results=tuple(prior_results),
        )

        resume_delay: float | None
        if step.status == StepStatus.NOT_STARTED:
            await recorder.record(plan.name, EventKind.STEP_STARTED, {})
            resume_delay = None
        elif step.awaiting_retry_decision:
            # 失敗の記録後、再試行判断の記録前に中断した
            next_attempt = step.next_attempt
            if not plan.policy.allows_attempt(next_attempt) and step.last_error:
                await self._close_awaiting_step(recorder, step)
                return StepFailure(error=step.last_error)
            resume_delay = plan.policy.backoff_delay(step.attempts_failed)
            await recorder.on_retry_scheduled(plan.name, next_attempt, resume_delay)
        else:
            resume_delay = step.pending_retry_delay
            logger.info(
                "Resuming step '%s' of '%s' at attempt %d",
                plan.name,
                state.execution_id,
                step.next_attempt,
            )

        return await self.dispatcher.execute(
            plan.adapter,
            context,
            plan.policy,
            start_attempt=state.step(plan.name).next_attempt,
            resume_delay=resume_delay,
            listener=recorder,
        )

    async def _close_awaiting_step(
        self, recorder: _ExecutionRecorder, step: StepState
    ) -> None:
        """再試行判断待ちのステップに、最後の試行を終端とする StepFailed を記録する。"""
        if step.last_error is None:
            return
        await recorder.on_attempt_failed(
            step.name, step.attempts_failed, step.last_error, True
        )

    async def _fail(
        self, recorder: _ExecutionRecorder, step_name: str, error: StepError
    ) -> None:
        execution_id = recorder.state.execution_id
        await recorder.record(
            EXECUTION_STEP,
            EventKind.EXECUTION_FAILED,
            execution_failed_payload(step_name, error),
        )
        self._cancel_requested.discard(execution_id)
        logger.warning(
            "Execution '%s' failed at step '%s': %s",
            execution_id,
            step_name,
            error.message,
        )

    async def _complete(
        self,
        recorder: _ExecutionRecorder,
        request: ReviewRequest,
        results: list[StepResult],
    ) -> None:
        state = recorder.state
        completed_at = self.clock()
        started_at = state.started_at or completed_at
        took_ms = max(0, int((completed_at - started_at).total_seconds() * 1000))
        response = build_response(
            request,
            results,
            generated_at=completed_at,
            took_ms=took_ms,
            model=self.model_name,
        )
        await recorder.record(
            EXECUTION_STEP,
            EventKind.EXECUTION_COMPLETED,
            completed_payload(response),
            recorded_at=completed_at,
        )
        self._cancel_requested.discard(state.execution_id)
        logger.info(
            "Execution '%s' completed: %s",
            state.execution_id,
            response.overall_recommendation.value,
        )
