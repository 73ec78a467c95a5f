"""ExecutionClient — 呼び出し側（CLI 等）に公開する実行インターフェース。

submit で要求を検証して実行を作成し、await_result で完全な ReviewResponse か
失敗ステップを名指すエラーのどちらかを返す。部分的な応答は返さない。
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Mapping
from typing import Any

import anyio
from anyio import to_thread
from pydantic import ValidationError

from shinsa.engine._executor import ExecutionNotFoundError, WorkflowExecutor
from shinsa.engine._worker import WorkerPool
from shinsa.journal._replay import ExecutionState
from shinsa.models.event import ExecutionStatus
from shinsa.models.review import ReviewRequest, ReviewResponse
from shinsa.models.step_result import StepError

logger = logging.getLogger(__name__)


class RequestValidationError(Exception):
    """ReviewRequest の検証に失敗した。実行は作成されない。"""

    def __init__(self, cause: ValidationError) -> None:
        self.cause = cause
        super().__init__(f"Invalid review request: {cause}")


class ExecutionFailedError(Exception):
    """実行が失敗ステップで終了した。

    Attributes:
        execution_id: 実行 ID。
        step: 失敗したステップ名。
        error: 最後の StepError。
    """

    def __init__(self, execution_id: str, step: str, error: StepError) -> None:
        self.execution_id = execution_id
        self.step = step
        self.error = error
        super().__init__(
            f"Execution '{execution_id}' failed at step '{step}' "
            f"({error.error_type}): {error.message}"
        )


class AwaitTimeoutError(TimeoutError):
    """await_result の待機期限内に実行が終端状態に達しなかった。

    実行自体はキャンセルされず継続する。
    """

    def __init__(self, execution_id: str, timeout: float) -> None:
        self.execution_id = execution_id
        self.timeout = timeout
        super().__init__(
            f"Execution '{execution_id}' did not finish within {timeout}s"
        )


def new_execution_id() -> str:
    return uuid.uuid4().hex


class ExecutionClient:
    """WorkflowExecutor と WorkerPool をまとめた実行クライアント。

    Args:
        executor: ワークフロー実行器。
        pool: 起動済みのワーカープール。
        id_factory: 実行 ID の生成関数。
    """

    def __init__(
        self,
        executor: WorkflowExecutor,
        pool: WorkerPool,
        *,
        id_factory: Callable[[], str] = new_execution_id,
    ) -> None:
        self.executor = executor
        self.pool = pool
        self.id_factory = id_factory

    async def submit(self, request: ReviewRequest | Mapping[str, Any]) -> str:
        """要求を検証し、実行を作成してワーカープールに積む。

        Args:
            request: ReviewRequest、または camelCase / snake_case キーの辞書。

        Returns:
            新しい実行 ID。

        Raises:
            RequestValidationError: 要求が不正な場合。ジャーナルには何も記録しない。
        """
        if not isinstance(request, ReviewRequest):
            try:
                request = ReviewRequest.model_validate(request)
            except ValidationError as exc:
                raise RequestValidationError(exc) from exc

        execution_id = self.id_factory()
        await to_thread.run_sync(self.executor.submit, execution_id, request)
        self.pool.dispatch(execution_id)
        return execution_id

    async def await_result(
        self, execution_id: str, timeout: float | None = None
    ) -> ReviewResponse:
        """実行の終端を待ち、ReviewResponse を返す。

        Args:
            execution_id: 実行 ID。
            timeout: 待機秒数の上限。None なら無期限。

        Raises:
            ExecutionNotFoundError: 実行が存在しない場合。
            AwaitTimeoutError: timeout 内に終端状態に達しなかった場合。
            ExecutionFailedError: 実行が失敗で終了した場合。
        """
        state = self.describe(execution_id)
        if not state.status.is_terminal:
            future = self.pool.dispatch(execution_id)
            try:
                with anyio.fail_after(timeout):
                    state = await asyncio.shield(future)
            except TimeoutError as exc:
                if timeout is None:
                    raise
                raise AwaitTimeoutError(execution_id, timeout) from exc
        return _result_of(state)

    def cancel(self, execution_id: str) -> None:
        """実行のキャンセルを要求する。実行中の試行の完了後に観測される。"""
        self.executor.request_cancel(execution_id)

    def resume_incomplete(self) -> list[str]:
        """ジャーナル上の未完了の実行をすべてワーカープールに積む。

        Returns:
            再開した実行 ID のリスト。
        """
        resumed: list[str] = []
        for execution_id in self.executor.journal.list_executions():
            state = self.executor.state(execution_id)
            if state.exists and not state.status.is_terminal:
                logger.info("Resuming execution '%s'", execution_id)
                self.pool.dispatch(execution_id)
                resumed.append(execution_id)
        return resumed

    def describe(self, execution_id: str) -> ExecutionState:
        """ジャーナルから導出した実行状態を返す。

        Raises:
            ExecutionNotFoundError: 実行が存在しない場合。
        """
        state = self.executor.state(execution_id)
        if not state.exists:
            raise ExecutionNotFoundError(execution_id)
        return state


def _result_of(state: ExecutionState) -> ReviewResponse:
    if state.status == ExecutionStatus.COMPLETED and state.response is not None:
        return state.response
    if state.failure is not None:
        raise ExecutionFailedError(
            state.execution_id, state.failure.step, state.failure.error
        )
    raise RuntimeError(
        f"Execution '{state.execution_id}' ended in unexpected state {state.status}"
    )
