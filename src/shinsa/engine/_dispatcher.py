"""TaskDispatcher — 試行タイムアウトと指数バックオフ付き再試行でステップを実行する。

1回の試行は anyio.fail_after で policy.attempt_timeout 秒に制限される。
失敗は StepError.retryable で分類し、再試行可能な失敗のみ max_attempts まで
再試行する。試行の失敗と再試行の予約は DispatchListener に通知され、
リスナー（Executor）がジャーナルへ記録する。Dispatcher 自身はジャーナルに触れない。

キャンセル要求は試行の失敗後、バックオフ待機の前に確認する。実行中の試行は
完了またはタイムアウトまで中断しない。
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Final, Protocol

import anyio

from shinsa.models.config import RetryPolicy
from shinsa.models.step_result import StepError, StepFailure, StepOutcome, StepSuccess
from shinsa.steps._base import ReviewContext, StepAdapter

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

CANCELLED_ERROR_TYPE: Final[str] = "cancelled"


class DispatchListener(Protocol):
    """Dispatcher の試行進捗を受け取るリスナー。"""

    async def on_attempt_start(self, step_name: str, attempt: int) -> None:
        """試行 attempt の開始直前に呼ばれる。"""
        ...

    async def on_attempt_failed(
        self, step_name: str, attempt: int, error: StepError, terminal: bool
    ) -> None:
        """試行 attempt の失敗時に呼ばれる。terminal=True なら再試行しない。"""
        ...

    async def on_retry_scheduled(
        self, step_name: str, next_attempt: int, delay_seconds: float
    ) -> None:
        """再試行を予約した時点（待機前）に呼ばれる。"""
        ...

    def cancel_requested(self) -> bool:
        """実行のキャンセルが要求されていれば True。"""
        ...


class _NullListener:
    async def on_attempt_start(self, step_name: str, attempt: int) -> None:
        pass

    async def on_attempt_failed(
        self, step_name: str, attempt: int, error: StepError, terminal: bool
    ) -> None:
        pass

    async def on_retry_scheduled(
        self, step_name: str, next_attempt: int, delay_seconds: float
    ) -> None:
        pass

    def cancel_requested(self) -> bool:
        return False


class TaskDispatcher:
    """ステップアダプターを再試行方針に従って実行する。

    Args:
        sleep: バックオフ待機に使う非同期関数。テストでは待機を記録する関数に差し替える。
    """

    def __init__(self, sleep: SleepFn = anyio.sleep) -> None:
        self._sleep = sleep

    async def execute(
        self,
        adapter: StepAdapter,
        context: ReviewContext,
        policy: RetryPolicy,
        *,
        start_attempt: int = 1,
        resume_delay: float | None = None,
        listener: DispatchListener | None = None,
    ) -> StepOutcome:
        """ステップを成功するか終端失敗になるまで実行する。

        Args:
            adapter: 実行するステップアダプター。
            context: アダプターに渡すレビューコンテキスト。
            policy: 試行タイムアウトと再試行方針。
            start_attempt: 最初に実行する試行番号。再開時は記録済みの失敗数 + 1。
            resume_delay: 最初の試行前に待機する秒数。再開時に記録済みの
                バックオフを再度待つために使う。
            listener: 試行進捗の通知先。

        Returns:
            StepSuccess、終端の StepFailure、またはキャンセル時は
            error_type="cancelled" の StepFailure。
        """
        if start_attempt < 1:
            raise ValueError(f"start_attempt must be >= 1, got {start_attempt}")
        notify = listener if listener is not None else _NullListener()
        step_name = adapter.name
        attempt = start_attempt
        delay = resume_delay

        while True:
            if delay is not None:
                await self._sleep(delay)
            await notify.on_attempt_start(step_name, attempt)
            outcome = await self._attempt(adapter, context, policy, attempt)
            if isinstance(outcome, StepSuccess):
                return outcome

            error = outcome.error
            cancelled = error.retryable and notify.cancel_requested()
            terminal = (
                cancelled
                or not error.retryable
                or not policy.allows_attempt(attempt + 1)
            )
            logger.info(
                "Step '%s' attempt %d failed (%s, %s): %s",
                step_name,
                attempt,
                error.error_type,
                "terminal" if terminal else "retryable",
                error.message,
            )
            await notify.on_attempt_failed(step_name, attempt, error, terminal)
            if cancelled:
                logger.info("Step '%s' cancelled after attempt %d", step_name, attempt)
                return StepFailure(
                    error=StepError(
                        message=(
                            f"Step '{step_name}' cancelled after attempt {attempt} "
                            f"({error.error_type}: {error.message})"
                        ),
                        retryable=False,
                        error_type=CANCELLED_ERROR_TYPE,
                    )
                )
            if terminal:
                return outcome

            delay = policy.backoff_delay(attempt)
            attempt += 1
            await notify.on_retry_scheduled(step_name, attempt, delay)

    async def _attempt(
        self,
        adapter: StepAdapter,
        context: ReviewContext,
        policy: RetryPolicy,
        attempt: int,
    ) -> StepOutcome:
        """1回の試行を実行し、例外とタイムアウトを StepFailure に変換する。"""
        try:
            with anyio.fail_after(policy.attempt_timeout):
                outcome = await adapter.analyze(context)
        except TimeoutError:
            return StepFailure(
                error=StepError(
                    message=(
                        f"Step '{adapter.name}' attempt {attempt} timed out after "
                        f"{policy.attempt_timeout}s"
                    ),
                    retryable=True,
                    error_type="timeout",
                )
            )
        except Exception as exc:
            logger.warning(
                "Step '%s' adapter raised %s instead of returning a failure",
                adapter.name,
                type(exc).__name__,
                exc_info=True,
            )
            return StepFailure(
                error=StepError(
                    message=f"Step '{adapter.name}' adapter raised {type(exc).__name__}: {exc}",
                    retryable=False,
                    error_type="adapter_fault",
                )
            )
        return _check_outcome(adapter.name, outcome)


def _check_outcome(step_name: str, outcome: object) -> StepOutcome:
    """アダプターの戻り値が契約どおりか検証する。"""
    if isinstance(outcome, StepFailure):
        return outcome
    if isinstance(outcome, StepSuccess):
        if outcome.result.step_name == step_name:
            return outcome
        detail = f"result is named '{outcome.result.step_name}'"
    else:
        detail = f"returned {type(outcome).__name__}"
    return StepFailure(
        error=StepError(
            message=f"Step '{step_name}' adapter broke its contract: {detail}",
            retryable=False,
            error_type="adapter_fault",
        )
    )
