"""TaskDispatcher のテスト。

待機は記録用の sleep 関数に差し替え、実時間を消費せずにバックオフを検証する。
"""

from __future__ import annotations

from collections.abc import Sequence

import anyio
import pytest

from shinsa.engine import TaskDispatcher
from shinsa.models.config import RetryPolicy
from shinsa.models.review import ReviewRequest
from shinsa.models.step_result import (
    StepError,
    StepFailure,
    StepOutcome,
    StepResult,
    StepSuccess,
)
from shinsa.models.verdict import Recommendation, RiskLevel
from shinsa.steps import ReviewContext


class _ScriptedAdapter:
    """呼び出しごとに決められた結果を返すアダプター。例外は送出する。"""

    def __init__(self, name: str, script: Sequence[StepOutcome | BaseException]) -> None:
        self._name = name
        self._script = list(script)
        self.calls = 0

    @property
    def name(self) -> str:
        return self._name

    async def analyze(self, context: ReviewContext) -> StepOutcome:
        item = self._script[min(self.calls, len(self._script) - 1)]
        self.calls += 1
        if isinstance(item, BaseException):
            raise item
        return item


class _SlowAdapter:
    name = "security"

    async def analyze(self, context: ReviewContext) -> StepOutcome:
        await anyio.sleep(10)
        return _success()


class _RecordingSleep:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class _RecordingListener:
    """通知を記録する。cancel_after 回目の失敗以降はキャンセル要求ありと答える。"""

    def __init__(self, cancel_after: int | None = None) -> None:
        self.calls: list[tuple[object, ...]] = []
        self._cancel_after = cancel_after
        self._failures = 0

    async def on_attempt_start(self, step_name: str, attempt: int) -> None:
        self.calls.append(("start", attempt))

    async def on_attempt_failed(
        self, step_name: str, attempt: int, error: StepError, terminal: bool
    ) -> None:
        self.calls.append(("failed", attempt, error.error_type, terminal))

    async def on_retry_scheduled(
        self, step_name: str, next_attempt: int, delay_seconds: float
    ) -> None:
        self.calls.append(("retry", next_attempt, delay_seconds))

    def cancel_requested(self) -> bool:
        self._failures += 1
        return self._cancel_after is not None and self._failures >= self._cancel_after


def _success(name: str = "security") -> StepSuccess:
    return StepSuccess(
        result=StepResult(
            step_name=name,
            risk_level=RiskLevel.LOW,
            recommendation=Recommendation.APPROVE,
            findings=[],
        )
    )


def _transient() -> StepFailure:
    return StepFailure(
        error=StepError(message="HTTP 503", retryable=True, error_type="http_error")
    )


def _permanent() -> StepFailure:
    return StepFailure(
        error=StepError(message="bad schema", retryable=False, error_type="schema_violation")
    )


def _make_context() -> ReviewContext:
    return ReviewContext(
        execution_id="exec-1", request=ReviewRequest(pr_title="Fix", diff="+ x")
    )


def _policy(**kwargs: object) -> RetryPolicy:
    defaults: dict[str, object] = {
        "attempt_timeout": 5.0,
        "initial_backoff": 1.0,
        "backoff_multiplier": 2.0,
        "max_attempts": 5,
    }
    defaults.update(kwargs)
    return RetryPolicy.model_validate(defaults)


# =============================================================================
# 再試行
# =============================================================================


class TestRetry:
    """一時的な失敗の再試行を検証。"""

    async def test_success_first_attempt(self) -> None:
        sleep = _RecordingSleep()
        listener = _RecordingListener()
        adapter = _ScriptedAdapter("security", [_success()])
        outcome = await TaskDispatcher(sleep).execute(
            adapter, _make_context(), _policy(), listener=listener
        )
        assert isinstance(outcome, StepSuccess)
        assert sleep.delays == []
        assert listener.calls == [("start", 1)]

    async def test_transient_failures_then_success(self) -> None:
        """k 回の一時的失敗で k 回の再試行予約と増加するバックオフが発生する。"""
        sleep = _RecordingSleep()
        listener = _RecordingListener()
        adapter = _ScriptedAdapter(
            "security", [_transient(), _transient(), _transient(), _success()]
        )
        outcome = await TaskDispatcher(sleep).execute(
            adapter, _make_context(), _policy(), listener=listener
        )
        assert isinstance(outcome, StepSuccess)
        assert adapter.calls == 4
        assert sleep.delays == [1.0, 2.0, 4.0]
        retries = [c for c in listener.calls if c[0] == "retry"]
        assert retries == [("retry", 2, 1.0), ("retry", 3, 2.0), ("retry", 4, 4.0)]

    async def test_event_order(self) -> None:
        listener = _RecordingListener()
        adapter = _ScriptedAdapter("security", [_transient(), _success()])
        await TaskDispatcher(_RecordingSleep()).execute(
            adapter, _make_context(), _policy(), listener=listener
        )
        assert listener.calls == [
            ("start", 1),
            ("failed", 1, "http_error", False),
            ("retry", 2, 1.0),
            ("start", 2),
        ]

    async def test_max_backoff_caps_delay(self) -> None:
        sleep = _RecordingSleep()
        adapter = _ScriptedAdapter("security", [_transient()] * 4 + [_success()])
        await TaskDispatcher(sleep).execute(
            adapter, _make_context(), _policy(max_backoff=3.0)
        )
        assert sleep.delays == [1.0, 2.0, 3.0, 3.0]

    async def test_exhausts_max_attempts(self) -> None:
        sleep = _RecordingSleep()
        listener = _RecordingListener()
        adapter = _ScriptedAdapter("security", [_transient()])
        outcome = await TaskDispatcher(sleep).execute(
            adapter, _make_context(), _policy(max_attempts=3), listener=listener
        )
        assert isinstance(outcome, StepFailure)
        assert adapter.calls == 3
        assert len(sleep.delays) == 2
        assert listener.calls[-1] == ("failed", 3, "http_error", True)

    async def test_unbounded_attempts(self) -> None:
        adapter = _ScriptedAdapter("security", [_transient()] * 20 + [_success()])
        outcome = await TaskDispatcher(_RecordingSleep()).execute(
            adapter, _make_context(), _policy(max_attempts=None)
        )
        assert isinstance(outcome, StepSuccess)
        assert adapter.calls == 21


class TestTerminalFailures:
    """再試行しない失敗を検証。"""

    async def test_non_retryable_not_retried(self) -> None:
        sleep = _RecordingSleep()
        listener = _RecordingListener()
        adapter = _ScriptedAdapter("security", [_permanent(), _success()])
        outcome = await TaskDispatcher(sleep).execute(
            adapter, _make_context(), _policy(), listener=listener
        )
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "schema_violation"
        assert adapter.calls == 1
        assert sleep.delays == []
        assert listener.calls == [("start", 1), ("failed", 1, "schema_violation", True)]

    async def test_adapter_exception_is_fault(self) -> None:
        adapter = _ScriptedAdapter("security", [RuntimeError("boom"), _success()])
        outcome = await TaskDispatcher(_RecordingSleep()).execute(
            adapter, _make_context(), _policy()
        )
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "adapter_fault"
        assert not outcome.error.retryable
        assert "RuntimeError" in outcome.error.message
        assert adapter.calls == 1

    async def test_wrong_step_name_is_fault(self) -> None:
        adapter = _ScriptedAdapter("security", [_success("code-quality")])
        outcome = await TaskDispatcher(_RecordingSleep()).execute(
            adapter, _make_context(), _policy()
        )
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "adapter_fault"
        assert "code-quality" in outcome.error.message

    async def test_timeout_is_retryable(self) -> None:
        outcome = await TaskDispatcher(_RecordingSleep()).execute(
            _SlowAdapter(), _make_context(), _policy(attempt_timeout=0.01, max_attempts=1)
        )
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "timeout"
        assert outcome.error.retryable


class TestResume:
    """途中の試行番号からの再開を検証。"""

    async def test_start_attempt_and_resume_delay(self) -> None:
        sleep = _RecordingSleep()
        listener = _RecordingListener()
        adapter = _ScriptedAdapter("security", [_success()])
        await TaskDispatcher(sleep).execute(
            adapter,
            _make_context(),
            _policy(),
            start_attempt=3,
            resume_delay=4.0,
            listener=listener,
        )
        assert sleep.delays == [4.0]
        assert listener.calls == [("start", 3)]

    async def test_resumed_attempts_count_toward_limit(self) -> None:
        adapter = _ScriptedAdapter("security", [_transient()])
        outcome = await TaskDispatcher(_RecordingSleep()).execute(
            adapter, _make_context(), _policy(max_attempts=3), start_attempt=3
        )
        assert isinstance(outcome, StepFailure)
        assert adapter.calls == 1

    async def test_invalid_start_attempt(self) -> None:
        adapter = _ScriptedAdapter("security", [_success()])
        with pytest.raises(ValueError, match="start_attempt"):
            await TaskDispatcher().execute(
                adapter, _make_context(), _policy(), start_attempt=0
            )


class TestCancellation:
    """試行失敗後のキャンセル要求の確認を検証。"""

    async def test_cancel_stops_unbounded_retries(self) -> None:
        """max_attempts=None でも、キャンセル要求後は再試行せず終了する。"""
        sleep = _RecordingSleep()
        listener = _RecordingListener(cancel_after=2)
        adapter = _ScriptedAdapter("security", [_transient()])
        outcome = await TaskDispatcher(sleep).execute(
            adapter, _make_context(), _policy(max_attempts=None), listener=listener
        )
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "cancelled"
        assert not outcome.error.retryable
        assert "http_error" in outcome.error.message
        assert adapter.calls == 2
        assert sleep.delays == [1.0]
        assert listener.calls[-1] == ("failed", 2, "http_error", True)
        assert [c for c in listener.calls if c[0] == "retry"] == [("retry", 2, 1.0)]

    async def test_non_retryable_failure_keeps_its_error(self) -> None:
        listener = _RecordingListener(cancel_after=1)
        adapter = _ScriptedAdapter("security", [_permanent()])
        outcome = await TaskDispatcher(_RecordingSleep()).execute(
            adapter, _make_context(), _policy(), listener=listener
        )
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "schema_violation"

    async def test_success_ignores_cancel_request(self) -> None:
        """実行中の試行は中断しない。成功した試行はそのまま返す。"""
        listener = _RecordingListener(cancel_after=1)
        adapter = _ScriptedAdapter("security", [_success()])
        outcome = await TaskDispatcher(_RecordingSleep()).execute(
            adapter, _make_context(), _policy(), listener=listener
        )
        assert isinstance(outcome, StepSuccess)
