"""FailingTestsGate のテスト。"""

from __future__ import annotations

from unittest.mock import AsyncMock

from shinsa.models.review import ReviewRequest, TestSummary
from shinsa.models.step_result import StepSuccess
from shinsa.models.verdict import Recommendation, RiskLevel
from shinsa.steps import DeterministicStepAdapter, FailingTestsGate, ReviewContext


def _make_context(summary: TestSummary | None) -> ReviewContext:
    return ReviewContext(
        execution_id="exec-1",
        request=ReviewRequest(pr_title="Fix bug", diff="+ x", test_summary=summary),
    )


def _summary(*, passed: bool, failed: int = 0) -> TestSummary:
    return TestSummary(passed=passed, total_tests=10, failed_tests=failed, duration_ms=120)


class TestFailingTestsGate:
    """テスト失敗時の Block 判定と委譲を検証。"""

    async def test_failing_tests_block(self) -> None:
        gate = FailingTestsGate(DeterministicStepAdapter("test-quality"))
        outcome = await gate.analyze(_make_context(_summary(passed=False, failed=2)))
        assert isinstance(outcome, StepSuccess)
        assert outcome.result.recommendation == Recommendation.BLOCK
        assert outcome.result.risk_level == RiskLevel.HIGH
        assert outcome.result.step_name == "test-quality"
        assert outcome.result.findings[0] == "Tests are failing - 2 out of 10 tests failed"
        assert len(outcome.result.findings) == 3

    async def test_failing_tests_skip_inner(self) -> None:
        """テスト失敗時は内側のアダプターを呼ばない。"""
        inner = DeterministicStepAdapter("test-quality")
        inner.analyze = AsyncMock()  # type: ignore[method-assign]
        await FailingTestsGate(inner).analyze(
            _make_context(_summary(passed=False, failed=1))
        )
        inner.analyze.assert_not_called()

    async def test_passing_tests_delegate(self) -> None:
        inner = DeterministicStepAdapter("test-quality")
        outcome = await FailingTestsGate(inner).analyze(
            _make_context(_summary(passed=True))
        )
        assert isinstance(outcome, StepSuccess)
        assert outcome.result.recommendation == Recommendation.APPROVE

    async def test_missing_summary_delegates(self) -> None:
        """test_summary が無い要求はテスト成功として扱う。"""
        outcome = await FailingTestsGate(
            DeterministicStepAdapter("test-quality")
        ).analyze(_make_context(None))
        assert isinstance(outcome, StepSuccess)
        assert outcome.result.recommendation == Recommendation.APPROVE

    def test_name_delegates(self) -> None:
        assert FailingTestsGate(DeterministicStepAdapter("test-quality")).name == (
            "test-quality"
        )
