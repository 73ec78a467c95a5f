"""FailingTestsGate — テスト失敗時に外部呼び出しなしで Block を返すゲート。

test-quality ステップをラップする。test_summary.passed=false の要求には
内側のアダプターを呼ばずに Block / High を返す。test_summary が無い要求は
テスト成功として扱い、内側のアダプターに委譲する。
"""

from __future__ import annotations

from shinsa.models.step_result import StepOutcome, StepResult, StepSuccess
from shinsa.models.verdict import Recommendation, RiskLevel
from shinsa.steps._base import ReviewContext, StepAdapter


class FailingTestsGate:
    """失敗テストを検出したら即座に Block するステップアダプター。"""

    def __init__(self, inner: StepAdapter) -> None:
        self.inner = inner

    @property
    def name(self) -> str:
        return self.inner.name

    async def analyze(self, context: ReviewContext) -> StepOutcome:
        summary = context.request.test_summary
        if summary is None or summary.passed:
            return await self.inner.analyze(context)

        return StepSuccess(
            result=StepResult(
                step_name=self.name,
                risk_level=RiskLevel.HIGH,
                recommendation=Recommendation.BLOCK,
                findings=[
                    f"Tests are failing - {summary.failed_tests} out of "
                    f"{summary.total_tests} tests failed",
                    "All tests must pass before the PR can be approved",
                    "Fix the failing tests and ensure the build is green",
                ],
            )
        )
