"""DeterministicStepAdapter — 外部呼び出しを行わない決定的なステップアダプター。

開発・テスト用のバリアント。同じ入力に常に同じ判定を返す。
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType
from typing import Final

from shinsa.models.step_result import StepOutcome, StepResult, StepSuccess
from shinsa.models.verdict import Recommendation, RiskLevel
from shinsa.steps._base import ReviewContext

CANNED_FINDINGS: Final[Mapping[str, tuple[str, ...]]] = MappingProxyType(
    {
        "code-quality": (
            "Function names are clear and descriptive",
            "Code follows single responsibility principle",
            "Error handling is present and appropriate",
        ),
        "test-quality": (
            "Tests cover main functionality",
            "Edge cases are tested",
            "Test names are descriptive",
        ),
        "security": (
            "No hardcoded secrets detected",
            "Input validation is present",
            "No SQL injection vulnerabilities found",
        ),
        "duplication": ("No significant duplicated blocks detected",),
        "complexity": ("Functions stay within reasonable complexity bounds",),
        "documentation": ("Public interfaces are documented",),
        "priority": ("P3: No blocking issues reported by other agents",),
    }
)
"""ステップ名ごとの定型の指摘。未登録のステップは汎用の文言を使う。"""


class DeterministicStepAdapter:
    """定型の StepResult を返すステップアダプター。

    result を指定しない場合は Approve / Low と CANNED_FINDINGS の指摘を返す。
    """

    def __init__(self, name: str, result: StepResult | None = None) -> None:
        self._name = name
        if result is None:
            findings = CANNED_FINDINGS.get(name, (f"Deterministic verdict for {name}",))
            result = StepResult(
                step_name=name,
                risk_level=RiskLevel.LOW,
                recommendation=Recommendation.APPROVE,
                findings=list(findings),
            )
        elif result.step_name != name:
            raise ValueError(
                f"Canned result step_name '{result.step_name}' does not match adapter '{name}'"
            )
        self._result = result

    @property
    def name(self) -> str:
        return self._name

    async def analyze(self, context: ReviewContext) -> StepOutcome:
        return StepSuccess(result=self._result)
