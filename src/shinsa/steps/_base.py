"""ステップアダプターの契約。

各ステップは ``analyze(context) -> StepOutcome`` を1つ公開する。アダプターは
入力と外部サービス状態のみに依存し、ジャーナルと同期が崩れうるローカルな可変
キャッシュを持たない。失敗は例外ではなく StepFailure で返す。
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import Field

from shinsa.models._base import ShinsaBaseModel
from shinsa.models.config import STEP_NAME_PATTERN
from shinsa.models.review import ReviewRequest
from shinsa.models.step_result import StepOutcome, StepResult


class ReviewContext(ShinsaBaseModel):
    """ステップに渡される入力。

    Attributes:
        execution_id: 実行 ID（ログ用）。
        request: レビュー要求。
        prior_results: ロスター上で先行する全ステップの結果（ジャーナル由来）。
    """

    execution_id: str = Field(min_length=1)
    request: ReviewRequest
    prior_results: tuple[StepResult, ...] = ()


class StepDefinition(ShinsaBaseModel):
    """ステップの静的な構成情報。

    Attributes:
        name: ステップ名（一意識別子、StepResult.step_name になる）。
        title: 表示名。
        description: ステップの説明。
        system_prompt: 外部サービスに渡すシステムプロンプト。
        temperature: 生成温度。
        uses_prior_results: 先行ステップの結果をプロンプトに含めるか。
        uses_test_summary: テストサマリーをプロンプトに含めるか。
    """

    name: str = Field(pattern=STEP_NAME_PATTERN)
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    system_prompt: str = Field(min_length=1)
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    uses_prior_results: bool = False
    uses_test_summary: bool = False


@runtime_checkable
class StepAdapter(Protocol):
    """ステップアダプターのケイパビリティインターフェース。"""

    @property
    def name(self) -> str:
        """ステップ名。"""
        ...

    async def analyze(self, context: ReviewContext) -> StepOutcome:
        """レビューコンテキストを分析し、StepSuccess か StepFailure を返す。

        例外は送出しない。送出した場合は契約違反として終端エラーに分類される。
        """
        ...
