"""レビュー要求・レビュー応答の定義。

実行の入力（ReviewRequest）と最終出力（ReviewResponse）。いずれも不変の値
オブジェクトで、ワイヤ形式のフィールド名は camelCase。
"""

from __future__ import annotations

from datetime import datetime

from pydantic import Field, model_validator

from shinsa.models._base import WireModel
from shinsa.models.step_result import StepResult
from shinsa.models.verdict import Recommendation


class TestSummary(WireModel):
    """プルリクエストに付随するテスト実行サマリー。

    Attributes:
        passed: テストが全て成功したか。
        total_tests: テスト総数（非負）。
        failed_tests: 失敗したテスト数（非負、total_tests 以下）。
        duration_ms: 実行時間（ミリ秒、非負）。
    """

    # pytest がテストクラスとして収集しないようにする
    __test__ = False

    passed: bool
    total_tests: int = Field(ge=0)
    failed_tests: int = Field(ge=0)
    duration_ms: int = Field(ge=0)

    @model_validator(mode="after")
    def check_failed_within_total(self) -> TestSummary:
        """failed_tests が total_tests を超えないことを検証する。"""
        if self.failed_tests > self.total_tests:
            raise ValueError("failedTests must not exceed totalTests")
        return self


class ReviewRequest(WireModel):
    """レビュー対象のコード変更。

    Attributes:
        pr_number: プルリクエスト番号（オプション、正の値）。
        pr_title: プルリクエストのタイトル。
        pr_description: プルリクエストの説明。省略時は空文字列。
        author: 作成者（オプション）。
        diff: レビュー対象の差分。空文字列は不可。
        test_summary: テスト実行サマリー（オプション）。
    """

    pr_number: int | None = Field(default=None, gt=0)
    pr_title: str = Field(min_length=1)
    pr_description: str = ""
    author: str | None = None
    diff: str = Field(min_length=1)
    test_summary: TestSummary | None = None


class ResponseMetadata(WireModel):
    """レビュー実行のメタデータ。

    Attributes:
        generated_at: 応答生成時刻（ISO 8601）。
        took_ms: 最初のステップ開始から完了までの所要時間（ミリ秒）。
        model: 使用した外部サービスのモデル識別子。
    """

    generated_at: datetime
    took_ms: int = Field(ge=0)
    model: str = Field(min_length=1)


class ReviewResponse(WireModel):
    """レビュー全体の最終結果。

    agents は全ステップの結果をロスター順に保持する。部分的な応答は存在しない。

    Attributes:
        overall_recommendation: 集約された推奨アクション。
        agents: 各ステップの結果。
        metadata: 実行メタデータ。
        pr_number: 要求から引き継いだ PR 番号。
        pr_title: 要求から引き継いだ PR タイトル。
        author: 要求から引き継いだ作成者。
    """

    overall_recommendation: Recommendation
    agents: list[StepResult] = Field(min_length=1)
    metadata: ResponseMetadata
    pr_number: int | None = None
    pr_title: str | None = None
    author: str | None = None
