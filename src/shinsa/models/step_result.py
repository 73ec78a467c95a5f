"""ステップ実行結果の定義。

StepResult はステップが生成する構造化判定。StepOutcome は
``Result<StepResult, StepError>`` に相当する判別共用体で、
status フィールドの固定値で型を一意に特定する。
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import Field, field_validator

from shinsa.models._base import ShinsaBaseModel, WireModel, normalize_enum_value
from shinsa.models.verdict import Recommendation, RiskLevel


class StepResult(WireModel):
    """1ステップの分析結果。ワイヤ形式は camelCase。

    recommendation と risk_level は固定の列挙値のみ受け付ける。
    大文字小文字や区切り文字の違いは正規化するが、列挙外の値は拒否する。

    Attributes:
        step_name: 結果を生成したステップ名。下流で辞書キーとして使用される。
        risk_level: リスクレベル（Low/Medium/High）。
        recommendation: 推奨アクション（Approve/RequestChanges/Block）。
        findings: 根拠・説明のリスト。空リストは許容するが省略は不可。
    """

    step_name: str = Field(min_length=1)
    risk_level: RiskLevel
    recommendation: Recommendation
    findings: list[str]

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk_level(cls, v: object) -> object:
        """RiskLevel 入力を正規化する。LLM が "HIGH" を出力する場合に対応する。"""
        return normalize_enum_value(v, RiskLevel)

    @field_validator("recommendation", mode="before")
    @classmethod
    def normalize_recommendation(cls, v: object) -> object:
        """Recommendation 入力を正規化する。"REQUEST_CHANGES" 等に対応する。"""
        return normalize_enum_value(v, Recommendation)


class StepError(ShinsaBaseModel):
    """ステップアダプターが返す構造化エラー。

    Attributes:
        message: エラーメッセージ。
        retryable: 一時的な障害（再試行対象）なら True。
        error_type: 機械可読なエラー種別（例: "timeout", "schema_violation"）。
    """

    message: str = Field(min_length=1)
    retryable: bool
    error_type: str = Field(min_length=1)


class StepSuccess(ShinsaBaseModel):
    """ステップ実行の成功結果。判別キー: status="success"。"""

    status: Literal["success"] = "success"
    result: StepResult


class StepFailure(ShinsaBaseModel):
    """ステップ実行の失敗結果。判別キー: status="failure"。"""

    status: Literal["failure"] = "failure"
    error: StepError


StepOutcome = Annotated[
    Union[StepSuccess, StepFailure],
    Field(discriminator="status"),
]
"""ステップ結果の判別共用体。status フィールドの値で型を自動選択する。"""
