"""推奨アクション（Recommendation）とリスクレベル（RiskLevel）の定義。

推奨アクションの優先順位: Block > RequestChanges > Approve。
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from types import MappingProxyType
from typing import Final


RECOMMENDATION_PRECEDENCE: Final[Mapping[str, int]] = MappingProxyType(
    {
        "Approve": 0,
        "RequestChanges": 1,
        "Block": 2,
    }
)
"""推奨アクションの優先順位。値が大きいほど集約時に優先される。"""


class Recommendation(StrEnum):
    """ステップおよびレビュー全体の推奨アクション。PascalCase で内部保持。

    順序関係: Block > RequestChanges > Approve
    比較演算は RECOMMENDATION_PRECEDENCE に基づくカスタム実装を提供する。
    非 Recommendation 型との比較は TypeError を送出する。
    """

    APPROVE = "Approve"
    REQUEST_CHANGES = "RequestChanges"
    BLOCK = "Block"

    @property
    def precedence(self) -> int:
        """RECOMMENDATION_PRECEDENCE から優先順位を取得する。"""
        return RECOMMENDATION_PRECEDENCE[self.value]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Recommendation):
            raise TypeError(
                f"'<' not supported between instances of 'Recommendation' and '{type(other).__name__}'"
            )
        return self.precedence < other.precedence

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Recommendation):
            raise TypeError(
                f"'<=' not supported between instances of 'Recommendation' and '{type(other).__name__}'"
            )
        return self.precedence <= other.precedence

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Recommendation):
            raise TypeError(
                f"'>' not supported between instances of 'Recommendation' and '{type(other).__name__}'"
            )
        return self.precedence > other.precedence

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Recommendation):
            raise TypeError(
                f"'>=' not supported between instances of 'Recommendation' and '{type(other).__name__}'"
            )
        return self.precedence >= other.precedence


class RiskLevel(StrEnum):
    """ステップが評価した変更のリスクレベル。"""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
