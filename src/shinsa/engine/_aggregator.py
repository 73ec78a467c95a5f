"""Aggregator — ステップ結果から総合推奨アクションを導出する純粋関数。

優先順位のみで決まる（Block > RequestChanges > Approve）。件数や入力順序には
依存しないため、集約は入力の並べ替えに対して不変。
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from shinsa.models.review import ResponseMetadata, ReviewRequest, ReviewResponse
from shinsa.models.step_result import StepResult
from shinsa.models.verdict import Recommendation


class InvalidInputError(Exception):
    """集約対象が空、または推奨アクションが列挙外の値を含む。

    Executor の不具合を示す。正常な実行では到達しない。
    """


def aggregate(results: Sequence[StepResult]) -> Recommendation:
    """ステップ結果列を総合推奨アクションに集約する。

    Args:
        results: ロスター順のステップ結果。

    Returns:
        いずれかが Block なら Block、そうでなくいずれかが RequestChanges なら
        RequestChanges、それ以外は Approve。

    Raises:
        InvalidInputError: results が空、または列挙外の推奨アクションを含む場合。
    """
    if not results:
        raise InvalidInputError("Cannot aggregate an empty result set")

    overall = Recommendation.APPROVE
    for result in results:
        recommendation = result.recommendation
        if not isinstance(recommendation, Recommendation):
            raise InvalidInputError(
                f"Step '{result.step_name}' has a recommendation outside the enum: "
                f"{recommendation!r}"
            )
        overall = max(overall, recommendation)
    return overall


def build_response(
    request: ReviewRequest,
    results: Sequence[StepResult],
    *,
    generated_at: datetime,
    took_ms: int,
    model: str,
) -> ReviewResponse:
    """全ステップ結果から ReviewResponse を組み立てる。

    Raises:
        InvalidInputError: results が空、または列挙外の推奨アクションを含む場合。
    """
    return ReviewResponse(
        overall_recommendation=aggregate(results),
        agents=list(results),
        metadata=ResponseMetadata(
            generated_at=generated_at,
            took_ms=took_ms,
            model=model,
        ),
        pr_number=request.pr_number,
        pr_title=request.pr_title,
        author=request.author,
    )
