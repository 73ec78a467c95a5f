"""ステップ出力パーサー — 外部サービス応答の StepResult スキーマ検証。

JSON として解釈できない応答は一時的な不正応答として再試行対象、
JSON として解釈できるがスキーマに適合しない応答はスキーマ違反として終端エラーにする。
値の黙った補完や既定値での置換は行わない。
"""

from __future__ import annotations

import re
from typing import Final

from pydantic import ValidationError
from pydantic_core import from_json

from shinsa.models.step_result import (
    StepError,
    StepFailure,
    StepOutcome,
    StepResult,
    StepSuccess,
)

_CODE_FENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"^\s*```(?:json)?\s*\n(?P<body>.*?)\n\s*```\s*$", re.DOTALL
)

_OUTPUT_FIELDS: Final[frozenset[str]] = frozenset(
    {"riskLevel", "risk_level", "recommendation", "findings"}
)


def _strip_code_fence(text: str) -> str:
    """Markdown のコードフェンスで囲まれている場合は中身を取り出す。"""
    match = _CODE_FENCE_RE.match(text)
    return match.group("body") if match else text


def parse_step_output(step_name: str, raw: str) -> StepOutcome:
    """外部サービスの生テキスト応答を StepOutcome に変換する。

    step_name はアダプター側で設定する。応答中の agentName 等の名前フィールドや
    未知のフィールドは判定に使わず無視する。

    Args:
        step_name: 結果を生成したステップ名。
        raw: 外部サービスの応答テキスト。

    Returns:
        StepSuccess、または StepFailure（malformed_response は再試行可、
        schema_violation は再試行不可）。
    """
    try:
        data = from_json(_strip_code_fence(raw))
    except ValueError as exc:
        return StepFailure(
            error=StepError(
                message=f"Step '{step_name}' returned a response that is not valid JSON: {exc}",
                retryable=True,
                error_type="malformed_response",
            )
        )

    if not isinstance(data, dict):
        return _schema_violation(
            step_name, f"expected a JSON object, got {type(data).__name__}"
        )

    fields = {k: v for k, v in data.items() if k in _OUTPUT_FIELDS}
    try:
        result = StepResult.model_validate({**fields, "stepName": step_name})
    except ValidationError as exc:
        return _schema_violation(step_name, _summarize(exc))
    return StepSuccess(result=result)


def _schema_violation(step_name: str, detail: str) -> StepFailure:
    return StepFailure(
        error=StepError(
            message=f"Step '{step_name}' response violates the StepResult schema: {detail}",
            retryable=False,
            error_type="schema_violation",
        )
    )


def _summarize(exc: ValidationError) -> str:
    """ValidationError を1行の要約に変換する。"""
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"]) or "(root)"
        parts.append(f"{loc}: {err['msg']}")
    return "; ".join(parts)
