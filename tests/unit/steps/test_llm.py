"""LLMStepAdapter のテスト。

pydantic-ai の TestModel で外部呼び出しなしに応答を与え、例外の分類は Agent を
モックして検証する。
"""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from pydantic_ai.exceptions import (
    ModelAPIError,
    ModelHTTPError,
    UnexpectedModelBehavior,
    UserError,
)
from pydantic_ai.models.test import TestModel as StubModel

from shinsa.models.review import ReviewRequest
from shinsa.models.step_result import StepFailure, StepSuccess
from shinsa.models.verdict import Recommendation
from shinsa.steps import STEP_CATALOG, LLMStepAdapter, ReviewContext, StepAdapter


def _make_context() -> ReviewContext:
    return ReviewContext(
        execution_id="exec-1",
        request=ReviewRequest(pr_title="Add cache", diff="+ cache = {}"),
    )


def _make_adapter(output_text: str) -> LLMStepAdapter:
    return LLMStepAdapter(
        STEP_CATALOG["security"], model=StubModel(custom_output_text=output_text)
    )


def _patched_agent(side_effect: BaseException) -> tuple[object, MagicMock]:
    agent_cls = MagicMock()
    agent_cls.return_value.run = AsyncMock(side_effect=side_effect)
    return patch("shinsa.steps._llm.Agent", agent_cls), agent_cls


# =============================================================================
# 応答の変換
# =============================================================================


class TestResponses:
    """TestModel の応答から StepOutcome への変換を検証。"""

    async def test_valid_json_succeeds(self) -> None:
        text = json.dumps(
            {"riskLevel": "Medium", "recommendation": "RequestChanges", "findings": ["x"]}
        )
        outcome = await _make_adapter(text).analyze(_make_context())
        assert isinstance(outcome, StepSuccess)
        assert outcome.result.step_name == "security"
        assert outcome.result.recommendation == Recommendation.REQUEST_CHANGES

    async def test_non_json_is_retryable(self) -> None:
        outcome = await _make_adapter("I think it looks fine").analyze(_make_context())
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "malformed_response"
        assert outcome.error.retryable

    async def test_schema_violation_is_terminal(self) -> None:
        text = json.dumps({"riskLevel": "Low", "recommendation": "Ship it", "findings": []})
        outcome = await _make_adapter(text).analyze(_make_context())
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "schema_violation"
        assert not outcome.error.retryable

    def test_satisfies_protocol(self) -> None:
        assert isinstance(_make_adapter("{}"), StepAdapter)


class TestSettings:
    """構築時の設定の反映を検証。"""

    def test_temperature_defaults_to_definition(self) -> None:
        adapter = LLMStepAdapter(STEP_CATALOG["security"], model="test")
        assert adapter.temperature == 0.1

    def test_temperature_override(self) -> None:
        adapter = LLMStepAdapter(STEP_CATALOG["security"], model="test", temperature=0.7)
        assert adapter.temperature == 0.7

    async def test_temperature_passed_to_run(self) -> None:
        agent_cls = MagicMock()
        output = json.dumps({"riskLevel": "Low", "recommendation": "Approve", "findings": []})
        agent_cls.return_value.run = AsyncMock(return_value=MagicMock(output=output))
        with patch("shinsa.steps._llm.Agent", agent_cls):
            outcome = await LLMStepAdapter(
                STEP_CATALOG["security"], model="test", temperature=0.3
            ).analyze(_make_context())
        assert isinstance(outcome, StepSuccess)
        kwargs = agent_cls.return_value.run.call_args.kwargs
        assert kwargs["model_settings"] == {"temperature": 0.3}
        assert agent_cls.call_args.kwargs["system_prompt"] == (
            STEP_CATALOG["security"].system_prompt
        )


# =============================================================================
# 例外の分類
# =============================================================================


class TestErrorClassification:
    """外部呼び出しの例外が StepFailure に分類されることを検証。"""

    @pytest.mark.parametrize(
        ("exc", "error_type", "retryable"),
        [
            (TimeoutError(), "timeout", True),
            (ModelHTTPError(status_code=503, model_name="m"), "http_error", True),
            (ModelHTTPError(status_code=429, model_name="m"), "http_error", True),
            (ModelHTTPError(status_code=401, model_name="m"), "http_error", False),
            (ModelAPIError(model_name="m", message="Connection error."), "transport", True),
            (UnexpectedModelBehavior("empty response"), "unexpected_model_behavior", True),
            (httpx.ConnectError("refused"), "transport", True),
            (ConnectionResetError("reset"), "transport", True),
            (UserError("bad model"), "misconfiguration", False),
            (ValueError("OPENAI_API_KEY missing"), "misconfiguration", False),
            (RuntimeError("boom"), "adapter_fault", False),
        ],
    )
    async def test_classification(
        self, exc: Exception, error_type: str, retryable: bool
    ) -> None:
        patcher, _ = _patched_agent(exc)
        with patcher:
            outcome = await LLMStepAdapter(
                STEP_CATALOG["security"], model="test"
            ).analyze(_make_context())
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == error_type
        assert outcome.error.retryable is retryable
        assert "'security'" in outcome.error.message

    async def test_api_error_without_response_is_retryable(self) -> None:
        """HTTP 応答のない API エラー（接続失敗等）は再試行可能な transport になる。"""
        exc = ModelAPIError(model_name="gpt-4o-mini", message="Connection error.")
        patcher, _ = _patched_agent(exc)
        with patcher:
            outcome = await LLMStepAdapter(
                STEP_CATALOG["security"], model="test"
            ).analyze(_make_context())
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "transport"
        assert outcome.error.retryable
        assert "gpt-4o-mini" in outcome.error.message
        assert "Connection error." in outcome.error.message

    async def test_unknown_prefix_is_misconfiguration(self) -> None:
        """モデル解決の失敗は再試行しない設定エラーになる。"""
        outcome = await LLMStepAdapter(
            STEP_CATALOG["security"], model="unknown:model"
        ).analyze(_make_context())
        assert isinstance(outcome, StepFailure)
        assert outcome.error.error_type == "misconfiguration"
        assert not outcome.error.retryable
