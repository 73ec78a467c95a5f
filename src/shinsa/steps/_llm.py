"""LLMStepAdapter — 外部 AI サービスを呼び出す本番用ステップアダプター。

pydantic-ai Agent でシステムプロンプトとユーザーメッセージを送り、
テキスト応答を parse_step_output で StepResult スキーマに照合する。

例外ハンドリング（全て StepFailure に変換し、例外は送出しない）:
    - TimeoutError → timeout（再試行可）
    - ModelHTTPError 429 / 5xx → http_error（再試行可）、その他 4xx は再試行不可
    - ModelAPIError（接続失敗等、HTTP 応答のない API エラー）→ transport（再試行可）
    - UnexpectedModelBehavior → unexpected_model_behavior（再試行可）
    - httpx.TransportError / ConnectionError → transport（再試行可）
    - CLIExecutionError → timeout または transport（再試行可）
    - UserError / ValueError → misconfiguration（再試行不可）
    - その他の例外 → adapter_fault（再試行不可）
"""

from __future__ import annotations

import logging

import httpx
from claudecode_model.exceptions import CLIExecutionError
from pydantic_ai import Agent
from pydantic_ai.exceptions import (
    ModelAPIError,
    ModelHTTPError,
    UnexpectedModelBehavior,
    UserError,
)
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from shinsa.models.step_result import StepError, StepFailure, StepOutcome
from shinsa.steps._base import ReviewContext, StepDefinition
from shinsa.steps._model_resolver import resolve_model
from shinsa.steps._parser import parse_step_output
from shinsa.steps._prompts import build_user_message

logger = logging.getLogger(__name__)

_TOO_MANY_REQUESTS: int = 429
_SERVER_ERROR_MIN: int = 500


class LLMStepAdapter:
    """外部 AI サービスに分析を依頼するステップアダプター。

    構築時に渡された設定のみを使用し、プロセス全体の共有状態は持たない。
    """

    def __init__(
        self,
        definition: StepDefinition,
        *,
        model: str | Model,
        endpoint: str | None = None,
        temperature: float | None = None,
    ) -> None:
        self.definition = definition
        self.model = model
        self.endpoint = endpoint
        self.temperature = (
            temperature if temperature is not None else definition.temperature
        )

    @property
    def name(self) -> str:
        return self.definition.name

    async def analyze(self, context: ReviewContext) -> StepOutcome:
        """外部サービスを呼び出し、応答を StepOutcome に変換する。"""
        try:
            resolved = (
                resolve_model(self.model, endpoint=self.endpoint)
                if isinstance(self.model, str)
                else self.model
            )
            agent = Agent(
                model=resolved,
                output_type=str,
                system_prompt=self.definition.system_prompt,
            )
            result = await agent.run(
                build_user_message(self.definition, context),
                model_settings=ModelSettings(temperature=self.temperature),
            )
        except Exception as exc:
            return StepFailure(error=self._classify(exc, context))

        return parse_step_output(self.name, result.output)

    def _classify(self, exc: Exception, context: ReviewContext) -> StepError:
        """例外を再試行可否付きの StepError に分類する。"""
        prefix = f"Step '{self.name}' failed"

        if isinstance(exc, TimeoutError):
            return StepError(
                message=f"{prefix}: external call timed out",
                retryable=True,
                error_type="timeout",
            )

        if isinstance(exc, ModelHTTPError):
            retryable = (
                exc.status_code == _TOO_MANY_REQUESTS
                or exc.status_code >= _SERVER_ERROR_MIN
            )
            return StepError(
                message=f"{prefix}: HTTP {exc.status_code} from model '{exc.model_name}'",
                retryable=retryable,
                error_type="http_error",
            )

        if isinstance(exc, ModelAPIError):
            return StepError(
                message=f"{prefix}: API request to model '{exc.model_name}' failed: {exc.message}",
                retryable=True,
                error_type="transport",
            )

        if isinstance(exc, UnexpectedModelBehavior):
            return StepError(
                message=f"{prefix}: {exc}",
                retryable=True,
                error_type="unexpected_model_behavior",
            )

        if isinstance(exc, (httpx.TransportError, ConnectionError)):
            return StepError(
                message=f"{prefix}: transport error: {exc}",
                retryable=True,
                error_type="transport",
            )

        if isinstance(exc, CLIExecutionError):
            error_type = "timeout" if exc.error_type == "timeout" else "transport"
            return StepError(
                message=f"{prefix}: {exc}",
                retryable=True,
                error_type=error_type,
            )

        if isinstance(exc, (UserError, ValueError)):
            return StepError(
                message=f"{prefix}: misconfiguration: {exc}",
                retryable=False,
                error_type="misconfiguration",
            )

        logger.warning(
            "Step '%s' of execution '%s' failed with %s: %s",
            self.name,
            context.execution_id,
            type(exc).__name__,
            exc,
            exc_info=True,
        )
        return StepError(
            message=f"{prefix}: {type(exc).__name__}: {exc}",
            retryable=False,
            error_type="adapter_fault",
        )
