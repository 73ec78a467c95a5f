"""モデルリゾルバー — プレフィックスベースのプロバイダー解決。

モデル文字列のプレフィックスに基づき、pydantic-ai Agent に渡す model 引数を解決する。
- claudecode: ClaudeCodeModel インスタンスを生成して返す
- anthropic: モデル文字列をそのまま返す（pydantic-ai が解決）
- openai: endpoint 未指定ならモデル文字列をそのまま返し、指定時は
  そのエンドポイントに接続する OpenAIChatModel を返す
- test: pydantic-ai 組み込みの TestModel（外部呼び出しなし）
"""

from __future__ import annotations

import os

from claudecode_model import ClaudeCodeModel
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider

_ANTHROPIC_PREFIX: str = "anthropic:"
_CLAUDECODE_PREFIX: str = "claudecode:"
_OPENAI_PREFIX: str = "openai:"
_TEST_MODEL: str = "test"


def _bare_name(model: str, prefix: str) -> str:
    bare_name = model.removeprefix(prefix)
    if not bare_name:
        raise ValueError(
            f"Model name cannot be empty after prefix in '{model}'. "
            f"Specify a model name, e.g. '{prefix}model-name'."
        )
    return bare_name


def resolve_model(model: str, *, endpoint: str | None = None) -> str | Model:
    """モデル文字列のプレフィックスに基づきプロバイダーを解決する。

    Args:
        model: プレフィックス付きモデル名文字列
            （例: ``"openai:gpt-4o-mini"``, ``"claudecode:claude-sonnet-4-5"``）。
        endpoint: OpenAI 互換 API のベース URL。openai プレフィックスでのみ使用する。

    Returns:
        pydantic-ai Agent に渡せるモデル文字列または Model インスタンス。

    Raises:
        ValueError: プレフィックス後のモデル名が空の場合。
        ValueError: 必要な API キー環境変数が未設定の場合。
        ValueError: 未知のプレフィックスが指定された場合。
    """
    if model == _TEST_MODEL:
        return model

    if model.startswith(_CLAUDECODE_PREFIX):
        return ClaudeCodeModel(model_name=_bare_name(model, _CLAUDECODE_PREFIX))

    if model.startswith(_ANTHROPIC_PREFIX):
        _bare_name(model, _ANTHROPIC_PREFIX)
        if not os.getenv("ANTHROPIC_API_KEY"):
            raise ValueError(
                "ANTHROPIC_API_KEY environment variable is required when using "
                "model prefix 'anthropic:'. Set it with: export ANTHROPIC_API_KEY='your-key'"
            )
        return model

    if model.startswith(_OPENAI_PREFIX):
        bare_name = _bare_name(model, _OPENAI_PREFIX)
        if not os.getenv("OPENAI_API_KEY"):
            raise ValueError(
                "OPENAI_API_KEY environment variable is required when using "
                "model prefix 'openai:'. Set it with: export OPENAI_API_KEY='your-key'"
            )
        if endpoint is None:
            return model
        return OpenAIChatModel(bare_name, provider=OpenAIProvider(base_url=endpoint))

    raise ValueError(
        f"Unknown model prefix in '{model}'. "
        "Use 'openai:model-name', 'anthropic:model-name', 'claudecode:model-name' or 'test'."
    )
