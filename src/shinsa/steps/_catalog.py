"""StepCatalog — 組み込みステップ定義とロスターからのアダプター構築。

ShinsaConfig のロスター順にステップ定義を解決し、プロバイダー設定に応じた
アダプターと RetryPolicy を束ねた StepPlan を生成する。
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Final

from shinsa.models.config import RetryPolicy, ShinsaConfig, StepProvider
from shinsa.steps._base import StepAdapter, StepDefinition
from shinsa.steps._deterministic import DeterministicStepAdapter
from shinsa.steps._gate import FailingTestsGate
from shinsa.steps._llm import LLMStepAdapter
from shinsa.steps._prompts import (
    CODE_QUALITY_PROMPT,
    COMPLEXITY_PROMPT,
    DOCUMENTATION_PROMPT,
    DUPLICATION_PROMPT,
    PRIORITY_PROMPT,
    SECURITY_PROMPT,
    TEST_QUALITY_PROMPT,
)

TEST_GATED_STEP: Final[str] = "test-quality"
"""FailingTestsGate でラップされるステップ名。"""


def _definition(
    name: str, title: str, description: str, prompt: str, **kwargs: object
) -> StepDefinition:
    return StepDefinition.model_validate(
        {
            "name": name,
            "title": title,
            "description": description,
            "system_prompt": prompt,
            **kwargs,
        }
    )


STEP_CATALOG: Final[Mapping[str, StepDefinition]] = MappingProxyType(
    {
        d.name: d
        for d in (
            _definition(
                "code-quality",
                "Code Quality",
                "Readability, naming, structure and error handling review",
                CODE_QUALITY_PROMPT,
            ),
            _definition(
                "test-quality",
                "Test Quality",
                "Test coverage and test design review",
                TEST_QUALITY_PROMPT,
                uses_test_summary=True,
            ),
            _definition(
                "security",
                "Security",
                "Vulnerability and secret exposure review",
                SECURITY_PROMPT,
                temperature=0.1,
            ),
            _definition(
                "duplication",
                "Duplication",
                "Duplicated logic detection",
                DUPLICATION_PROMPT,
            ),
            _definition(
                "complexity",
                "Complexity",
                "Cyclomatic and cognitive complexity review",
                COMPLEXITY_PROMPT,
            ),
            _definition(
                "documentation",
                "Documentation",
                "Docstring and documentation coverage review",
                DOCUMENTATION_PROMPT,
            ),
            _definition(
                "priority",
                "Priority",
                "Prioritization of findings reported by earlier steps",
                PRIORITY_PROMPT,
                uses_prior_results=True,
                uses_test_summary=True,
            ),
        )
    }
)
"""ステップ名から StepDefinition へのマッピング。"""


class UnknownStepError(Exception):
    """ロスターに STEP_CATALOG 未登録のステップ名が含まれる場合のエラー。"""

    def __init__(self, names: list[str]) -> None:
        self.names = names
        super().__init__(
            f"Unknown step(s) in roster: {', '.join(names)}. "
            f"Available steps: {', '.join(STEP_CATALOG)}"
        )


@dataclass(frozen=True)
class StepPlan:
    """ロスター上の1ステップの実行計画。

    Attributes:
        name: ステップ名。
        adapter: 分析を行うアダプター。
        policy: Task Dispatcher が参照する再試行方針。
    """

    name: str
    adapter: StepAdapter
    policy: RetryPolicy


def build_adapter(config: ShinsaConfig, name: str) -> StepAdapter:
    """設定とステップ名からアダプターを1つ構築する。

    Raises:
        UnknownStepError: name が STEP_CATALOG に存在しない場合。
    """
    definition = STEP_CATALOG.get(name)
    if definition is None:
        raise UnknownStepError([name])

    adapter: StepAdapter
    if config.provider == StepProvider.DETERMINISTIC:
        adapter = DeterministicStepAdapter(name)
    else:
        override = config.step_overrides.get(name)
        adapter = LLMStepAdapter(
            definition,
            model=config.model_for(name),
            endpoint=config.endpoint,
            temperature=override.temperature if override is not None else None,
        )

    if name == TEST_GATED_STEP:
        return FailingTestsGate(adapter)
    return adapter


def build_step_plans(config: ShinsaConfig) -> tuple[StepPlan, ...]:
    """有効なロスターを順序通りに StepPlan 列へ解決する。

    Raises:
        UnknownStepError: ロスターに未登録のステップ名が含まれる場合。
    """
    roster = config.enabled_steps()
    unknown = [name for name in roster if name not in STEP_CATALOG]
    if unknown:
        raise UnknownStepError(unknown)
    return tuple(
        StepPlan(
            name=name,
            adapter=build_adapter(config, name),
            policy=config.policy_for(name),
        )
        for name in roster
    )


def response_model_name(config: ShinsaConfig) -> str:
    """ReviewResponse.metadata.model に記録するモデル識別子を返す。"""
    if config.provider == StepProvider.DETERMINISTIC:
        return StepProvider.DETERMINISTIC.value
    return config.model
