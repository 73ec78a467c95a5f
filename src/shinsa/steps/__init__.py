"""ステップアダプター。

公開 API:
    - 契約: ReviewContext, StepDefinition, StepAdapter
    - 実装: LLMStepAdapter, DeterministicStepAdapter, FailingTestsGate
    - カタログ: STEP_CATALOG, StepPlan, UnknownStepError, build_adapter, build_step_plans
    - 補助: parse_step_output, resolve_model
"""

from shinsa.steps._base import ReviewContext, StepAdapter, StepDefinition
from shinsa.steps._catalog import (
    STEP_CATALOG,
    TEST_GATED_STEP,
    StepPlan,
    UnknownStepError,
    build_adapter,
    build_step_plans,
    response_model_name,
)
from shinsa.steps._deterministic import CANNED_FINDINGS, DeterministicStepAdapter
from shinsa.steps._gate import FailingTestsGate
from shinsa.steps._llm import LLMStepAdapter
from shinsa.steps._model_resolver import resolve_model
from shinsa.steps._parser import parse_step_output

__all__ = [
    "CANNED_FINDINGS",
    "STEP_CATALOG",
    "TEST_GATED_STEP",
    "DeterministicStepAdapter",
    "FailingTestsGate",
    "LLMStepAdapter",
    "ReviewContext",
    "StepAdapter",
    "StepDefinition",
    "StepPlan",
    "UnknownStepError",
    "build_adapter",
    "build_step_plans",
    "parse_step_output",
    "resolve_model",
    "response_model_name",
]
