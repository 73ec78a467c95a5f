"""shinsa ドメインモデルパッケージ。"""

from shinsa.models._base import ShinsaBaseModel, WireModel
from shinsa.models.config import (
    DEFAULT_STEPS,
    STEP_NAME_PATTERN,
    RetryPolicy,
    ShinsaConfig,
    StepOverride,
    StepProvider,
)
from shinsa.models.event import (
    EXECUTION_STEP,
    TERMINAL_EXECUTION_KINDS,
    Event,
    EventKind,
    ExecutionStatus,
)
from shinsa.models.exit_code import ExitCode
from shinsa.models.review import (
    ResponseMetadata,
    ReviewRequest,
    ReviewResponse,
    TestSummary,
)
from shinsa.models.step_result import (
    StepError,
    StepFailure,
    StepOutcome,
    StepResult,
    StepSuccess,
)
from shinsa.models.verdict import (
    RECOMMENDATION_PRECEDENCE,
    Recommendation,
    RiskLevel,
)

__all__ = [
    "DEFAULT_STEPS",
    "EXECUTION_STEP",
    "Event",
    "EventKind",
    "ExecutionStatus",
    "ExitCode",
    "RECOMMENDATION_PRECEDENCE",
    "Recommendation",
    "ResponseMetadata",
    "RetryPolicy",
    "ReviewRequest",
    "ReviewResponse",
    "RiskLevel",
    "STEP_NAME_PATTERN",
    "ShinsaBaseModel",
    "ShinsaConfig",
    "StepError",
    "StepFailure",
    "StepOutcome",
    "StepOverride",
    "StepProvider",
    "StepResult",
    "StepSuccess",
    "TERMINAL_EXECUTION_KINDS",
    "TestSummary",
    "WireModel",
]
