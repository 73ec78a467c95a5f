"""設定管理モデル。

ShinsaConfig は全設定項目を統合した不変モデル。デフォルト値のみで有効な
インスタンスを構築できる。RetryPolicy はステップ単位の再試行方針で、
Task Dispatcher とステップアダプターが参照する（Executor とジャーナルは参照しない）。
"""

from __future__ import annotations

import re
from enum import StrEnum
from pathlib import Path
from typing import Final

from pydantic import Field, StrictBool, field_validator, model_validator

from shinsa.models._base import ShinsaBaseModel

STEP_NAME_PATTERN: Final[str] = r"^[a-z0-9-]+$"
"""ステップ名のバリデーションパターン。"""

_STEP_NAME_RE: re.Pattern[str] = re.compile(STEP_NAME_PATTERN)

DEFAULT_MODEL: Final[str] = "openai:gpt-4o-mini"
DEFAULT_STEPS: Final[tuple[str, ...]] = (
    "code-quality",
    "test-quality",
    "security",
    "priority",
)
DEFAULT_JOURNAL_DIR: Final[Path] = Path(".shinsa") / "journal"

# 外部サービス呼び出し1回あたりの既定値
DEFAULT_ATTEMPT_TIMEOUT_SECONDS: Final[float] = 60.0
DEFAULT_INITIAL_BACKOFF_SECONDS: Final[float] = 5.0
DEFAULT_BACKOFF_MULTIPLIER: Final[float] = 2.0
DEFAULT_MAX_ATTEMPTS: Final[int] = 5
DEFAULT_WORKERS: Final[int] = 4


def _validate_step_name(name: str) -> str:
    if not _STEP_NAME_RE.fullmatch(name):
        raise ValueError(
            f"Invalid step name '{name}': must match pattern {STEP_NAME_PATTERN}"
        )
    return name


class StepProvider(StrEnum):
    """ステップアダプターの実装バリアント。"""

    PRODUCTION = "production"
    DETERMINISTIC = "deterministic"


class RetryPolicy(ShinsaBaseModel):
    """ステップ単位の再試行方針。

    試行 n（n >= 1）の後に待つバックオフは
    ``initial_backoff * backoff_multiplier ** (n - 1)`` で、減少しない。
    max_backoff を指定した場合はその値で頭打ちになる。

    Attributes:
        attempt_timeout: 1回の試行の上限秒数。
        initial_backoff: 最初の再試行までの待機秒数。
        backoff_multiplier: 待機秒数の乗数（1 以上）。
        max_attempts: 最大試行回数。None の場合は無制限（キャンセルまで継続）。
        max_backoff: 待機秒数の上限。None の場合は上限なし。
    """

    attempt_timeout: float = Field(
        default=DEFAULT_ATTEMPT_TIMEOUT_SECONDS, gt=0, allow_inf_nan=False
    )
    initial_backoff: float = Field(
        default=DEFAULT_INITIAL_BACKOFF_SECONDS, ge=0, allow_inf_nan=False
    )
    backoff_multiplier: float = Field(
        default=DEFAULT_BACKOFF_MULTIPLIER, ge=1.0, allow_inf_nan=False
    )
    max_attempts: int | None = Field(default=DEFAULT_MAX_ATTEMPTS, ge=1)
    max_backoff: float | None = Field(default=None, ge=0, allow_inf_nan=False)

    def backoff_delay(self, attempt: int) -> float:
        """試行 attempt が失敗した後の待機秒数を返す。

        Args:
            attempt: 失敗した試行の番号（1 始まり）。

        Returns:
            次の試行までの待機秒数。

        Raises:
            ValueError: attempt が 1 未満の場合。
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        delay = self.initial_backoff * self.backoff_multiplier ** (attempt - 1)
        if self.max_backoff is not None:
            return min(delay, self.max_backoff)
        return delay

    def allows_attempt(self, attempt: int) -> bool:
        """試行番号 attempt の実行が方針上許可されるか。"""
        return self.max_attempts is None or attempt <= self.max_attempts


class StepOverride(ShinsaBaseModel):
    """ステップ個別設定。

    None のフィールドはグローバル設定値が適用される。
    """

    enabled: StrictBool = True
    model: str | None = Field(default=None, min_length=1)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    attempt_timeout: float | None = Field(default=None, gt=0, allow_inf_nan=False)
    max_attempts: int | None = Field(default=None, ge=1)


class ShinsaConfig(ShinsaBaseModel):
    """全設定項目を統合した不変モデル。

    デフォルト値のみで有効なインスタンスを構築可能。
    """

    # 外部サービス設定
    model: str = Field(default=DEFAULT_MODEL, min_length=1)
    endpoint: str | None = Field(default=None, min_length=1)
    provider: StepProvider = StepProvider.PRODUCTION

    # パイプライン設定
    steps: tuple[str, ...] = DEFAULT_STEPS
    workers: int = Field(default=DEFAULT_WORKERS, gt=0)
    journal_dir: Path = DEFAULT_JOURNAL_DIR
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    # ステップ個別設定
    step_overrides: dict[str, StepOverride] = Field(default_factory=dict)

    @field_validator("steps")
    @classmethod
    def validate_steps(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        """ロスターのステップ名の形式と重複を検証する。"""
        for name in v:
            _validate_step_name(name)
        if len(set(v)) != len(v):
            raise ValueError(f"Duplicate step names in roster: {list(v)}")
        return v

    @field_validator("step_overrides")
    @classmethod
    def validate_override_names(
        cls, v: dict[str, StepOverride]
    ) -> dict[str, StepOverride]:
        """ステップ個別設定のキー形式を検証する。"""
        for name in v:
            _validate_step_name(name)
        return v

    @model_validator(mode="after")
    def check_roster_not_empty(self) -> ShinsaConfig:
        """有効なステップが1つ以上残ることを検証する。"""
        if not self.enabled_steps():
            raise ValueError("At least one enabled step is required")
        return self

    def enabled_steps(self) -> tuple[str, ...]:
        """enabled=false を除外したロスターを順序を保って返す。"""
        return tuple(
            name
            for name in self.steps
            if name not in self.step_overrides or self.step_overrides[name].enabled
        )

    def policy_for(self, step_name: str) -> RetryPolicy:
        """ステップ個別設定を反映した RetryPolicy を返す。"""
        override = self.step_overrides.get(step_name)
        if override is None:
            return self.retry
        update: dict[str, object] = {}
        if override.attempt_timeout is not None:
            update["attempt_timeout"] = override.attempt_timeout
        if override.max_attempts is not None:
            update["max_attempts"] = override.max_attempts
        if not update:
            return self.retry
        return self.retry.model_copy(update=update)

    def model_for(self, step_name: str) -> str:
        """ステップ個別設定を反映したモデル識別子を返す。"""
        override = self.step_overrides.get(step_name)
        if override is not None and override.model is not None:
            return override.model
        return self.model
