"""ProgressReporter — stderr 進捗表示。

レビュー実行中の進捗情報を stderr に出力する。TTY 時は Rich Live テーブル、
非 TTY 時はプレーンテキストで自動切替する。進捗表示・ログは stdout を汚さない。
"""

from __future__ import annotations

import sys
from typing import Protocol, runtime_checkable

from shinsa.models.review import ReviewResponse
from shinsa.models.step_result import StepFailure, StepOutcome, StepSuccess


# =============================================================================
# ProgressReporter Protocol
# =============================================================================


@runtime_checkable
class ProgressReporter(Protocol):
    """ステップ実行進捗を報告するプロトコル。"""

    def on_step_pending(self, execution_id: str, step_name: str) -> None:
        """ステップを pending 状態として登録する。"""
        ...

    def on_step_start(self, execution_id: str, step_name: str, attempt: int) -> None:
        """試行の開始を通知する。"""
        ...

    def on_step_retry(
        self, execution_id: str, step_name: str, next_attempt: int, delay: float
    ) -> None:
        """再試行の予約を通知する。"""
        ...

    def on_step_complete(
        self, execution_id: str, step_name: str, outcome: StepOutcome
    ) -> None:
        """ステップの終端（成功または終端失敗）を通知する。"""
        ...

    def start(self) -> None:
        """進捗表示を開始する。"""
        ...

    def stop(self) -> None:
        """進捗表示を停止する。"""
        ...


# =============================================================================
# PlainProgressReporter
# =============================================================================


class PlainProgressReporter:
    """非 TTY 環境向けプレーンテキスト進捗レポーター。"""

    def on_step_pending(self, execution_id: str, step_name: str) -> None:
        """プレーンテキストでは pending 表示しない。"""

    def on_step_start(self, execution_id: str, step_name: str, attempt: int) -> None:
        report_step_start(step_name, attempt)

    def on_step_retry(
        self, execution_id: str, step_name: str, next_attempt: int, delay: float
    ) -> None:
        report_step_retry(step_name, next_attempt, delay)

    def on_step_complete(
        self, execution_id: str, step_name: str, outcome: StepOutcome
    ) -> None:
        report_step_complete(step_name, outcome)

    def start(self) -> None:
        """プレーンテキストでは開始処理なし。"""

    def stop(self) -> None:
        """プレーンテキストでは停止処理なし。"""


class NullProgressReporter:
    """何も表示しないレポーター。ライブラリ利用時の既定値。"""

    def on_step_pending(self, execution_id: str, step_name: str) -> None:
        pass

    def on_step_start(self, execution_id: str, step_name: str, attempt: int) -> None:
        pass

    def on_step_retry(
        self, execution_id: str, step_name: str, next_attempt: int, delay: float
    ) -> None:
        pass

    def on_step_complete(
        self, execution_id: str, step_name: str, outcome: StepOutcome
    ) -> None:
        pass

    def start(self) -> None:
        pass

    def stop(self) -> None:
        pass


# =============================================================================
# ファクトリ関数
# =============================================================================


def create_progress_reporter() -> ProgressReporter:
    """stderr の TTY 状態に基づいて適切な ProgressReporter を生成する。

    TTY の場合は RichProgressReporter、非 TTY の場合は PlainProgressReporter を返す。
    """
    if sys.stderr.isatty():
        from shinsa.engine._live_progress import RichProgressReporter

        return RichProgressReporter()
    return PlainProgressReporter()


def report_step_start(step_name: str, attempt: int) -> None:
    """試行開始を stderr に表示する。

    出力フォーマット:
        "Running step: {step_name} (attempt {attempt})..."
    """
    print(f"Running step: {step_name} (attempt {attempt})...", file=sys.stderr)


def report_step_retry(step_name: str, next_attempt: int, delay: float) -> None:
    """再試行の予約を stderr に表示する。

    出力フォーマット:
        "Step {step_name}: retrying as attempt {next_attempt} in {delay}s"
    """
    print(
        f"Step {step_name}: retrying as attempt {next_attempt} in {delay:g}s",
        file=sys.stderr,
    )


def report_step_complete(step_name: str, outcome: StepOutcome) -> None:
    """ステップ終端を stderr に表示する。

    出力フォーマット:
        成功: "Step {step_name}: {recommendation} ({risk} risk, {N} findings)"
        失敗: "Step {step_name}: failed ({error_type}: {message})"
    """
    if isinstance(outcome, StepSuccess):
        result = outcome.result
        msg = (
            f"Step {step_name}: {result.recommendation.value} "
            f"({result.risk_level.value} risk, {len(result.findings)} findings)"
        )
    elif isinstance(outcome, StepFailure):
        msg = (
            f"Step {step_name}: failed "
            f"({outcome.error.error_type}: {outcome.error.message})"
        )
    else:
        raise TypeError(f"Unknown outcome type: {type(outcome)}")

    print(msg, file=sys.stderr)


def report_summary(response: ReviewResponse) -> None:
    """レビュー完了サマリーを stderr に表示する。

    出力フォーマット:
        "Review complete: {overall} ({N} steps, {took}ms)"
    """
    print(
        f"Review complete: {response.overall_recommendation.value} "
        f"({len(response.agents)} steps, {response.metadata.took_ms}ms)",
        file=sys.stderr,
    )
