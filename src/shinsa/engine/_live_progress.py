"""RichProgressReporter — TTY 環境向け Rich Live テーブル進捗表示。

ステップ実行中にリアルタイムのステータス表を stderr に表示する。
複数の実行が並行する場合は実行 ID ごとに行をまとめる。
"""

from __future__ import annotations

import sys
from dataclasses import dataclass

from rich.console import Console
from rich.live import Live
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

from shinsa.models.step_result import StepFailure, StepOutcome, StepSuccess
from shinsa.models.verdict import Recommendation


@dataclass
class StepRow:
    """テーブル行の状態。"""

    order: int
    status: str = "pending"
    attempt: int = 0


class RichProgressReporter:
    """TTY 環境向け Rich Live テーブル進捗レポーター。

    テーブル列: Execution | Step | Attempt | Status
    行順序: 実行 ID 順、同一実行内は登録順（ロスター順）。
    """

    def __init__(self, console: Console | None = None) -> None:
        self._console: Console = console or Console(file=sys.stderr)
        self._live: Live | None = None
        self.rows: dict[tuple[str, str], StepRow] = {}

    def on_step_pending(self, execution_id: str, step_name: str) -> None:
        """ステップを pending 状態として登録する。"""
        key = (execution_id, step_name)
        if key not in self.rows:
            self.rows[key] = StepRow(order=len(self.rows))
            self._refresh()

    def on_step_start(self, execution_id: str, step_name: str, attempt: int) -> None:
        """試行開始を通知し、ステータスを running に更新する。"""
        row = self._row(execution_id, step_name)
        row.status = "running"
        row.attempt = attempt
        self._refresh()

    def on_step_retry(
        self, execution_id: str, step_name: str, next_attempt: int, delay: float
    ) -> None:
        """再試行の予約を通知し、待機中の表示に更新する。"""
        row = self._row(execution_id, step_name)
        row.status = f"↻ retry in {delay:g}s"
        self._refresh()

    def on_step_complete(
        self, execution_id: str, step_name: str, outcome: StepOutcome
    ) -> None:
        """ステップ終端を通知し、ステータスを結果に応じて更新する。"""
        row = self._row(execution_id, step_name)
        row.status = _format_completion_status(outcome)
        self._refresh()

    def start(self) -> None:
        """Rich Live 表示を開始する。"""
        live = Live(
            self.build_table(),
            console=self._console,
            refresh_per_second=4,
        )
        live.__enter__()
        self._live = live

    def stop(self) -> None:
        """Rich Live 表示を停止する。"""
        if self._live is not None:
            live, self._live = self._live, None
            live.__exit__(None, None, None)

    def build_table(self) -> Table:
        """現在の状態からテーブルを構築する。"""
        table = Table(title="Review Progress")
        table.add_column("Execution")
        table.add_column("Step")
        table.add_column("Attempt", justify="right")
        table.add_column("Status")

        sorted_rows = sorted(
            self.rows.items(), key=lambda item: (item[0][0], item[1].order)
        )
        for (execution_id, step_name), row in sorted_rows:
            table.add_row(
                execution_id,
                step_name,
                str(row.attempt) if row.attempt else "-",
                _render_status(row.status),
            )

        return table

    def _row(self, execution_id: str, step_name: str) -> StepRow:
        key = (execution_id, step_name)
        if key not in self.rows:
            self.rows[key] = StepRow(order=len(self.rows))
        return self.rows[key]

    def _refresh(self) -> None:
        """Live 表示を更新する（Live がアクティブな場合のみ）。"""
        if self._live is not None:
            self._live.update(self.build_table())


def _format_completion_status(outcome: StepOutcome) -> str:
    """StepOutcome から完了ステータス文字列を生成する。"""
    if isinstance(outcome, StepSuccess):
        recommendation = outcome.result.recommendation
        mark = "✓" if recommendation == Recommendation.APPROVE else "⚠"
        if recommendation == Recommendation.BLOCK:
            mark = "✗"
        return f"{mark} {recommendation.value}"
    if isinstance(outcome, StepFailure):
        return f"✗ {outcome.error.error_type}"
    raise TypeError(f"Unknown outcome type: {type(outcome)}")


def _render_status(status: str) -> Text | Spinner:
    """ステータス文字列を Rich レンダラブルに変換する。"""
    if status == "pending":
        return Text("⏳ pending", style="dim")
    if status == "running":
        return Spinner("dots", text="running", style="cyan")
    if status.startswith("✓"):
        return Text(status, style="green")
    if status.startswith("⚠") or status.startswith("↻"):
        return Text(status, style="yellow")
    if status.startswith("✗"):
        return Text(status, style="red")
    return Text(status)
