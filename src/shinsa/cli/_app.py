"""CliApp — Typer アプリケーション定義。

サブコマンド:
    run INPUT OUTPUT  ReviewRequest JSON を実行し ReviewResponse JSON を書き出す
    resume            ジャーナル上の未完了の実行を終端状態まで進める
    show ID           実行の導出状態とイベント履歴を表示する
    steps             設定されたステップロスターを表示する

終了コード: 0 完了、1 引数・入力エラー、2 実行失敗、3 ファイル I/O エラー。
結果は stdout（またはファイル）、進捗・ログ・エラーは stderr に出力する。
"""

from __future__ import annotations

import asyncio
import importlib.metadata
import sys
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError

from shinsa.cli._logging import configure_logging
from shinsa.config import ConfigFileError, resolve_config
from shinsa.engine import (
    AwaitTimeoutError,
    ExecutionClient,
    ExecutionFailedError,
    ProgressReporter,
    RequestValidationError,
    TaskDispatcher,
    WorkerPool,
    WorkflowExecutor,
    create_progress_reporter,
    report_summary,
)
from shinsa.journal import (
    FilesystemEventJournal,
    InvalidTransitionError,
    JournalIOError,
    replay,
)
from shinsa.models.config import ShinsaConfig, StepProvider
from shinsa.models.exit_code import ExitCode
from shinsa.models.review import ReviewRequest, ReviewResponse
from shinsa.steps import (
    STEP_CATALOG,
    UnknownStepError,
    build_step_plans,
    response_model_name,
)

app = typer.Typer(
    name="shinsa",
    help="Durable multi-step code review pipeline.",
    add_completion=False,
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    """--version 指定時にバージョン番号を出力して終了する。"""
    if value:
        print(importlib.metadata.version("shinsa"))
        raise typer.Exit()


def main() -> None:
    """CLI エントリポイント。pyproject.toml の [project.scripts] から呼び出される。"""
    app()


@app.callback()
def _root_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging.")
    ] = False,
) -> None:
    """Durable multi-step code review pipeline."""
    configure_logging(verbose)


# =============================================================================
# 共通ヘルパー
# =============================================================================


def _fail(message: str, code: ExitCode) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(code=code)


def _load_config(overrides: Mapping[str, object] | None = None) -> ShinsaConfig:
    """設定を解決する。失敗時は入力エラーとして終了する。"""
    try:
        return resolve_config(cli_overrides=overrides)
    except (ValidationError, TypeError) as e:
        raise _fail(
            f"Invalid configuration: {e}\n"
            "Check .shinsa/config.toml, [tool.shinsa] and SHINSA_* variables.",
            ExitCode.INPUT_ERROR,
        ) from None
    except ConfigFileError as e:
        raise _fail(str(e), ExitCode.INPUT_ERROR) from None


def _build_executor(
    config: ShinsaConfig, reporter: ProgressReporter | None = None
) -> WorkflowExecutor:
    try:
        plans = build_step_plans(config)
    except UnknownStepError as e:
        raise _fail(str(e), ExitCode.INPUT_ERROR) from None
    return WorkflowExecutor(
        FilesystemEventJournal(config.journal_dir),
        TaskDispatcher(),
        plans,
        model_name=response_model_name(config),
        reporter=reporter,
    )


def _read_request(path: Path) -> ReviewRequest:
    """要求 JSON ファイルを読み込み、ReviewRequest として検証する。

    JSON として解釈できない入力と、スキーマに適合しない要求は共に入力エラー。
    """
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise _fail(f"Cannot read input file {path}: {e}", ExitCode.IO_ERROR) from None
    try:
        return ReviewRequest.model_validate_json(text)
    except ValidationError as e:
        syntax = next((err for err in e.errors() if err["type"] == "json_invalid"), None)
        if syntax is not None:
            raise _fail(
                f"Input file {path} is not valid JSON: {syntax['msg']}",
                ExitCode.INPUT_ERROR,
            ) from None
        raise _fail(str(RequestValidationError(e)), ExitCode.INPUT_ERROR) from None


def _write_response(path: Path, response: ReviewResponse) -> None:
    try:
        path.write_text(
            response.model_dump_json(by_alias=True, indent=2) + "\n", encoding="utf-8"
        )
    except OSError as e:
        raise _fail(f"Cannot write output file {path}: {e}", ExitCode.IO_ERROR) from None


def build_config_overrides(
    *,
    model: str | None = None,
    provider: StepProvider | None = None,
    workers: int | None = None,
    max_attempts: int | None = None,
    attempt_timeout: float | None = None,
    journal_dir: Path | None = None,
) -> dict[str, object]:
    """CLI オプションから設定上書き辞書を構築する。None 値は未指定として除外する。"""
    raw: dict[str, object] = {
        "model": model,
        "provider": provider,
        "workers": workers,
        "max_attempts": max_attempts,
        "attempt_timeout": attempt_timeout,
        "journal_dir": journal_dir,
    }
    return {k: v for k, v in raw.items() if v is not None}


# =============================================================================
# run
# =============================================================================


@app.command()
def run(
    input_path: Annotated[
        Path, typer.Argument(metavar="INPUT", help="ReviewRequest JSON file.")
    ],
    output_path: Annotated[
        Path, typer.Argument(metavar="OUTPUT", help="ReviewResponse JSON file to write.")
    ],
    model: Annotated[str | None, typer.Option(help="Model identifier.")] = None,
    provider: Annotated[
        StepProvider | None, typer.Option(help="Step adapter provider.")
    ] = None,
    max_attempts: Annotated[
        int | None,
        typer.Option("--max-attempts", help="Max attempts per step.", min=1),
    ] = None,
    attempt_timeout: Annotated[
        float | None,
        typer.Option("--attempt-timeout", help="Per-attempt timeout in seconds."),
    ] = None,
    workers: Annotated[
        int | None, typer.Option(help="Number of concurrent workers.", min=1)
    ] = None,
    journal_dir: Annotated[
        Path | None, typer.Option("--journal-dir", help="Event journal directory.")
    ] = None,
    deadline: Annotated[
        float | None,
        typer.Option(help="Seconds to wait for the result before giving up."),
    ] = None,
) -> None:
    """Run a review request to completion and write the response."""
    config = _load_config(
        build_config_overrides(
            model=model,
            provider=provider,
            workers=workers,
            max_attempts=max_attempts,
            attempt_timeout=attempt_timeout,
            journal_dir=journal_dir,
        )
    )
    request = _read_request(input_path)
    reporter = create_progress_reporter()
    executor = _build_executor(config, reporter)

    async def _run() -> tuple[str, ReviewResponse]:
        async with WorkerPool(executor, workers=config.workers) as pool:
            client = ExecutionClient(executor, pool)
            execution_id = await client.submit(request)
            print(f"Execution: {execution_id}", file=sys.stderr)
            return execution_id, await client.await_result(execution_id, deadline)

    reporter.start()
    try:
        _, response = asyncio.run(_run())
    except RequestValidationError as e:
        raise _fail(str(e), ExitCode.INPUT_ERROR) from None
    except ExecutionFailedError as e:
        raise _fail(str(e), ExitCode.EXECUTION_FAILED) from None
    except AwaitTimeoutError as e:
        raise _fail(
            f"{e}\nRun 'shinsa resume' to continue the execution.",
            ExitCode.EXECUTION_FAILED,
        ) from None
    except JournalIOError as e:
        raise _fail(str(e), ExitCode.IO_ERROR) from None
    finally:
        reporter.stop()

    _write_response(output_path, response)
    report_summary(response)


# =============================================================================
# resume
# =============================================================================


@app.command()
def resume(
    journal_dir: Annotated[
        Path | None, typer.Option("--journal-dir", help="Event journal directory.")
    ] = None,
) -> None:
    """Resume every unfinished execution found in the journal."""
    config = _load_config(build_config_overrides(journal_dir=journal_dir))
    reporter = create_progress_reporter()
    executor = _build_executor(config, reporter)

    async def _resume() -> dict[str, str]:
        outcomes: dict[str, str] = {}
        async with WorkerPool(executor, workers=config.workers) as pool:
            client = ExecutionClient(executor, pool)
            for execution_id in client.resume_incomplete():
                try:
                    response = await client.await_result(execution_id)
                except ExecutionFailedError as e:
                    outcomes[execution_id] = f"failed at step '{e.step}'"
                else:
                    outcomes[execution_id] = response.overall_recommendation.value
        return outcomes

    reporter.start()
    try:
        outcomes = asyncio.run(_resume())
    except (JournalIOError, InvalidTransitionError) as e:
        raise _fail(str(e), ExitCode.IO_ERROR) from None
    finally:
        reporter.stop()

    if not outcomes:
        print("No unfinished executions.", file=sys.stderr)
        return
    for execution_id, outcome in outcomes.items():
        print(f"{execution_id}: {outcome}")
    if any(outcome.startswith("failed") for outcome in outcomes.values()):
        raise typer.Exit(code=ExitCode.EXECUTION_FAILED)


# =============================================================================
# show
# =============================================================================


@app.command()
def show(
    execution_id: Annotated[str, typer.Argument(help="Execution id.")],
    journal_dir: Annotated[
        Path | None, typer.Option("--journal-dir", help="Event journal directory.")
    ] = None,
) -> None:
    """Show the derived state and event history of an execution."""
    config = _load_config(build_config_overrides(journal_dir=journal_dir))
    journal = FilesystemEventJournal(config.journal_dir)
    try:
        events = journal.read_all(execution_id)
        state = replay(execution_id, events)
    except ValueError as e:
        raise _fail(str(e), ExitCode.INPUT_ERROR) from None
    except (JournalIOError, InvalidTransitionError) as e:
        raise _fail(str(e), ExitCode.IO_ERROR) from None
    if not state.exists:
        raise _fail(f"Execution '{execution_id}' not found", ExitCode.INPUT_ERROR)

    print(f"Execution:  {execution_id}")
    print(f"Status:     {state.status.value}")
    for name, step in state.steps.items():
        detail = ""
        if step.result is not None:
            detail = f" {step.result.recommendation.value}"
        elif step.last_error is not None:
            detail = f" ({step.last_error.error_type}: {step.last_error.message})"
        print(
            f"Step:       {name} {step.status.value} "
            f"[{step.attempts_failed} failed attempts]{detail}"
        )
    if state.failure is not None:
        print(
            f"Failed at:  {state.failure.step} ({state.failure.error.message})"
        )
    if state.response is not None:
        print(f"Overall:    {state.response.overall_recommendation.value}")
    print("Events:")
    for event in events:
        print(
            f"  #{event.sequence_number:<4} {event.recorded_at.isoformat()} "
            f"{event.kind.value:<20} {event.step_name}"
        )


# =============================================================================
# steps
# =============================================================================

_LIST_NAME_WIDTH = 16
_LIST_MODEL_WIDTH = 28


@app.command()
def steps() -> None:
    """List the configured step roster."""
    config = _load_config()
    header = (
        f"{'NAME':<{_LIST_NAME_WIDTH}}"
        f"{'MODEL':<{_LIST_MODEL_WIDTH}}"
        f"{'ATTEMPTS':<10}"
        f"{'TITLE'}"
    )
    print(header)
    print("-" * len(header))
    for name in config.enabled_steps():
        definition = STEP_CATALOG.get(name)
        title = definition.title if definition is not None else "(unknown step)"
        model = (
            StepProvider.DETERMINISTIC.value
            if config.provider == StepProvider.DETERMINISTIC
            else config.model_for(name)
        )
        max_attempts = config.policy_for(name).max_attempts
        attempts = str(max_attempts) if max_attempts is not None else "unbounded"
        print(
            f"{name:<{_LIST_NAME_WIDTH}}"
            f"{model:<{_LIST_MODEL_WIDTH}}"
            f"{attempts:<10}"
            f"{title}"
        )
