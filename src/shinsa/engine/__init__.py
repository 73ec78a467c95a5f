"""実行エンジン。

公開 API:
    - 集約: aggregate, build_response, InvalidInputError
    - 実行: TaskDispatcher, DispatchListener, WorkflowExecutor, WorkerPool
    - クライアント: ExecutionClient
    - 進捗: ProgressReporter, PlainProgressReporter, NullProgressReporter,
      create_progress_reporter
    - エラー: ExecutionNotFoundError, ExecutionExistsError, RequestValidationError,
      ExecutionFailedError, AwaitTimeoutError
"""

from shinsa.engine._aggregator import InvalidInputError, aggregate, build_response
from shinsa.engine._client import (
    AwaitTimeoutError,
    ExecutionClient,
    ExecutionFailedError,
    RequestValidationError,
    new_execution_id,
)
from shinsa.engine._dispatcher import (
    CANCELLED_ERROR_TYPE,
    DispatchListener,
    TaskDispatcher,
)
from shinsa.engine._executor import (
    ExecutionExistsError,
    ExecutionNotFoundError,
    WorkflowExecutor,
    utc_now,
)
from shinsa.engine._progress import (
    NullProgressReporter,
    PlainProgressReporter,
    ProgressReporter,
    create_progress_reporter,
    report_summary,
)
from shinsa.engine._worker import WorkerPool

__all__ = [
    "CANCELLED_ERROR_TYPE",
    "AwaitTimeoutError",
    "DispatchListener",
    "ExecutionClient",
    "ExecutionExistsError",
    "ExecutionFailedError",
    "ExecutionNotFoundError",
    "InvalidInputError",
    "NullProgressReporter",
    "PlainProgressReporter",
    "ProgressReporter",
    "RequestValidationError",
    "TaskDispatcher",
    "WorkerPool",
    "WorkflowExecutor",
    "aggregate",
    "build_response",
    "create_progress_reporter",
    "new_execution_id",
    "report_summary",
    "utc_now",
]
