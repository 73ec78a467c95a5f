"""WorkerPool — 実行 ID をキューから取り出して並行に実行するワーカー群。

異なる実行は並行に進み、1つの実行内のステップは WorkflowExecutor が逐次に実行する。
同じ実行 ID が待機中または実行中なら、既存の Future を返して二重実行を防ぐ。
"""

from __future__ import annotations

import asyncio
import logging
from types import TracebackType

from shinsa.engine._executor import WorkflowExecutor
from shinsa.journal._replay import ExecutionState

logger = logging.getLogger(__name__)


class WorkerPool:
    """asyncio.Queue を共有する N 個のワーカータスク。

    async with で開始・停止する::

        async with WorkerPool(executor, workers=4) as pool:
            state = await pool.dispatch(execution_id)
    """

    def __init__(self, executor: WorkflowExecutor, workers: int = 4) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.executor = executor
        self.workers = workers
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._futures: dict[str, asyncio.Future[ExecutionState]] = {}
        self._tasks: list[asyncio.Task[None]] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """ワーカータスクを起動する。起動済みなら何もしない。"""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"shinsa-worker-{i}")
            for i in range(self.workers)
        ]
        logger.debug("Started %d workers", self.workers)

    async def stop(self) -> None:
        """ワーカータスクをキャンセルし、未完了の Future をキャンセルする。"""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        for future in self._futures.values():
            if not future.done():
                future.cancel()
        self._futures.clear()

    def dispatch(self, execution_id: str) -> asyncio.Future[ExecutionState]:
        """実行をキューに積み、終端状態で解決される Future を返す。

        待機中または実行中の実行 ID には既存の Future を返す。
        """
        existing = self._futures.get(execution_id)
        if existing is not None and not existing.done():
            return existing
        future: asyncio.Future[ExecutionState] = (
            asyncio.get_running_loop().create_future()
        )
        self._futures[execution_id] = future
        self._queue.put_nowait(execution_id)
        return future

    async def _worker(self, index: int) -> None:
        while True:
            execution_id = await self._queue.get()
            future = self._futures[execution_id]
            try:
                logger.debug("Worker %d picked up '%s'", index, execution_id)
                state = await self.executor.run(execution_id)
            except asyncio.CancelledError:
                future.cancel()
                raise
            except Exception as exc:
                logger.error(
                    "Execution '%s' aborted: %s", execution_id, exc, exc_info=True
                )
                if not future.done():
                    future.set_exception(exc)
            else:
                if not future.done():
                    future.set_result(state)
            finally:
                self._queue.task_done()
                if self._futures.get(execution_id) is future:
                    del self._futures[execution_id]

    async def __aenter__(self) -> WorkerPool:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.stop()
