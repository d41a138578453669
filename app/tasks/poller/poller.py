"""Poller: executa tasks nomeadas em intervalos fixos"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional, Union

from app.core.errors import TaskAlreadyExistsError
from app.tasks.context import TaskContext, TaskHandler

# Fração do intervalo usada como deadline de cada execução
DEADLINE_RATIO = 0.8


@dataclass
class _PollingTask:
    name: str
    interval: float
    handler: TaskHandler
    worker: Optional[asyncio.Task] = None


class Poller:
    """Executa cada task uma vez ao iniciar e depois a cada ``interval``

    O intervalo é medido a partir do início da execução anterior. Cada
    execução tem deadline de 80% do intervalo, então execuções da mesma
    task nunca se sobrepõem; ticks perdidos por uma execução lenta são
    descartados.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger.getChild("poller") if logger else logging.getLogger(__name__)
        self._tasks: Dict[str, _PollingTask] = {}
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    def register(self, name: str, interval: Union[float, timedelta], handler: TaskHandler) -> None:
        if name in self._tasks:
            raise TaskAlreadyExistsError(name)

        seconds = interval.total_seconds() if isinstance(interval, timedelta) else float(interval)
        if seconds <= 0:
            raise ValueError(f"interval must be positive, got {interval!r}")

        task = _PollingTask(name=name, interval=seconds, handler=handler)
        self._tasks[name] = task
        self.logger.debug(f"Polling task registered: {name} (every {seconds}s)")

        if self._started:
            self._launch(task)

    async def unregister(self, name: str) -> None:
        """Remove a task, cancelando o worker e aguardando a execução atual"""
        task = self._tasks.pop(name, None)
        if task is None:
            return
        await self._cancel_worker(task)
        self.logger.info(f"Polling task unregistered: {name}")

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        for task in self._tasks.values():
            self._launch(task)
        self.logger.info(f"Poller started with {len(self._tasks)} tasks")

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        await asyncio.gather(*(self._cancel_worker(t) for t in list(self._tasks.values())))
        self.logger.info("Poller stopped")

    def list_tasks(self) -> List[str]:
        return list(self._tasks)

    def get_task_interval(self, name: str) -> Optional[float]:
        task = self._tasks.get(name)
        return task.interval if task else None

    def _launch(self, task: _PollingTask) -> None:
        task.worker = asyncio.create_task(self._run_worker(task), name=f"poller:{task.name}")

    async def _cancel_worker(self, task: _PollingTask) -> None:
        worker, task.worker = task.worker, None
        if worker is None or worker.done():
            return
        worker.cancel()
        try:
            await worker
        except asyncio.CancelledError:
            if asyncio.current_task().cancelling():
                raise

    async def _run_worker(self, task: _PollingTask) -> None:
        loop = asyncio.get_running_loop()
        next_tick = loop.time()
        while True:
            await self._execute(task)
            # handler que engoliu o cancelamento não mantém o worker vivo
            if asyncio.current_task().cancelling():
                raise asyncio.CancelledError

            # grade de ticks fixa a partir da primeira execução
            next_tick += task.interval
            now = loop.time()
            if now > next_tick:
                skipped = int((now - next_tick) // task.interval) + 1
                next_tick += skipped * task.interval
                self.logger.debug(f"Polling task {task.name} skipped {skipped} ticks")
            await asyncio.sleep(next_tick - now)

    async def _execute(self, task: _PollingTask) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        deadline = start + task.interval * DEADLINE_RATIO
        ctx = TaskContext(name=task.name, deadline=deadline)

        try:
            async with asyncio.timeout_at(deadline):
                await task.handler(ctx)
        except TimeoutError as e:
            self.logger.error(
                f"Polling task {task.name} exceeded its deadline after {loop.time() - start:.3f}s",
                exc_info=e,
            )
        except Exception as e:
            self.logger.error(
                f"Polling task {task.name} failed after {loop.time() - start:.3f}s: {e!r}",
                exc_info=True,
            )
        else:
            self.logger.debug(f"Polling task {task.name} completed in {loop.time() - start:.3f}s")
