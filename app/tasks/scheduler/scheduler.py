"""Scheduler de tasks baseado em expressões cron (precisão de segundos)"""
import asyncio
import logging
from datetime import datetime, tzinfo
from typing import Dict, List, Optional, Union
from zoneinfo import ZoneInfo

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    EVENT_JOB_SUBMITTED,
)
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from app.core.errors import TaskAlreadyExistsError
from app.tasks.context import TaskContext, TaskHandler
from app.tasks.scheduler.cron import parse_expression

# Teto de execução de cada disparo
DEFAULT_MAX_EXECUTION_TIME = 300.0


class Scheduler:
    """Executa tasks nomeadas em horários definidos por expressões cron

    Disparos da mesma task nunca se sobrepõem (max_instances=1); tasks
    diferentes podem rodar em paralelo.
    """

    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        *,
        timezone: Union[str, tzinfo] = "UTC",
        max_execution_time: Optional[float] = DEFAULT_MAX_EXECUTION_TIME,
    ):
        if isinstance(timezone, str):
            timezone = ZoneInfo(timezone)
        self.timezone = timezone
        self.max_execution_time = max_execution_time
        self.logger = logger.getChild("scheduler") if logger else logging.getLogger(__name__)

        self._tasks: Dict[str, str] = {}
        self._scheduler = AsyncIOScheduler(timezone=timezone)

        # disparos submetidos ao executor e ainda não finalizados
        self._inflight = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._scheduler.add_listener(self._on_job_submitted, EVENT_JOB_SUBMITTED)
        self._scheduler.add_listener(
            self._on_job_finished,
            EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MISSED,
        )

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def register(self, name: str, expression: str, handler: TaskHandler) -> None:
        """Registra uma task com a expressão cron informada

        Levanta TaskAlreadyExistsError se o nome já existir e
        InvalidCronExpressionError se a expressão for inválida.
        """
        if name in self._tasks:
            raise TaskAlreadyExistsError(name)

        trigger = parse_expression(expression, self.timezone)
        self._scheduler.add_job(
            self._fire,
            trigger,
            args=(name, handler),
            id=name,
            name=name,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=None,
        )
        self._tasks[name] = expression
        self.logger.debug(f"Task registered: {name} ({expression})")

    def unregister(self, name: str) -> None:
        """Remove a task; execuções em andamento terminam normalmente"""
        if name not in self._tasks:
            return
        del self._tasks[name]
        self._scheduler.remove_job(name)
        self.logger.info(f"Task unregistered: {name}")

    def start(self) -> None:
        if self._scheduler.running:
            self.logger.warning("Scheduler already running")
            return
        self._scheduler.start()
        self.logger.info("Scheduler started")

    async def stop(self) -> None:
        """Para os disparos e aguarda as execuções em andamento"""
        if not self._scheduler.running:
            return
        self._scheduler.pause()
        await self._idle.wait()
        self._scheduler.shutdown(wait=False)
        # no AsyncIOScheduler o shutdown é agendado no loop
        while self._scheduler.running:
            await asyncio.sleep(0)
        self.logger.info("Scheduler stopped")

    def list_tasks(self) -> List[str]:
        return list(self._tasks)

    def next_run_time(self, name: str) -> Optional[datetime]:
        """Próximo disparo da task; None se o scheduler não estiver rodando"""
        if name not in self._tasks or not self._scheduler.running:
            return None
        job = self._scheduler.get_job(name)
        return getattr(job, "next_run_time", None) if job else None

    def _on_job_submitted(self, event) -> None:
        self._inflight += 1
        self._idle.clear()

    def _on_job_finished(self, event) -> None:
        self._inflight = max(0, self._inflight - 1)
        if self._inflight == 0:
            self._idle.set()

    async def _fire(self, name: str, handler: TaskHandler) -> None:
        loop = asyncio.get_running_loop()
        start = loop.time()
        deadline = start + self.max_execution_time if self.max_execution_time else None
        ctx = TaskContext(name=name, deadline=deadline)

        self.logger.info(f"Starting scheduled task {name}")
        try:
            async with asyncio.timeout_at(deadline):
                await handler(ctx)
        except Exception as e:
            self.logger.error(
                f"Scheduled task {name} failed after {loop.time() - start:.3f}s: {e!r}",
                exc_info=True,
            )
            return

        self.logger.info(f"Scheduled task {name} completed in {loop.time() - start:.3f}s")
