import asyncio
import logging
from typing import Optional

from app.tasks.poller.poller import Poller
from app.tasks.scheduler.scheduler import Scheduler


class TaskServer:
    """Expõe scheduler e poller como um único servidor do ciclo de vida

    A fila não entra aqui: os consumers são registrados na construção e
    fechados pelo cleanup das dependências.
    """

    def __init__(
        self,
        scheduler: Optional[Scheduler] = None,
        poller: Optional[Poller] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.scheduler = scheduler
        self.poller = poller
        self.logger = logger.getChild("task-server") if logger else logging.getLogger(__name__)
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        if self._stopped.is_set():
            return
        if self.scheduler is not None:
            self.scheduler.start()
        if self.poller is not None:
            self.poller.start()
        self.logger.info("Task server started")

        await self._stopped.wait()

    async def stop(self) -> None:
        if self._stopped.is_set():
            return
        try:
            if self.poller is not None:
                await self.poller.stop()
            if self.scheduler is not None:
                await self.scheduler.stop()
        finally:
            self._stopped.set()
        self.logger.info("Task server stopped")
