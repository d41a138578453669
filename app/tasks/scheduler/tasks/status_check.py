import asyncio
import logging

from app.tasks.context import TaskContext
from app.tasks.dependencies import Dependencies
from app.tasks.scheduler.scheduler import Scheduler

# Trabalho simulado da checagem
CHECK_DURATION = 2.0


class StatusCheckHandler:
    def __init__(self, deps: Dependencies, logger: logging.Logger):
        self.deps = deps
        self.logger = logger.getChild("status-check-handler")

    def register(self, scheduler: Scheduler) -> None:
        scheduler.register("status-check", "0 */5 * * * *", self.execute)

    async def execute(self, ctx: TaskContext) -> None:
        cache_ok = await self.deps.redis_client.ping()
        self.logger.info(f"System status check: {'healthy' if cache_ok else 'degraded'}")

        await asyncio.sleep(CHECK_DURATION)
        self.logger.info("Status check completed")
