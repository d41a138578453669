import asyncio
import logging

from app.tasks.context import TaskContext
from app.tasks.dependencies import Dependencies
from app.tasks.scheduler.scheduler import Scheduler


class ExampleHandler:
    """Exemplo de task agendada usando as dependências"""

    def __init__(self, deps: Dependencies, logger: logging.Logger):
        self.deps = deps
        self.logger = logger.getChild("example-handler")

    def register(self, scheduler: Scheduler) -> None:
        # a cada 5 minutos
        scheduler.register("example-task", "0 */5 * * * *", self.execute)

    async def execute(self, ctx: TaskContext) -> None:
        async with asyncio.timeout(5):
            user = await self.deps.user_repo.find_by_id(1)
        self.logger.info(f"Found user {user.name}")
