import logging

from app.tasks.context import TaskContext
from app.tasks.dependencies import Dependencies
from app.tasks.poller.poller import Poller


class ExampleHandler:
    def __init__(self, deps: Dependencies, logger: logging.Logger):
        self.deps = deps
        self.logger = logger.getChild("example-handler")

    def register(self, poller: Poller) -> None:
        # a cada 1 hora
        poller.register("example-task", 3600, self.execute)

    async def execute(self, ctx: TaskContext) -> None:
        _, count = await self.deps.user_repo.list({"enabled": True}, limit=10, offset=0)
        self.logger.info(f"Retrieved enabled users: {count}")
