import logging
from typing import Callable, Dict, Protocol

from app.tasks.dependencies import Dependencies
from app.tasks.queue.manager import QueueManager
from app.tasks.queue.tasks.example_task import ExampleHandler
from app.tasks.queue.tasks.notification import NotificationHandler


class QueueTask(Protocol):
    async def register(self, manager: QueueManager) -> None: ...


TASK_REGISTRY: Dict[str, Callable[[Dependencies, logging.Logger], QueueTask]] = {
    "example-task": ExampleHandler,
    "notification": NotificationHandler,
}


async def register_all(manager: QueueManager, deps: Dependencies, logger: logging.Logger) -> None:
    """Registra todos os consumers no manager"""
    for name, constructor in TASK_REGISTRY.items():
        try:
            await constructor(deps, logger).register(manager)
        except Exception as e:
            logger.error(f"Failed to register queue handler {name}: {e}", exc_info=True)
            raise
        logger.info(f"Registered queue handler {name}")
