import logging
from typing import Callable, Dict, Protocol

from app.tasks.dependencies import Dependencies
from app.tasks.scheduler.scheduler import Scheduler
from app.tasks.scheduler.tasks.example_task import ExampleHandler
from app.tasks.scheduler.tasks.status_check import StatusCheckHandler


class SchedulerTask(Protocol):
    def register(self, scheduler: Scheduler) -> None: ...


# Novas tasks agendadas entram aqui
TASK_REGISTRY: Dict[str, Callable[[Dependencies, logging.Logger], SchedulerTask]] = {
    "example-task": ExampleHandler,
    "status-check": StatusCheckHandler,
}


def register_all(scheduler: Scheduler, deps: Dependencies, logger: logging.Logger) -> None:
    """Registra todas as tasks agendadas no scheduler"""
    for name, constructor in TASK_REGISTRY.items():
        try:
            constructor(deps, logger).register(scheduler)
        except Exception as e:
            logger.error(f"Failed to register scheduler handler {name}: {e}", exc_info=True)
            raise
        logger.info(f"Registered scheduler handler {name}")
