import logging
from typing import Callable, Dict, Protocol

from app.tasks.dependencies import Dependencies
from app.tasks.poller.poller import Poller
from app.tasks.poller.tasks.example_task import ExampleHandler
from app.tasks.poller.tasks.metrics_collect import MetricsCollectHandler


class PollerTask(Protocol):
    def register(self, poller: Poller) -> None: ...


TASK_REGISTRY: Dict[str, Callable[[Dependencies, logging.Logger], PollerTask]] = {
    "example-task": ExampleHandler,
    "metrics-collect": MetricsCollectHandler,
}


def register_all(poller: Poller, deps: Dependencies, logger: logging.Logger) -> None:
    """Registra todas as tasks de polling"""
    for name, constructor in TASK_REGISTRY.items():
        try:
            constructor(deps, logger).register(poller)
        except Exception as e:
            logger.error(f"Failed to register poller handler {name}: {e}", exc_info=True)
            raise
        logger.info(f"Registered poller handler {name}")
