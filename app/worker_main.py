import argparse
import asyncio
import logging
import sys
from typing import List, Optional

from app.core.config.config import settings
from app.core.lifecycle import Application
from app.tasks.dependencies import Dependencies
from app.tasks.poller.poller import Poller
from app.tasks.poller.tasks import registry as poller_registry
from app.tasks.queue.manager import QueueManager
from app.tasks.queue.tasks import registry as queue_registry
from app.tasks.scheduler.scheduler import Scheduler
from app.tasks.scheduler.tasks import registry as scheduler_registry
from app.tasks.server import TaskServer
from app.utils.logging import setup_logging

logger = logging.getLogger(__name__)

# Arquitetura
#
# API e worker compartilham as mesmas dependências (Dependencies)
# O worker roda scheduler e poller como um único servidor (TaskServer)
# Os consumers da fila são registrados na subida e fechados no cleanup
#


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Processo de tasks em background")
    parser.add_argument("--scheduler", action=argparse.BooleanOptionalAction, default=True,
                        help="habilita tasks agendadas (cron)")
    parser.add_argument("--poller", action=argparse.BooleanOptionalAction, default=True,
                        help="habilita tasks de polling")
    parser.add_argument("--queue", action=argparse.BooleanOptionalAction, default=True,
                        help="habilita consumers da fila")
    return parser.parse_args(argv)


async def main(args: argparse.Namespace) -> int:
    app_logger = setup_logging(settings)

    deps = await Dependencies.create(settings, app_logger, with_broker=args.queue)
    try:
        scheduler = None
        if args.scheduler:
            scheduler = Scheduler(
                app_logger,
                timezone=settings.scheduler_timezone,
                max_execution_time=settings.scheduler_max_execution_time,
            )
            scheduler_registry.register_all(scheduler, deps, app_logger)

        poller = None
        if args.poller:
            poller = Poller(app_logger)
            poller_registry.register_all(poller, deps, app_logger)

        if args.queue:
            manager = QueueManager(deps.rabbitmq, settings.rabbitmq_exchange, app_logger)
            await queue_registry.register_all(manager, deps, app_logger)

        application = Application(
            app_logger,
            name=f"{settings.app_name}-task",
            version=settings.app_version,
            metadata={"environment": settings.environment},
            stop_timeout=settings.app_stop_timeout,
            servers=[TaskServer(scheduler, poller, app_logger)],
        )
        await application.run()
    except Exception as e:
        logger.error(f"Task process failed: {e}", exc_info=True)
        return 1
    finally:
        await deps.cleanup()

    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
