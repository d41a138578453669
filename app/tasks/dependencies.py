import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional, Tuple

from app.core.config.config import Settings
from app.domain.repositories.user_repository import UserRepository
from app.domain.services.user_use_case import UserUseCase
from app.infrastructure.cache.redis_client import RedisClient
from app.infrastructure.database.prisma_db import Database
from app.infrastructure.mq.rabbitmq import RabbitMQ

# Todos os recursos compartilhados pelas tasks (e pela API) ficam aqui,
# criados uma vez na subida do processo e liberados por cleanup()
@dataclass
class Dependencies:
    """Dependency Container das tasks"""

    settings: Settings
    logger: logging.Logger

    # infrastructure
    db: Database
    redis_client: RedisClient
    rabbitmq: Optional[RabbitMQ]

    # repositories
    user_repo: UserRepository

    # use cases
    user_use_case: UserUseCase

    _cleaned: bool = field(default=False, init=False, repr=False)

    @classmethod
    async def create(
        cls,
        settings: Settings,
        logger: Optional[logging.Logger] = None,
        with_broker: bool = True,
    ) -> "Dependencies":
        """Abre banco, cache e broker; em caso de falha libera o que já foi aberto"""
        logger = logger or logging.getLogger("app")
        opened: List[Tuple[str, Callable[[], Awaitable[None]]]] = []

        try:
            db = Database(
                settings.database_url,
                pool_size=settings.database_pool_size,
                pool_timeout=settings.database_pool_timeout,
                logger=logger,
            )
            await db.connect()
            opened.append(("database", db.disconnect))

            redis_client = RedisClient(settings.redis_url, pool_size=settings.redis_pool_size)
            await redis_client.connect()
            opened.append(("redis", redis_client.disconnect))

            rabbitmq = None
            if with_broker:
                rabbitmq = RabbitMQ(settings.rabbitmq_url, logger=logger)
                await rabbitmq.connect()
                opened.append(("rabbitmq", rabbitmq.close))
        except Exception:
            logger.error("Failed to initialize dependencies", exc_info=True)
            await _release(reversed(opened), logger)
            raise

        user_repo = UserRepository(db)
        user_use_case = UserUseCase(user_repo, db, logger=logger)

        return cls(
            settings=settings,
            logger=logger,
            db=db,
            redis_client=redis_client,
            rabbitmq=rabbitmq,
            user_repo=user_repo,
            user_use_case=user_use_case,
        )

    async def cleanup(self):
        """Libera broker, cache e banco, nessa ordem, uma única vez"""
        if self._cleaned:
            return
        self._cleaned = True

        steps: List[Tuple[str, Callable[[], Awaitable[None]]]] = []
        if self.rabbitmq is not None:
            steps.append(("rabbitmq", self.rabbitmq.close))
        steps.append(("redis", self.redis_client.disconnect))
        steps.append(("database", self.db.disconnect))
        await _release(steps, self.logger)
        self.logger.info("Dependencies cleaned up")


async def _release(steps, logger: logging.Logger) -> None:
    for name, close in steps:
        try:
            await close()
        except Exception as e:
            logger.error(f"Error closing {name}: {e}", exc_info=True)
