import logging
from typing import Any, List, Optional

from app.core.errors import AppError, BusinessError, Reason, log_level_for
from app.domain.repositories.user_repository import UserRepository
from app.infrastructure.database.prisma_db import Database


class UserUseCase:
    """Regras de negócio de usuários usadas pelas tasks"""

    def __init__(self, repo: UserRepository, db: Database, logger: Optional[logging.Logger] = None):
        self.repo = repo
        self.db = db
        self.logger = logger.getChild("user-use-case") if logger else logging.getLogger(__name__)

    async def get_by_id(self, user_id: int):
        try:
            return await self.repo.find_by_id(user_id)
        except AppError as e:
            self.logger.log(log_level_for(e), f"Get user {user_id} failed: {e}")
            raise

    async def list_enabled(self, limit: int = 100) -> List[Any]:
        users, _ = await self.repo.list({"enabled": True}, limit=limit)
        return users

    async def set_enabled(self, user_id: int, enabled: bool):
        """Habilita ou desabilita o usuário em uma única transação"""

        async def apply():
            user = await self.repo.find_by_id(user_id)
            if user.enabled == enabled:
                raise BusinessError(
                    "user already in requested state",
                    Reason.INVALID_STATE,
                    {"user_id": user_id, "enabled": enabled},
                )
            return await self.repo.update(user_id, {"enabled": enabled})

        try:
            user = await self.db.transaction(apply)
        except AppError as e:
            self.logger.log(log_level_for(e), f"Set enabled={enabled} on user {user_id} failed: {e}")
            raise

        self.logger.info(f"User {user_id} {'enabled' if enabled else 'disabled'}")
        return user
