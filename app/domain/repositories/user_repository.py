import logging
from typing import Any, Dict, List, Optional, Tuple

from app.core.errors import BusinessError, InternalError, Reason
from app.infrastructure.database.prisma_db import Database

logger = logging.getLogger(__name__)


class UserRepository:
    """Leitura e escrita de usuários; usa a transação corrente quando houver"""

    def __init__(self, db: Database):
        self.db = db

    async def find_by_id(self, user_id: int):
        try:
            user = await self.db.client().user.find_unique(where={"id": user_id})
        except Exception as e:
            raise InternalError("failed to find user").with_meta(user_id=user_id) from e
        if user is None:
            raise BusinessError("user not found", Reason.NOT_FOUND, {"user_id": user_id})
        return user

    async def list(
        self,
        filters: Optional[Dict[str, Any]] = None,
        limit: int = 20,
        offset: int = 0,
        order: Optional[Dict[str, str]] = None,
    ) -> Tuple[List[Any], int]:
        """Lista usuários paginados e o total que atende aos filtros"""
        where = dict(filters or {})
        try:
            client = self.db.client()
            total = await client.user.count(where=where)
            users = await client.user.find_many(
                where=where,
                take=limit,
                skip=offset,
                order=order or {"id": "asc"},
            )
        except Exception as e:
            raise InternalError("failed to list users") from e
        return users, total

    async def update(self, user_id: int, data: Dict[str, Any]):
        try:
            user = await self.db.client().user.update(where={"id": user_id}, data=data)
        except Exception as e:
            raise InternalError("failed to update user").with_meta(user_id=user_id) from e
        if user is None:
            raise BusinessError("user not found", Reason.NOT_FOUND, {"user_id": user_id})
        logger.debug(f"User {user_id} updated: {sorted(data)}")
        return user
