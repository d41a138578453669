import json
import logging

from app.core.errors import Reason, is_reason
from app.tasks.dependencies import Dependencies
from app.tasks.queue.manager import QueueManager
from app.tasks.queue.message import Action, HandlerError, Message


class ExampleHandler:
    """Consome ``{"user_id": int}`` e busca o usuário

    Payload inválido ou usuário inexistente são descartados; demais falhas
    voltam para a fila.
    """

    def __init__(self, deps: Dependencies, logger: logging.Logger):
        self.deps = deps
        self.logger = logger.getChild("example-handler")

    async def register(self, manager: QueueManager) -> None:
        await manager.register_consumer("example-handler", "example-queue", self.execute, concurrency=3)

    async def execute(self, message: Message) -> Action:
        try:
            payload = json.loads(message.body)
            user_id = int(payload["user_id"])
        except (ValueError, TypeError, KeyError) as e:
            raise HandlerError(f"failed to unmarshal payload: {e}", Action.NACK_DISCARD) from e

        try:
            user = await self.deps.user_repo.find_by_id(user_id)
        except Exception as e:
            action = Action.NACK_DISCARD if is_reason(e, Reason.NOT_FOUND) else Action.NACK_REQUEUE
            raise HandlerError(str(e), action) from e

        self.logger.info(f"Successfully processed user {user.name}")
        return Action.ACK
