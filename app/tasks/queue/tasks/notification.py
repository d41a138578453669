import asyncio
import json
import logging
from typing import Optional

from pydantic import BaseModel

from app.tasks.dependencies import Dependencies
from app.tasks.queue.manager import QueueManager
from app.tasks.queue.message import from_body_handler
from app.tasks.queue.tasks.options import HIGH_PRIORITY

ROUTING_KEY = "notification"


class NotificationPayload(BaseModel):
    user_id: str
    title: str
    message: str


class NotificationHandler:
    def __init__(self, deps: Dependencies, logger: logging.Logger):
        self.deps = deps
        self.logger = logger.getChild("notification-handler")
        self.manager: Optional[QueueManager] = None

    async def register(self, manager: QueueManager) -> None:
        self.manager = manager
        await manager.register_consumer(
            "notification-handler",
            "notification-handler",
            from_body_handler(self.execute),
            routing_key=ROUTING_KEY,
        )

    async def publish(self, user_id: str, title: str, message: str) -> None:
        """Enfileira uma notificação com prioridade alta e entrega persistente"""
        payload = NotificationPayload(user_id=user_id, title=title, message=message)
        await self.manager.publish_task(ROUTING_KEY, payload.model_dump(), priority=HIGH_PRIORITY)

    async def execute(self, body: bytes) -> None:
        payload = NotificationPayload.model_validate(json.loads(body))
        self.logger.info(f"Processing notification for user {payload.user_id}: {payload.title}")

        # envio simulado
        await asyncio.sleep(0.3)

        self.logger.info("Notification sent successfully")
