"""Contrato dos handlers de fila: mensagem recebida e veredito de ack"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional


class Action(str, Enum):
    """Veredito que o handler devolve para cada entrega"""

    ACK = "ack"
    NACK_DISCARD = "nack_discard"
    NACK_REQUEUE = "nack_requeue"
    # o handler confirma a entrega por conta própria via ``message.raw``
    MANUAL = "manual"


class HandlerError(Exception):
    """Erro de handler que carrega o veredito a aplicar na entrega"""

    def __init__(self, message: str, action: Action = Action.NACK_REQUEUE):
        super().__init__(message)
        self.action = action


@dataclass
class Message:
    body: bytes
    delivery_tag: Optional[int] = None
    message_id: Optional[str] = None
    correlation_id: Optional[str] = None
    reply_to: Optional[str] = None
    timestamp: Optional[datetime] = None
    headers: Dict[str, Any] = field(default_factory=dict)
    # entrega nativa do aio-pika
    raw: Any = None

    @classmethod
    def from_delivery(cls, delivery) -> "Message":
        return cls(
            body=delivery.body,
            delivery_tag=delivery.delivery_tag,
            message_id=delivery.message_id,
            correlation_id=delivery.correlation_id,
            reply_to=delivery.reply_to,
            timestamp=delivery.timestamp,
            headers=dict(delivery.headers or {}),
            raw=delivery,
        )


QueueHandler = Callable[[Message], Awaitable[Action]]
BodyHandler = Callable[[bytes], Awaitable[None]]


def from_body_handler(func: BodyHandler) -> QueueHandler:
    """Adapta ``async def func(body) -> None`` para o contrato com veredito

    Sucesso vira ACK; qualquer exceção vira NACK_REQUEUE.
    """
    async def handler(message: Message) -> Action:
        try:
            await func(message.body)
        except Exception as e:
            raise HandlerError(str(e), Action.NACK_REQUEUE) from e
        return Action.ACK

    handler.__name__ = getattr(func, "__name__", "body_handler")
    return handler
