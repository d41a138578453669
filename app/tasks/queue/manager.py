"""Gerenciador de consumers e publicação de tasks via RabbitMQ"""
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from aio_pika.abc import AbstractIncomingMessage

from app.core.errors import InternalError, TaskAlreadyExistsError
from app.infrastructure.mq.rabbitmq import RabbitMQ
from app.tasks.queue.message import Action, HandlerError, Message, QueueHandler
from app.tasks.queue.options import ConsumerOptions, PublishOptions

DEFAULT_EXCHANGE = "layout-admin"


@dataclass
class _Registration:
    name: str
    queue_name: str
    handler: QueueHandler
    options: ConsumerOptions


class QueueManager:
    """Registra consumers com veredito de ack e publica tasks em JSON"""

    def __init__(self, rabbitmq: RabbitMQ, exchange: str = DEFAULT_EXCHANGE, logger: Optional[logging.Logger] = None):
        self.rabbitmq = rabbitmq
        self.exchange = exchange or DEFAULT_EXCHANGE
        self.logger = logger.getChild("queue") if logger else logging.getLogger(__name__)
        self._consumers: Dict[str, _Registration] = {}

    @property
    def tasks_exchange(self) -> str:
        return self.exchange

    async def register_consumer(self, name: str, queue_name: str, handler: QueueHandler, **options: Any) -> None:
        """Inicia um consumer na fila ``queue_name``

        Opções aceitas: veja ``ConsumerOptions``.
        """
        if not name:
            raise ValueError("consumer name is required")
        if not queue_name:
            raise ValueError("queue name is required")
        if handler is None:
            raise ValueError("handler is required")
        if name in self._consumers:
            raise TaskAlreadyExistsError(name)

        opts = ConsumerOptions(**options)
        registration = _Registration(name=name, queue_name=queue_name, handler=handler, options=opts)

        async def on_message(delivery: AbstractIncomingMessage) -> None:
            await self._handle(registration, delivery)

        # reserva o nome antes do await para barrar registros concorrentes
        self._consumers[name] = registration
        try:
            await self.rabbitmq.start_consumer(
                name,
                queue_name,
                on_message,
                exchange=opts.exchange or self.exchange,
                routing_key=opts.routing_key or queue_name,
                durable=opts.durable,
                auto_delete=opts.auto_delete,
                concurrency=opts.concurrency,
                prefetch=opts.prefetch,
            )
        except Exception:
            self._consumers.pop(name, None)
            raise

    async def _handle(self, registration: _Registration, delivery: AbstractIncomingMessage) -> None:
        message = Message.from_delivery(delivery)
        action = await self._invoke(registration, message)
        await self._settle(registration, delivery, action)

    async def _invoke(self, registration: _Registration, message: Message) -> Action:
        try:
            result = await registration.handler(message)
        except HandlerError as e:
            self.logger.error(
                f"Handler {registration.name} failed on message {message.message_id}: {e}",
                exc_info=True,
            )
            return e.action
        except Exception as e:
            self.logger.error(
                f"Handler {registration.name} failed on message {message.message_id}: {e}",
                exc_info=True,
            )
            return Action.NACK_REQUEUE

        if not isinstance(result, Action):
            self.logger.warning(f"Handler {registration.name} returned unknown action {result!r}, acking")
            return Action.ACK
        return result

    async def _settle(self, registration: _Registration, delivery: AbstractIncomingMessage, action: Action) -> None:
        try:
            if action is Action.ACK:
                await delivery.ack()
            elif action is Action.NACK_DISCARD:
                await delivery.reject(requeue=False)
            elif action is Action.NACK_REQUEUE:
                delay = registration.options.requeue_delay
                if delay > 0:
                    await asyncio.sleep(delay)
                await delivery.nack(requeue=True)
        except Exception as e:
            self.logger.error(
                f"Failed to {action.value} message {delivery.delivery_tag} on {registration.name}: {e}",
                exc_info=True,
            )

    async def publish_task(self, routing_key: str, payload: Any, **options: Any) -> None:
        """Publica ``payload`` codificado em JSON

        Payloads não serializáveis levantam TypeError/ValueError antes do
        envio; falhas do broker viram InternalError.
        """
        opts = PublishOptions(**options)
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        exchange = opts.exchange or self.exchange

        properties: Dict[str, Any] = {
            "content_type": opts.content_type,
            "delivery_mode": opts.delivery_mode,
            "priority": opts.priority,
            "headers": opts.headers,
        }
        if opts.expiration is not None:
            properties["expiration"] = opts.expiration
        if opts.correlation_id:
            properties["correlation_id"] = opts.correlation_id
        if opts.reply_to:
            properties["reply_to"] = opts.reply_to
        if opts.message_id:
            properties["message_id"] = opts.message_id

        try:
            await self.rabbitmq.publish(body, exchange, [routing_key], **properties)
        except Exception as e:
            self.logger.error(f"Failed to publish task to {exchange}/{routing_key}: {e}", exc_info=True)
            raise InternalError("failed to publish task").with_meta(
                exchange=exchange, routing_key=routing_key
            ) from e

        self.logger.debug(f"Task published to {exchange}/{routing_key}")

    async def stop_consumer(self, name: str) -> None:
        if self._consumers.pop(name, None) is None:
            return
        await self.rabbitmq.stop_consumer(name)
        self.logger.info(f"Consumer {name} stopped")

    async def stop_all_consumers(self) -> None:
        for name in list(self._consumers):
            try:
                await self.stop_consumer(name)
            except Exception as e:
                self.logger.error(f"Error stopping consumer {name}: {e}", exc_info=True)

    def list_consumers(self) -> List[str]:
        return list(self._consumers)
