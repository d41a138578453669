"""Cliente RabbitMQ sobre aio-pika

A conexão robusta do aio-pika reconecta sozinha e restaura canais, QoS,
declarações e consumers; este módulo só organiza canais por consumer,
o canal de publicação e a ordem de fechamento.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

import aio_pika
from aio_pika.abc import (
    AbstractChannel,
    AbstractExchange,
    AbstractIncomingMessage,
    AbstractQueue,
    AbstractRobustConnection,
)

MessageCallback = Callable[[AbstractIncomingMessage], Awaitable[None]]


class OutgoingMessage(aio_pika.Message):
    """aio_pika.Message cuja expiração vai ao broker como informada, em ms

    O aio-pika converte a expiração a partir de segundos em float e pode
    perder um milissegundo (1001 vira "1000").
    """

    def __init__(self, body: bytes, *, expiration: Optional[Union[int, str]] = None, **kwargs: Any):
        super().__init__(body, **kwargs)
        self._expiration_ms = None if expiration is None else str(int(expiration))

    @property
    def properties(self):
        properties = super().properties
        properties.expiration = self._expiration_ms
        return properties


class Consumer:
    """Consumer com ``concurrency`` dispatchers sequenciais e uma única assinatura"""

    def __init__(
        self,
        name: str,
        channel: AbstractChannel,
        queue: AbstractQueue,
        callback: MessageCallback,
        concurrency: int = 1,
        logger: Optional[logging.Logger] = None,
    ):
        self.name = name
        self.channel = channel
        self.queue = queue
        self.callback = callback
        self.concurrency = max(1, concurrency)
        self.logger = logger or logging.getLogger(__name__)

        self._inbox: asyncio.Queue = asyncio.Queue()
        self._dispatchers: List[asyncio.Task] = []
        self._consumer_tag: Optional[str] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        self._dispatchers = [
            asyncio.create_task(self._dispatch(), name=f"consumer:{self.name}:{i}")
            for i in range(self.concurrency)
        ]
        self._consumer_tag = await self.queue.consume(self._on_message)

    async def _on_message(self, message: AbstractIncomingMessage) -> None:
        await self._inbox.put(message)

    async def _dispatch(self) -> None:
        while True:
            message = await self._inbox.get()
            if message is None:
                return
            try:
                await self.callback(message)
            except Exception as e:
                self.logger.error(f"Unhandled error in consumer {self.name}: {e}", exc_info=True)

    async def close(self) -> None:
        """Cancela a assinatura, devolve o que não foi despachado e aguarda os dispatchers"""
        if self._closed:
            return
        self._closed = True

        if self._consumer_tag is not None:
            try:
                await self.queue.cancel(self._consumer_tag)
            except Exception as e:
                self.logger.warning(f"Error cancelling consumer {self.name}: {e}")

        # mensagens recebidas por prefetch mas ainda não entregues ao handler
        while not self._inbox.empty():
            pending = self._inbox.get_nowait()
            if pending is None:
                continue
            try:
                await pending.nack(requeue=True)
            except Exception as e:
                self.logger.warning(f"Error requeueing pending message on {self.name}: {e}")

        for _ in self._dispatchers:
            self._inbox.put_nowait(None)
        if self._dispatchers:
            await asyncio.gather(*self._dispatchers, return_exceptions=True)

        try:
            await self.channel.close()
        except Exception as e:
            self.logger.warning(f"Error closing channel of consumer {self.name}: {e}")

        self.logger.info(f"Consumer {self.name} closed")


class RabbitMQ:
    """Conexão única com o broker, canal de publicação e consumers por nome"""

    def __init__(self, url: str, logger: Optional[logging.Logger] = None):
        self.url = url
        self.logger = logger.getChild("rabbitmq") if logger else logging.getLogger(__name__)
        self.connection: Optional[AbstractRobustConnection] = None
        self._publisher: Optional[AbstractChannel] = None
        self._exchanges: Dict[str, AbstractExchange] = {}
        self._consumers: Dict[str, Consumer] = {}
        self._closed = False

    async def connect(self) -> None:
        """Abre a conexão e o canal de publicação (com publisher confirms)"""
        self.connection = await aio_pika.connect_robust(self.url)
        self._publisher = await self.connection.channel(publisher_confirms=True)
        self.logger.info("Connected to RabbitMQ")

    def _require_connection(self) -> AbstractRobustConnection:
        if self.connection is None or self._closed:
            raise RuntimeError("RabbitMQ client not connected")
        return self.connection

    async def start_consumer(
        self,
        name: str,
        queue_name: str,
        callback: MessageCallback,
        *,
        exchange: str,
        routing_key: str,
        durable: bool = True,
        auto_delete: bool = False,
        concurrency: int = 1,
        prefetch: int = 10,
    ) -> Consumer:
        connection = self._require_connection()
        channel = await connection.channel()
        try:
            await channel.set_qos(prefetch_count=prefetch)
            ex = await channel.declare_exchange(
                exchange,
                aio_pika.ExchangeType.DIRECT,
                durable=True,
                auto_delete=False,
            )
            queue = await channel.declare_queue(queue_name, durable=durable, auto_delete=auto_delete)
            await queue.bind(ex, routing_key=routing_key)

            consumer = Consumer(name, channel, queue, callback, concurrency, logger=self.logger)
            await consumer.start()
        except Exception:
            await channel.close()
            raise

        self._consumers[name] = consumer
        self.logger.info(
            f"Consumer {name} started on queue {queue_name} "
            f"(exchange={exchange}, routing_key={routing_key}, concurrency={consumer.concurrency})"
        )
        return consumer

    async def stop_consumer(self, name: str) -> None:
        consumer = self._consumers.pop(name, None)
        if consumer is not None:
            await consumer.close()

    async def _get_exchange(self, name: str) -> AbstractExchange:
        if not name:
            return self._publisher.default_exchange
        exchange = self._exchanges.get(name)
        if exchange is None:
            exchange = await self._publisher.declare_exchange(
                name,
                aio_pika.ExchangeType.DIRECT,
                durable=True,
                auto_delete=False,
            )
            self._exchanges[name] = exchange
        return exchange

    async def publish(self, body: bytes, exchange: str, routing_keys: Sequence[str], **properties: Any) -> None:
        """Publica ``body`` em cada routing key; ``expiration`` em milissegundos"""
        self._require_connection()
        target = await self._get_exchange(exchange)
        message = OutgoingMessage(body, **properties)
        for routing_key in routing_keys:
            await target.publish(message, routing_key=routing_key)

    async def close(self) -> None:
        """Fecha consumers, depois o canal de publicação e por último a conexão"""
        if self._closed:
            return
        self._closed = True

        for name in list(self._consumers):
            try:
                await self.stop_consumer(name)
            except Exception as e:
                self.logger.error(f"Error stopping consumer {name}: {e}", exc_info=True)

        if self._publisher is not None:
            try:
                await self._publisher.close()
            except Exception as e:
                self.logger.error(f"Error closing publisher channel: {e}", exc_info=True)

        if self.connection is not None:
            try:
                await self.connection.close()
            except Exception as e:
                self.logger.error(f"Error closing RabbitMQ connection: {e}", exc_info=True)

        self.logger.info("RabbitMQ connection closed")
