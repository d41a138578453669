"""Fakes em memória para broker, banco e cache"""
import asyncio
import itertools
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import aio_pika
import pytest


# ---------------------------------------------------------------- broker

class FakeDelivery:
    """Entrega no formato de aio_pika.IncomingMessage"""

    _tags = itertools.count(1)

    def __init__(self, body: bytes, queue: "FakeQueue" = None, **props):
        self.body = body
        self.queue = queue
        self.delivery_tag = next(self._tags)
        self.message_id = props.get("message_id")
        self.correlation_id = props.get("correlation_id")
        self.reply_to = props.get("reply_to")
        self.timestamp = props.get("timestamp")
        self.headers = props.get("headers") or {}
        self.settled: List[str] = []

    def _settle(self, verdict: str):
        self.settled.append(verdict)
        if self.queue is not None:
            self.queue.unacked -= 1

    async def ack(self):
        self._settle("ack")

    async def reject(self, requeue: bool = False):
        self._settle("reject-requeue" if requeue else "reject")
        if requeue and self.queue is not None:
            self.queue.deliver(self.body)

    async def nack(self, requeue: bool = True):
        self._settle("nack-requeue" if requeue else "nack")
        if requeue and self.queue is not None:
            self.queue.deliver(self.body)


class FakeQueue:
    def __init__(self, name: str, durable: bool = True, auto_delete: bool = False):
        self.name = name
        self.durable = durable
        self.auto_delete = auto_delete
        self.callback = None
        self.unacked = 0
        self.deliveries: List[FakeDelivery] = []
        self.cancelled = False
        self._tasks = set()

    async def consume(self, callback):
        self.callback = callback
        return f"ctag-{self.name}"

    async def cancel(self, tag):
        self.cancelled = True
        self.callback = None

    async def bind(self, exchange, routing_key):
        exchange.bindings.append((routing_key, self))

    def deliver(self, body: bytes) -> Optional[FakeDelivery]:
        if self.callback is None:
            return None
        delivery = FakeDelivery(body, self)
        self.unacked += 1
        self.deliveries.append(delivery)
        task = asyncio.get_running_loop().create_task(self.callback(delivery))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return delivery


class FakeExchange:
    def __init__(self, name: str):
        self.name = name
        self.bindings = []
        self.published = []

    async def publish(self, message, routing_key):
        self.published.append((message, routing_key))
        for key, queue in self.bindings:
            if key == routing_key:
                queue.deliver(message.body)


class FakeChannel:
    def __init__(self, broker: "FakeBroker", publisher_confirms: bool = False):
        self.broker = broker
        self.publisher_confirms = publisher_confirms
        self.prefetch = None
        self.closed = False
        self.default_exchange = broker.exchange("")

    async def set_qos(self, prefetch_count: int):
        self.prefetch = prefetch_count

    async def declare_exchange(self, name, type=None, durable=True, auto_delete=False):
        self.broker.declared_exchanges.append((name, durable, auto_delete))
        return self.broker.exchange(name)

    async def declare_queue(self, name, durable=True, auto_delete=False):
        return self.broker.queue(name, durable, auto_delete)

    async def close(self):
        self.closed = True
        self.broker.events.append(("channel-closed", self.publisher_confirms))


class FakeConnection:
    def __init__(self, broker: "FakeBroker"):
        self.broker = broker
        self.channels: List[FakeChannel] = []
        self.closed = False

    async def channel(self, publisher_confirms: bool = False):
        channel = FakeChannel(self.broker, publisher_confirms)
        self.channels.append(channel)
        return channel

    async def close(self):
        self.closed = True
        self.broker.events.append(("connection-closed", None))


class FakeBroker:
    def __init__(self):
        self.exchanges: Dict[str, FakeExchange] = {}
        self.queues: Dict[str, FakeQueue] = {}
        self.declared_exchanges = []
        self.events = []
        self.connection: Optional[FakeConnection] = None

    def exchange(self, name: str) -> FakeExchange:
        return self.exchanges.setdefault(name, FakeExchange(name))

    def queue(self, name: str, durable: bool = True, auto_delete: bool = False) -> FakeQueue:
        return self.queues.setdefault(name, FakeQueue(name, durable, auto_delete))

    async def connect_robust(self, url: str):
        self.connection = FakeConnection(self)
        return self.connection


@pytest.fixture
def broker(monkeypatch):
    fake = FakeBroker()
    monkeypatch.setattr(aio_pika, "connect_robust", fake.connect_robust)
    return fake


# ---------------------------------------------------------------- database

class FakeUserTable:
    def __init__(self, users: List[Dict[str, Any]]):
        self.rows = {u["id"]: dict(u) for u in users}
        self.fail = False

    def _check(self):
        if self.fail:
            raise ConnectionError("database unavailable")

    @staticmethod
    def _match(row, where):
        return all(row.get(k) == v for k, v in (where or {}).items())

    async def find_unique(self, where):
        self._check()
        row = self.rows.get(where["id"])
        return SimpleNamespace(**row) if row else None

    async def find_many(self, where=None, take=None, skip=0, order=None):
        self._check()
        rows = [r for r in sorted(self.rows.values(), key=lambda r: r["id"]) if self._match(r, where)]
        rows = rows[skip:]
        if take is not None:
            rows = rows[:take]
        return [SimpleNamespace(**r) for r in rows]

    async def count(self, where=None):
        self._check()
        return sum(1 for r in self.rows.values() if self._match(r, where))

    async def update(self, where, data):
        self._check()
        row = self.rows.get(where["id"])
        if row is None:
            return None
        row.update(data)
        return SimpleNamespace(**row)


class FakeTransaction:
    def __init__(self, client: "FakePrisma"):
        self.client = client

    async def __aenter__(self):
        self.snapshot = {k: dict(v) for k, v in self.client.user.rows.items()}
        self.client.tx_events.append("begin")
        return self.client

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.client.tx_events.append("commit")
        else:
            self.client.user.rows = self.snapshot
            self.client.tx_events.append("rollback")
        return False


class FakePrisma:
    """Client Prisma mínimo: tabela de usuários e transações com snapshot"""

    def __init__(self, users=None):
        self.user = FakeUserTable(users or [])
        self.connected = False
        self.tx_events: List[str] = []

    async def connect(self):
        self.connected = True

    async def disconnect(self):
        self.connected = False

    def is_connected(self):
        return self.connected

    async def query_raw(self, query):
        return [{"?column?": 1}]

    def tx(self):
        return FakeTransaction(self)


USERS = [
    {"id": 1, "name": "Admin User", "email": "admin@example.com", "enabled": True},
    {"id": 2, "name": "Jane", "email": "jane@example.com", "enabled": True},
    {"id": 3, "name": "Bob", "email": "bob@example.com", "enabled": False},
]


@pytest.fixture
def prisma():
    return FakePrisma(USERS)


# ---------------------------------------------------------------- cache

class FakeRedis:
    def __init__(self):
        self.data: Dict[str, str] = {}
        self.closed = False

    async def ping(self):
        return True

    async def get(self, key):
        return self.data.get(key)

    async def setex(self, key, ttl, value):
        self.data[key] = value

    async def delete(self, key):
        self.data.pop(key, None)

    async def aclose(self):
        self.closed = True
