"""Tests for the built-in task handlers and their registries."""
import json
import logging
from types import SimpleNamespace

import pytest

from app.domain.repositories.user_repository import UserRepository
from app.infrastructure.cache.redis_client import RedisClient
from app.infrastructure.database.prisma_db import Database
from app.tasks.context import TaskContext
from app.tasks.poller.poller import Poller
from app.tasks.poller.tasks import registry as poller_registry
from app.tasks.poller.tasks.metrics_collect import METRICS_CACHE_KEY, MetricsCollectHandler
from app.tasks.queue.message import Action, HandlerError, Message
from app.tasks.queue.tasks import registry as queue_registry
from app.tasks.queue.tasks.example_task import ExampleHandler as QueueExampleHandler
from app.tasks.queue.tasks.notification import NotificationHandler
from app.tasks.scheduler.scheduler import Scheduler
from app.tasks.scheduler.tasks import registry as scheduler_registry
from app.tasks.scheduler.tasks.example_task import ExampleHandler as ScheduledExampleHandler

from conftest import FakeRedis

LOGGER = logging.getLogger("test-tasks")


class RecordingManager:
    def __init__(self):
        self.consumers = {}
        self.published = []

    async def register_consumer(self, name, queue_name, handler, **options):
        self.consumers[name] = (queue_name, handler, options)

    async def publish_task(self, routing_key, payload, **options):
        self.published.append((routing_key, payload, options))


@pytest.fixture
async def deps(prisma):
    db = Database("postgresql://localhost/test", client=prisma)
    await db.connect()
    redis_client = RedisClient("redis://localhost:6379/0")
    redis_client.client = FakeRedis()
    return SimpleNamespace(db=db, redis_client=redis_client, user_repo=UserRepository(db))


@pytest.mark.asyncio
async def test_scheduler_registry(deps):
    scheduler = Scheduler()
    scheduler_registry.register_all(scheduler, deps, LOGGER)
    assert sorted(scheduler.list_tasks()) == ["example-task", "status-check"]


@pytest.mark.asyncio
async def test_poller_registry(deps):
    poller = Poller()
    poller_registry.register_all(poller, deps, LOGGER)

    assert poller.get_task_interval("example-task") == 3600
    assert poller.get_task_interval("metrics-collect") == 30


@pytest.mark.asyncio
async def test_queue_registry(deps):
    manager = RecordingManager()
    await queue_registry.register_all(manager, deps, LOGGER)

    queue_name, _, options = manager.consumers["example-handler"]
    assert queue_name == "example-queue"
    assert options == {"concurrency": 3}

    queue_name, _, options = manager.consumers["notification-handler"]
    assert queue_name == "notification-handler"
    assert options == {"routing_key": "notification"}


@pytest.mark.asyncio
async def test_registry_propagates_registration_errors(deps):
    scheduler = Scheduler()
    scheduler.register("example-task", "@hourly", lambda ctx: None)

    with pytest.raises(Exception, match="task already exists"):
        scheduler_registry.register_all(scheduler, deps, LOGGER)


@pytest.mark.asyncio
async def test_scheduled_example_looks_up_user(deps, caplog):
    handler = ScheduledExampleHandler(deps, LOGGER)
    with caplog.at_level(logging.INFO):
        await handler.execute(TaskContext(name="example-task"))
    assert any("Admin User" in r.getMessage() for r in caplog.records)


@pytest.mark.asyncio
async def test_metrics_collect_stores_snapshot(deps):
    await MetricsCollectHandler(deps, LOGGER).execute(TaskContext(name="metrics-collect"))

    snapshot = await deps.redis_client.get_cache(METRICS_CACHE_KEY)
    assert set(snapshot) == {"requests_per_second", "response_time_ms", "error_rate", "collected_at"}
    assert 0 <= snapshot["error_rate"] < 0.1


@pytest.mark.asyncio
async def test_queue_example_acks_known_user(deps):
    handler = QueueExampleHandler(deps, LOGGER)
    assert await handler.execute(Message(body=b'{"user_id": 2}')) is Action.ACK


@pytest.mark.asyncio
@pytest.mark.parametrize("body", [b"not json", b"[]", b'{"other": 1}'])
async def test_queue_example_discards_bad_payload(deps, body):
    with pytest.raises(HandlerError) as exc_info:
        await QueueExampleHandler(deps, LOGGER).execute(Message(body=body))
    assert exc_info.value.action is Action.NACK_DISCARD


@pytest.mark.asyncio
async def test_queue_example_discards_unknown_user(deps):
    with pytest.raises(HandlerError) as exc_info:
        await QueueExampleHandler(deps, LOGGER).execute(Message(body=b'{"user_id": 99}'))
    assert exc_info.value.action is Action.NACK_DISCARD


@pytest.mark.asyncio
async def test_queue_example_requeues_on_infrastructure_error(deps, prisma):
    prisma.user.fail = True
    with pytest.raises(HandlerError) as exc_info:
        await QueueExampleHandler(deps, LOGGER).execute(Message(body=b'{"user_id": 1}'))
    assert exc_info.value.action is Action.NACK_REQUEUE


@pytest.mark.asyncio
async def test_notification_publish_and_consume(deps):
    manager = RecordingManager()
    handler = NotificationHandler(deps, LOGGER)
    await handler.register(manager)

    await handler.publish("42", "Welcome", "Hello there")
    routing_key, payload, options = manager.published[0]
    assert routing_key == "notification"
    assert payload == {"user_id": "42", "title": "Welcome", "message": "Hello there"}
    assert options == {"priority": 9}

    _, consume, _ = manager.consumers["notification-handler"]
    action = await consume(Message(body=json.dumps(payload).encode()))
    assert action is Action.ACK

    with pytest.raises(HandlerError) as exc_info:
        await consume(Message(body=b"{}"))
    assert exc_info.value.action is Action.NACK_REQUEUE
