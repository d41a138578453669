import logging
import random
from datetime import datetime, timezone

from app.tasks.context import TaskContext
from app.tasks.dependencies import Dependencies
from app.tasks.poller.poller import Poller

METRICS_CACHE_KEY = "metrics:latest"


class MetricsCollectHandler:
    """Coleta métricas simuladas e guarda o último snapshot no cache"""

    def __init__(self, deps: Dependencies, logger: logging.Logger):
        self.deps = deps
        self.logger = logger.getChild("metrics-collect-handler")

    def register(self, poller: Poller) -> None:
        poller.register("metrics-collect", 30, self.execute)

    async def execute(self, ctx: TaskContext) -> None:
        self.logger.info("Collecting system metrics")

        metrics = {
            "requests_per_second": float(random.randint(0, 999)),
            "response_time_ms": float(random.randint(0, 499)),
            "error_rate": random.random() * 0.1,
            "collected_at": datetime.now(timezone.utc).isoformat(),
        }
        await self.deps.redis_client.set_cache(METRICS_CACHE_KEY, metrics, ttl=300)

        self.logger.info(
            f"Metrics collected: rps={metrics['requests_per_second']} "
            f"response_time_ms={metrics['response_time_ms']} error_rate={metrics['error_rate']:.4f}"
        )
