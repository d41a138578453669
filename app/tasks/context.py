import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional


@dataclass(frozen=True)
class TaskContext:
    """Contexto de uma execução de task agendada ou de polling

    ``deadline`` usa o relógio do event loop (``loop.time()``); o runner
    cancela o handler quando ele é atingido.
    """

    name: str
    deadline: Optional[float] = None
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def remaining(self) -> Optional[float]:
        """Segundos até o deadline, ou None se não houver"""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - asyncio.get_running_loop().time())


TaskHandler = Callable[[TaskContext], Awaitable[None]]
