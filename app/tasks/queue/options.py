from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from aio_pika import DeliveryMode

DEFAULT_PREFETCH = 10
DEFAULT_REQUEUE_DELAY = 1.0
MAX_PRIORITY = 9


@dataclass
class ConsumerOptions:
    """Opções de registro de um consumer

    ``exchange`` vazio usa a exchange padrão do manager e ``routing_key``
    vazio usa o nome da fila.
    """

    exchange: str = ""
    routing_key: str = ""
    durable: bool = True
    auto_delete: bool = False
    concurrency: int = 1
    prefetch: int = DEFAULT_PREFETCH
    requeue_delay: float = DEFAULT_REQUEUE_DELAY

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {self.concurrency}")
        if self.prefetch < 0:
            raise ValueError(f"prefetch must be >= 0, got {self.prefetch}")
        if self.requeue_delay < 0:
            raise ValueError(f"requeue_delay must be >= 0, got {self.requeue_delay}")


@dataclass
class PublishOptions:
    exchange: str = ""
    content_type: str = "application/json"
    delivery_mode: DeliveryMode = DeliveryMode.PERSISTENT
    priority: int = 0
    # milissegundos, no formato string esperado pelo broker
    expiration: Optional[str] = None
    correlation_id: Optional[str] = None
    reply_to: Optional[str] = None
    message_id: Optional[str] = None
    headers: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.priority = max(0, min(MAX_PRIORITY, int(self.priority)))
        if isinstance(self.delivery_mode, int):
            self.delivery_mode = DeliveryMode(self.delivery_mode)
        if self.expiration is not None:
            self.expiration = format_expiration(int(self.expiration))


def format_expiration(milliseconds: int) -> str:
    """TTL da mensagem como string de milissegundos"""
    if milliseconds < 0:
        raise ValueError(f"expiration must be >= 0, got {milliseconds}")
    return str(milliseconds)
