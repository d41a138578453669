"""Acesso ao banco via Prisma, com transação propagada por contextvars"""
import logging
from contextvars import ContextVar
from typing import Any, Awaitable, Callable, Optional, TypeVar
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

T = TypeVar("T")


def with_pool_params(url: str, pool_size: int, pool_timeout: float) -> str:
    """Adiciona connection_limit e pool_timeout na URL do datasource"""
    parts = urlsplit(url)
    query = dict(parse_qsl(parts.query))
    query.setdefault("connection_limit", str(pool_size))
    query.setdefault("pool_timeout", str(int(pool_timeout)))
    return urlunsplit(parts._replace(query=urlencode(query)))


class Database:
    """Dono do client Prisma

    Dentro de ``transaction()`` o ``client()`` devolve o client da
    transação; fora dela, o client base.
    """

    def __init__(
        self,
        url: Optional[str],
        pool_size: int = 25,
        pool_timeout: float = 10.0,
        logger: Optional[logging.Logger] = None,
        client: Any = None,
    ):
        self.url = url
        self.pool_size = pool_size
        self.pool_timeout = pool_timeout
        self.logger = logger.getChild("database") if logger else logging.getLogger(__name__)
        self._client = client
        self._tx: ContextVar[Any] = ContextVar(f"prisma_tx_{id(self)}", default=None)

    async def connect(self) -> None:
        if self._client is None:
            if not self.url:
                raise RuntimeError("DATABASE_URL is not configured")
            # o client só existe depois do `prisma generate`
            from prisma import Prisma  # type: ignore

            self._client = Prisma(
                datasource={"url": with_pool_params(self.url, self.pool_size, self.pool_timeout)}
            )
        await self._client.connect()
        self.logger.info("Connected to database")

    async def disconnect(self) -> None:
        if self._client is None:
            return
        if self._client.is_connected():
            await self._client.disconnect()
            self.logger.info("Disconnected from database")

    async def ping(self) -> bool:
        if self._client is None or not self._client.is_connected():
            return False
        try:
            await self._client.query_raw("SELECT 1")
            return True
        except Exception as e:
            self.logger.error(f"Database ping failed: {e}")
            return False

    def client(self) -> Any:
        tx = self._tx.get()
        if tx is not None:
            return tx
        if self._client is None:
            raise RuntimeError("Database not connected")
        return self._client

    async def transaction(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Executa ``fn`` dentro de uma transação

        Commit quando ``fn`` retorna, rollback quando levanta. Chamadas
        aninhadas reutilizam a transação corrente.
        """
        if self._tx.get() is not None:
            return await fn()

        async with self.client().tx() as tx:
            token = self._tx.set(tx)
            try:
                return await fn()
            finally:
                self._tx.reset(token)
