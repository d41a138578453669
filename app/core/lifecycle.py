"""Ciclo de vida do processo: servidores, hooks e sinais de parada

Ordem garantida::

    before_start -> servidores iniciados -> after_start
    -> (sinal ou erro de servidor) -> before_stop
    -> servidores parados (cada um limitado por stop_timeout) -> after_stop
"""
import asyncio
import logging
import signal
import uuid
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Protocol, Sequence

DEFAULT_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGQUIT)
DEFAULT_STOP_TIMEOUT = 10.0


class Server(Protocol):
    async def start(self) -> None:
        """Bloqueia até o servidor ser parado ou falhar"""

    async def stop(self) -> None:
        """Idempotente e seguro mesmo antes de ``start``"""


Hook = Callable[["Application"], Awaitable[None]]


class Application:
    def __init__(
        self,
        logger: Optional[logging.Logger] = None,
        *,
        id: Optional[str] = None,
        name: str = "",
        version: str = "",
        metadata: Optional[Dict[str, str]] = None,
        signals: Sequence[int] = DEFAULT_SIGNALS,
        stop_timeout: float = DEFAULT_STOP_TIMEOUT,
        servers: Iterable[Server] = (),
        before_start: Iterable[Hook] = (),
        after_start: Iterable[Hook] = (),
        before_stop: Iterable[Hook] = (),
        after_stop: Iterable[Hook] = (),
    ):
        self.logger = logger or logging.getLogger(__name__)
        self._id = id or str(uuid.uuid4())
        self._name = name
        self._version = version
        self._metadata = dict(metadata or {})
        self.signals = tuple(signals)
        self.stop_timeout = stop_timeout
        self.servers: List[Server] = list(servers)
        self.before_start: List[Hook] = list(before_start)
        self.after_start: List[Hook] = list(after_start)
        self.before_stop: List[Hook] = list(before_stop)
        self.after_stop: List[Hook] = list(after_stop)

        self._done = asyncio.Event()
        self._stopping = False
        self._ran = False
        self._signal_task: Optional[asyncio.Future] = None

    @property
    def id(self) -> str:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def version(self) -> str:
        return self._version

    @property
    def metadata(self) -> Dict[str, str]:
        return dict(self._metadata)

    async def run(self) -> None:
        """Executa a aplicação até receber um sinal ou um servidor falhar"""
        if self._ran:
            raise RuntimeError("application already ran")
        self._ran = True

        for hook in self.before_start:
            await hook(self)

        started = [asyncio.Event() for _ in self.servers]
        serve_tasks = [
            asyncio.create_task(self._serve(server, event), name=f"server:{i}")
            for i, (server, event) in enumerate(zip(self.servers, started))
        ]
        watchers = [
            asyncio.create_task(self._watch(server, task), name=f"watcher:{i}")
            for i, (server, task) in enumerate(zip(self.servers, serve_tasks))
        ]

        loop = asyncio.get_running_loop()
        installed: List[int] = []
        try:
            await asyncio.gather(*(event.wait() for event in started))

            for hook in self.after_start:
                await hook(self)

            for sig in self.signals:
                loop.add_signal_handler(sig, self._on_signal, sig)
                installed.append(sig)

            self.logger.info(f"Application {self._name} {self._version} started ({self._id})")

            await self._done.wait()
            results = await asyncio.gather(*serve_tasks, return_exceptions=True)
            await asyncio.gather(*watchers, return_exceptions=True)
        except BaseException:
            # erro em hook after_start ou cancelamento do próprio run
            await self._safe_stop()
            await asyncio.gather(*serve_tasks, *watchers, return_exceptions=True)
            raise
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)

        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, asyncio.CancelledError):
                raise result

        first_error: Optional[BaseException] = None
        for hook in self.after_stop:
            try:
                await hook(self)
            except Exception as e:
                self.logger.error(f"After-stop hook failed: {e}", exc_info=True)
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error

        self.logger.info(f"Application {self._name} stopped")

    async def stop(self) -> None:
        """Executa os hooks before_stop uma única vez e dispara a parada dos servidores"""
        if self._stopping:
            return
        self._stopping = True

        first_error: Optional[BaseException] = None
        try:
            for hook in self.before_stop:
                try:
                    await hook(self)
                except Exception as e:
                    self.logger.error(f"Before-stop hook failed: {e}", exc_info=True)
                    if first_error is None:
                        first_error = e
        finally:
            self._done.set()

        if first_error is not None:
            raise first_error

    def _on_signal(self, sig: int) -> None:
        self.logger.info(f"Received signal {signal.Signals(sig).name}, shutting down")
        self._signal_task = asyncio.ensure_future(self._safe_stop())

    async def _safe_stop(self) -> None:
        try:
            await self.stop()
        except Exception as e:
            self.logger.error(f"Error while stopping application: {e}", exc_info=True)

    async def _serve(self, server: Server, started: asyncio.Event) -> None:
        started.set()
        try:
            await server.start()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not self._done.is_set():
                self.logger.error(f"Server {type(server).__name__} failed: {e}", exc_info=True)
                await self._safe_stop()
            raise

    async def _watch(self, server: Server, serve_task: asyncio.Task) -> None:
        loop = asyncio.get_running_loop()
        await self._done.wait()
        deadline = loop.time() + self.stop_timeout
        name = type(server).__name__

        try:
            async with asyncio.timeout_at(deadline):
                await server.stop()
        except TimeoutError:
            self.logger.error(f"Server {name} did not stop within {self.stop_timeout}s")
        except Exception as e:
            self.logger.error(f"Error stopping server {name}: {e}", exc_info=True)

        if serve_task.done():
            return
        # aguarda o start retornar dentro do que sobrou do prazo
        await asyncio.wait([serve_task], timeout=max(0.0, deadline - loop.time()))
        if not serve_task.done():
            self.logger.error(f"Server {name} abandoned after {self.stop_timeout}s stop timeout")
            serve_task.cancel()
