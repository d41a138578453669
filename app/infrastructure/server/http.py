import asyncio
import contextlib
import logging
from typing import Optional

import uvicorn
from fastapi import FastAPI


class _EmbeddedServer(uvicorn.Server):
    """uvicorn sem tratamento próprio de sinais: quem para é o ciclo de vida"""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


class HTTPServer:
    """Servidor HTTP (FastAPI + uvicorn) no contrato start/stop do ciclo de vida"""

    def __init__(self, app: FastAPI, host: str = "0.0.0.0", port: int = 8080, logger: Optional[logging.Logger] = None):
        self.app = app
        self.host = host
        self.port = port
        self.logger = logger.getChild("http") if logger else logging.getLogger(__name__)
        config = uvicorn.Config(app, host=host, port=port, log_config=None, lifespan="on")
        self._server = _EmbeddedServer(config)
        self._stopped = asyncio.Event()

    async def start(self) -> None:
        if self._stopped.is_set():
            return
        self.logger.info(f"HTTP server listening on {self.host}:{self.port}")
        try:
            await self._server.serve()
        except SystemExit as e:
            # uvicorn encerra com sys.exit quando não consegue abrir a porta
            raise RuntimeError(f"HTTP server failed to bind {self.host}:{self.port}") from e
        if not self._stopped.is_set() and not self._server.started:
            raise RuntimeError(f"HTTP server failed to start on {self.host}:{self.port}")

    async def stop(self) -> None:
        if self._stopped.is_set():
            return
        self._stopped.set()
        self._server.should_exit = True
        self.logger.info("HTTP server stopping")
