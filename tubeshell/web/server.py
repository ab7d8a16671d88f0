"""
Embedded uvicorn server.

Runs a FastAPI app inside the shell's event loop. The socket is bound
before uvicorn starts so a busy port is reported here (and the server
stays stopped) instead of uvicorn exiting the process.
"""

from __future__ import annotations

import asyncio
import contextlib
import socket
from typing import Optional

import uvicorn
from fastapi import FastAPI

from tubeshell.obs import logger
from tubeshell.utils import spawn


class ShellServer(uvicorn.Server):
    """uvicorn server that leaves process signal handling to the shell."""

    @contextlib.contextmanager
    def capture_signals(self):
        yield

    def install_signal_handlers(self) -> None:
        pass


def bind_socket(host: str, port: int) -> socket.socket:
    family = socket.AF_INET6 if ":" in host else socket.AF_INET
    sock = socket.socket(family, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(128)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock


class EmbeddedServer:
    def __init__(self, app: FastAPI, name: str = "server"):
        self.app = app
        self.name = name
        self.host: Optional[str] = None
        self.port: Optional[int] = None
        self._server: Optional[uvicorn.Server] = None
        self._socket: Optional[socket.socket] = None
        self._task: Optional[asyncio.Task] = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def url(self) -> Optional[str]:
        if not self.running:
            return None
        return f"http://{self.host}:{self.port}"

    async def start(self, host: str, port: int) -> bool:
        """
        Start listening. Starting on the current address is a no-op; a new
        address restarts the server.

        Returns:
            True if the server is running afterwards
        """
        if self.running:
            if (host, port) == (self.host, self.port):
                return True
            await self.stop()

        try:
            sock = bind_socket(host, port)
        except OSError as e:
            logger.error(f"{self.name}: cannot listen on {host}:{port}: {e}")
            return False

        # The real port, in case 0 was requested
        self.host, self.port = host, sock.getsockname()[1]
        self._socket = sock
        config = uvicorn.Config(self.app, log_config=None, log_level="warning", lifespan="off", access_log=False)
        self._server = ShellServer(config)
        self._task = spawn(self._server.serve(sockets=[sock]), self._tasks, name=f"{self.name}-serve")
        logger.info(f"{self.name}: listening on http://{self.host}:{self.port}")
        return True

    async def stop(self) -> None:
        if self._server is None:
            return
        server, task, sock = self._server, self._task, self._socket
        self._server = self._task = self._socket = None

        server.should_exit = True
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                task.cancel()
                logger.warning(f"{self.name}: did not stop in time, cancelled")
            except Exception as e:
                logger.error(f"{self.name}: server failed: {e}")
        if sock is not None:
            sock.close()
        logger.info(f"{self.name}: stopped")
