"""传输层：一个已连接的双向字节流

会话只依赖 Transport 的四个操作，测试里可以替换成脚本化的假实现。
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import AsyncIterator, Optional

from .errors import NotConnected, RconConnectionError

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class Transport:
    async def connect(self, host: str, port: int) -> None:
        raise NotImplementedError

    async def write(self, data: bytes) -> None:
        raise NotImplementedError

    def chunks(self) -> AsyncIterator[bytes]:
        """入站字节块序列；对端关闭时结束。"""
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError

    @property
    def is_open(self) -> bool:
        raise NotImplementedError


class StreamTransport(Transport):
    """基于 asyncio.open_connection 的 TCP 传输"""

    def __init__(self):
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self, host: str, port: int) -> None:
        try:
            self._reader, self._writer = await asyncio.open_connection(host, port)
        except OSError as e:
            raise RconConnectionError(f"RCON connect failed: {e}") from e
        logger.debug("connected to %s:%s", host, port)

    async def write(self, data: bytes) -> None:
        if not self.is_open:
            raise NotConnected("RCON not connected")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as e:
            raise RconConnectionError(f"RCON write failed: {e}") from e

    async def chunks(self) -> AsyncIterator[bytes]:
        if self._reader is None:
            raise NotConnected("RCON not connected")
        while True:
            try:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
            except OSError as e:
                raise RconConnectionError(f"RCON read failed: {e}") from e
            if not chunk:
                return
            yield chunk

    async def close(self) -> None:
        writer = self._writer
        self._reader = None
        self._writer = None
        if writer is None:
            return
        writer.close()
        # 对端已断开时 wait_closed 可能抛错，此时连接本来就没了
        with contextlib.suppress(OSError):
            await writer.wait_closed()
