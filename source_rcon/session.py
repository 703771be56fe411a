"""RCON 会话：连接/认证状态机

状态：未连接 -> 已连接未认证 -> 已认证；disconnect() 在任意状态回到未连接。
同一连接上同一时刻只允许一个请求，内部用 asyncio.Lock 串行化。
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from .aggregator import AuthAggregator, ProbeAggregator, ResponseAggregator
from .errors import (
    AlreadyAuthenticated,
    NotAuthenticated,
    NotConnected,
    PacketTooLarge,
    RconTimeout,
    UnableToAuthenticate,
)
from .packet import Packet, PacketReader, encode
from .protocol import (
    COMMAND_ID_MAX,
    COMMAND_ID_MIN,
    DEFAULT_MAX_PACKET_SIZE,
    DEFAULT_PORT,
    DEFAULT_TIMEOUT,
    ID_AUTH,
    SERVERDATA_AUTH,
    SERVERDATA_EXECCOMMAND,
)
from .transport import StreamTransport, Transport

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RconConfig:
    host: str
    port: int = DEFAULT_PORT
    timeout: float = DEFAULT_TIMEOUT
    max_packet_size: int = DEFAULT_MAX_PACKET_SIZE  # 0 表示不限制


class RconSession:
    """
    Source RCON 客户端会话
    - authenticate(): 建立连接并认证；密码错误返回 False 并断开
    - execute(): 执行命令并收集（可能多包的）响应
    - disconnect(): 关闭连接，可重复调用
    """

    def __init__(
        self,
        cfg: RconConfig,
        *,
        transport_factory: Callable[[], Transport] = StreamTransport,
        rng: Optional[random.Random] = None,
        aggregator_factory: Callable[[int], ResponseAggregator] = ProbeAggregator,
    ):
        self.cfg = cfg
        self._transport_factory = transport_factory
        self._rng = rng or random.Random()
        self._aggregator_factory = aggregator_factory

        self._transport: Optional[Transport] = None
        self._chunks: Optional[AsyncIterator[bytes]] = None
        self._frames = PacketReader()
        self._lock = asyncio.Lock()

        self._connected = False
        self._authenticated = False

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    async def __aenter__(self) -> RconSession:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()

    async def _connect(self) -> None:
        transport = self._transport_factory()
        await transport.connect(self.cfg.host, self.cfg.port)
        self._transport = transport
        self._chunks = None
        self._frames.clear()
        self._connected = True
        logger.info("RCON connected to %s:%s", self.cfg.host, self.cfg.port)

    async def disconnect(self) -> None:
        self._authenticated = False
        self._connected = False
        transport, self._transport = self._transport, None
        self._chunks = None
        self._frames.clear()
        if transport is not None:
            await transport.close()

    async def _send_packet(self, ptype: int, req_id: int, body: str) -> None:
        data = encode(ptype, req_id, body)
        limit = self.cfg.max_packet_size
        if limit > 0 and len(data) > limit:
            raise PacketTooLarge(f"Packet size too big: {len(data)} > {limit}")
        if self._transport is None:
            raise NotConnected()
        await self._transport.write(data)

    async def _packets(self) -> AsyncIterator[Packet]:
        while True:
            for packet in self._frames:
                yield packet

            if self._chunks is None:
                self._chunks = self._transport.chunks()
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                # 对端关闭：连接已不可用
                logger.warning("RCON connection closed by %s:%s", self.cfg.host, self.cfg.port)
                await self.disconnect()
                return
            self._frames.feed(chunk)

    async def _request(self, ptype: int, req_id: int, body: str, aggregator: ResponseAggregator):
        try:
            await self._send_packet(ptype, req_id, body)
            return await aggregator.collect(self._packets(), self._send_packet)
        except asyncio.CancelledError:
            # 被取消的读可能停在半个帧上，下一次读从新的迭代器开始
            self._chunks = None
            raise

    async def _with_timeout(self, coro, what: str):
        """整个调用（含等锁、连接）共用一个截止时间"""
        try:
            return await asyncio.wait_for(coro, timeout=self.cfg.timeout)
        except asyncio.TimeoutError as e:
            logger.warning("RCON %s timed out after %ss", what, self.cfg.timeout)
            raise RconTimeout(f"RCON {what} timed out after {self.cfg.timeout}s") from e

    async def _authenticate(self, password: str) -> bool:
        async with self._lock:
            if self._authenticated:
                raise AlreadyAuthenticated()

            if not self._connected:
                await self._connect()

            ok = await self._request(SERVERDATA_AUTH, ID_AUTH, password, AuthAggregator(ID_AUTH))
            if not ok:
                logger.info("RCON auth rejected by %s:%s", self.cfg.host, self.cfg.port)
                await self.disconnect()
                return False

            self._authenticated = True
            logger.info("RCON authenticated to %s:%s", self.cfg.host, self.cfg.port)
            return True

    async def authenticate(self, password: str) -> bool:
        if self._authenticated:
            raise AlreadyAuthenticated()

        try:
            return await self._with_timeout(self._authenticate(password), "auth")
        except AlreadyAuthenticated:
            raise
        except Exception:
            # 认证失败不保留半认证状态
            await self.disconnect()
            raise

    def _next_command_id(self) -> int:
        return self._rng.randint(COMMAND_ID_MIN, COMMAND_ID_MAX)

    async def _execute(self, command: str) -> str:
        async with self._lock:
            # 等锁期间可能已被断开
            if not self._authenticated:
                raise NotAuthenticated()

            cmd_id = self._next_command_id()
            logger.debug("RCON exec id=%s: %s", cmd_id, command)
            return await self._request(SERVERDATA_EXECCOMMAND, cmd_id, command, self._aggregator_factory(cmd_id))

    async def execute(self, command: str) -> str:
        if not self._connected:
            raise NotConnected()
        if not self._authenticated:
            raise NotAuthenticated()

        return await self._with_timeout(self._execute(command), "command")


async def rcon_command(
    host: str,
    port: int,
    password: str,
    command: str,
    timeout: float = DEFAULT_TIMEOUT,
    **kwargs,
) -> str:
    """一次性执行：连接、认证、执行、断开。密码错误抛 UnableToAuthenticate。"""
    async with RconSession(RconConfig(host=host, port=port, timeout=timeout), **kwargs) as session:
        if not await session.authenticate(password):
            raise UnableToAuthenticate()
        return await session.execute(command)
