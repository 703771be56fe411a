"""响应收集策略

协议本身没有"后面还有数据"的标志，命令响应可能被拆成多个包。
这里把判定响应结束的办法做成可替换的策略，会话状态机只负责收发。

- AuthAggregator：认证握手，等待真正的 AUTH_RESPONSE
- ProbeAggregator：默认策略，遇到大于 3700 字节的分包才发送终止探针
- TerminatorAggregator：命令后立即发送终止探针，读到探针回显即结束
"""

from __future__ import annotations

import logging
from typing import AsyncIterator, Awaitable, Callable

from .errors import AuthenticationFailed, MalformedPacket, RconConnectionError
from .packet import Packet
from .protocol import (
    ID_AUTH,
    ID_AUTH_FAILED,
    ID_TERM,
    MIN_PACKET_SIZE,
    MULTI_PACKET_THRESHOLD,
    SERVERDATA_AUTH_RESPONSE,
    SERVERDATA_RESPONSE_VALUE,
    TERM_TRAILER,
)

logger = logging.getLogger(__name__)

SendPacket = Callable[[int, int, str], Awaitable[None]]


class ResponseAggregator:
    def __init__(self, request_id: int):
        self.request_id = request_id

    async def collect(self, packets: AsyncIterator[Packet], send: SendPacket):
        raise NotImplementedError


class AuthAggregator(ResponseAggregator):
    """认证阶段：服务端会先回一个空的 RESPONSE_VALUE，只有 AUTH_RESPONSE 才算数。"""

    def __init__(self, request_id: int = ID_AUTH):
        super().__init__(request_id)

    async def collect(self, packets: AsyncIterator[Packet], send: SendPacket) -> bool:
        async for packet in packets:
            if packet.size < MIN_PACKET_SIZE:
                raise MalformedPacket(f"Invalid RCON packet length: {packet.size}")

            if packet.type != SERVERDATA_AUTH_RESPONSE:
                logger.debug("discarding type=%s id=%s during auth", packet.type, packet.id)
                continue

            return packet.id != ID_AUTH_FAILED

        raise RconConnectionError("RCON connection closed during authentication")


class _CommandAggregator(ResponseAggregator):
    def __init__(self, request_id: int):
        super().__init__(request_id)
        self._buf = bytearray()
        self.probes_sent = 0
        self.probes_pending = 0

    @property
    def text(self) -> str:
        return self._buf.decode("utf-8", errors="replace")

    async def _probe(self, send: SendPacket) -> None:
        await send(SERVERDATA_RESPONSE_VALUE, ID_TERM, "")
        self.probes_sent += 1
        self.probes_pending += 1
        logger.debug("sent termination probe #%s for id=%s", self.probes_sent, self.request_id)

    def _check(self, packet: Packet) -> None:
        if packet.size < MIN_PACKET_SIZE:
            raise MalformedPacket(f"Invalid RCON packet length: {packet.size}")
        if packet.id == ID_AUTH_FAILED:
            raise AuthenticationFailed()

    def _is_stale(self, packet: Packet) -> bool:
        if packet.id == ID_TERM:
            # Source 服务端在回显之后还会补一个 body 为 00 01 00 00 的包
            return self.probes_pending == 0 or packet.body == TERM_TRAILER
        return packet.id != self.request_id or packet.type != SERVERDATA_RESPONSE_VALUE


class ProbeAggregator(_CommandAggregator):
    async def collect(self, packets: AsyncIterator[Packet], send: SendPacket) -> str:
        async for packet in packets:
            self._check(packet)

            if self._is_stale(packet):
                logger.debug("discarding stale packet id=%s type=%s", packet.id, packet.type)
                continue

            if packet.id == ID_TERM:
                # 探针回显只标志一批分包结束，不计入响应
                self.probes_pending -= 1
                if self.probes_pending == 0:
                    return self.text
                continue

            self._buf.extend(packet.body)

            if packet.size > MULTI_PACKET_THRESHOLD:
                await self._probe(send)
            elif self.probes_pending == 0:
                return self.text

        raise RconConnectionError("RCON connection closed before response completed")


class TerminatorAggregator(_CommandAggregator):
    async def collect(self, packets: AsyncIterator[Packet], send: SendPacket) -> str:
        # 终止包（空命令）：服务端按顺序处理，回显一定排在所有分包之后
        await self._probe(send)

        async for packet in packets:
            self._check(packet)

            if self._is_stale(packet):
                logger.debug("discarding stale packet id=%s type=%s", packet.id, packet.type)
                continue

            if packet.id == ID_TERM:
                self.probes_pending -= 1
                return self.text

            self._buf.extend(packet.body)

        raise RconConnectionError("RCON connection closed before response completed")
