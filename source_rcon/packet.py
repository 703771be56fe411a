"""RCON 包编解码（纯函数，无 I/O）

线格式（小端）：
    int32 size | int32 id | int32 type | body | \\x00\\x00
其中 size = 4 + 4 + len(body) + 2，不含 size 字段本身。
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, Optional

from .errors import MalformedPacket
from .protocol import HEADER_SIZE, MAX_INBOUND_PACKET_SIZE, MIN_PACKET_SIZE

_HEADER = struct.Struct("<iii")
_SIZE = struct.Struct("<i")


@dataclass(frozen=True)
class Packet:
    size: int
    id: int
    type: int
    body: bytes

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")


def encode(ptype: int, req_id: int, body: str) -> bytes:
    payload = body.encode("utf-8")
    return _HEADER.pack(len(payload) + 10, req_id, ptype) + payload + b"\x00\x00"


def decode(data: bytes) -> Packet:
    """按头部声明的 size 切出 body（去掉两个 \\x00），不校验缓冲区是否足够长。"""
    if len(data) < HEADER_SIZE:
        raise MalformedPacket(f"RCON header truncated: {len(data)} bytes")
    size, req_id, ptype = _HEADER.unpack_from(data)
    return Packet(size=size, id=req_id, type=ptype, body=bytes(data[HEADER_SIZE : size + 2]))


class PacketReader:
    """把任意切分的入站字节块拼成完整帧。

    只有缓冲区里凑够 size + 4 字节时才交给 decode，
    剩余字节留给下一帧。
    """

    def __init__(self):
        self._buf = bytearray()

    def __len__(self) -> int:
        return len(self._buf)

    def feed(self, chunk: bytes) -> None:
        self._buf.extend(chunk)

    def clear(self) -> None:
        self._buf.clear()

    def next_packet(self) -> Optional[Packet]:
        if len(self._buf) < 4:
            return None

        (size,) = _SIZE.unpack_from(self._buf)
        if size < MIN_PACKET_SIZE:
            raise MalformedPacket(f"Invalid RCON packet length: {size}")
        if size > MAX_INBOUND_PACKET_SIZE:
            raise MalformedPacket(f"RCON packet too large: {size} > {MAX_INBOUND_PACKET_SIZE}")

        total = size + 4
        if len(self._buf) < total:
            return None

        frame = bytes(self._buf[:total])
        del self._buf[:total]

        if frame[-2:] != b"\x00\x00":
            raise MalformedPacket("Invalid RCON payload terminator")

        return decode(frame)

    def packets(self) -> Iterator[Packet]:
        while True:
            packet = self.next_packet()
            if packet is None:
                return
            yield packet

    def __iter__(self) -> Iterator[Packet]:
        return self.packets()
