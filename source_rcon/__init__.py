"""Source RCON 协议客户端（纯 asyncio）"""

from .aggregator import AuthAggregator, ProbeAggregator, ResponseAggregator, TerminatorAggregator
from .errors import (
    AlreadyAuthenticated,
    AuthenticationFailed,
    MalformedPacket,
    NotAuthenticated,
    NotConnected,
    PacketTooLarge,
    RconAuthError,
    RconConnectionError,
    RconError,
    RconTimeout,
    UnableToAuthenticate,
)
from .packet import Packet, PacketReader, decode, encode
from .session import RconConfig, RconSession, rcon_command
from .transport import StreamTransport, Transport

__all__ = [
    "AlreadyAuthenticated",
    "AuthAggregator",
    "AuthenticationFailed",
    "MalformedPacket",
    "NotAuthenticated",
    "NotConnected",
    "Packet",
    "PacketReader",
    "PacketTooLarge",
    "ProbeAggregator",
    "RconAuthError",
    "RconConfig",
    "RconConnectionError",
    "RconError",
    "RconSession",
    "RconTimeout",
    "ResponseAggregator",
    "StreamTransport",
    "TerminatorAggregator",
    "Transport",
    "UnableToAuthenticate",
    "decode",
    "encode",
    "rcon_command",
]
