"""RCON 异常定义"""

from __future__ import annotations

from typing import Optional


class RconError(Exception):
    default_message = "RCON error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)


class RconAuthError(RconError):
    pass


class AlreadyAuthenticated(RconError):
    default_message = "Already authenticated"


class UnableToAuthenticate(RconAuthError):
    default_message = "Unable to authenticate"


class AuthenticationFailed(RconAuthError):
    default_message = "Server reported an authentication failure"


class NotAuthenticated(RconError):
    default_message = "Not authenticated"


# 未连接必然未认证
class NotConnected(NotAuthenticated):
    default_message = "Not connected"


class PacketTooLarge(RconError):
    default_message = "Packet size too big"


class MalformedPacket(RconError):
    default_message = "Unable to parse response"


class RconTimeout(RconError):
    default_message = "RCON request timed out"


class RconConnectionError(RconError):
    default_message = "RCON connection error"
