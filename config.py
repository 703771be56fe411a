"""配置管理模块"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

from source_rcon import RconConfig
from source_rcon.protocol import DEFAULT_MAX_PACKET_SIZE, DEFAULT_PORT, DEFAULT_TIMEOUT

PLACEHOLDER_PASSWORD = "CHANGE_ME"


@dataclass
class RconConsoleConfig:
    """RCON 控制台插件配置"""

    enabled: bool = True

    # 权限
    admins: list[str] = field(default_factory=list)

    # RCON
    rcon_host: str = "127.0.0.1"
    rcon_port: int = DEFAULT_PORT
    rcon_password: str = ""
    timeout: float = DEFAULT_TIMEOUT
    max_packet_size: int = DEFAULT_MAX_PACKET_SIZE

    # 输出控制
    max_output: int = 1500

    def __post_init__(self):
        self.admins = self._parse_list(self.admins)
        self.rcon_port = int(self.rcon_port)
        self.timeout = float(self.timeout)
        self.max_packet_size = int(self.max_packet_size)
        self.max_output = int(self.max_output)

    @staticmethod
    def _parse_list(value) -> list[str]:
        """解析列表配置（支持字符串多行格式，每行一个）"""
        if isinstance(value, list):
            return [str(x).strip() for x in value if str(x).strip()]
        if isinstance(value, str) and value.strip():
            return [
                line.strip()
                for line in value.split("\n")
                if line.strip() and not line.strip().startswith("#")
            ]
        return []

    @classmethod
    def from_dict(cls, config: dict) -> RconConsoleConfig:
        """从字典创建配置对象（只取声明过的字段）"""
        return cls(**{k: v for k, v in config.items() if k in cls.__annotations__})

    @classmethod
    def from_yaml(cls, path: Path) -> RconConsoleConfig:
        """读取 config.yml（rcon 相关项在 rcon 小节下）"""
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        rcon = data.get("rcon") or {}

        flat = {k: v for k, v in data.items() if k != "rcon"}
        for key in ("host", "port", "password"):
            if rcon.get(key) is not None:
                flat[f"rcon_{key}"] = rcon[key]
        for key in ("timeout", "max_packet_size"):
            if rcon.get(key) is not None:
                flat[key] = rcon[key]
        return cls.from_dict(flat)

    @staticmethod
    def default_dict() -> dict:
        return {
            "enabled": True,
            "admins": [111, 222, 333],
            "rcon": {
                "host": "127.0.0.1",
                "port": DEFAULT_PORT,
                "password": PLACEHOLDER_PASSWORD,
                "timeout": DEFAULT_TIMEOUT,
                "max_packet_size": DEFAULT_MAX_PACKET_SIZE,
            },
            "max_output": 1500,
        }

    @classmethod
    def write_default(cls, path: Path) -> None:
        Path(path).write_text(
            yaml.safe_dump(cls.default_dict(), allow_unicode=True, sort_keys=False),
            encoding="utf-8",
        )

    @property
    def is_rcon_ready(self) -> bool:
        password = str(self.rcon_password).strip()
        return bool(self.rcon_host and self.rcon_port and password and password != PLACEHOLDER_PASSWORD)

    def to_rcon_config(self) -> RconConfig:
        return RconConfig(
            host=str(self.rcon_host),
            port=self.rcon_port,
            timeout=self.timeout,
            max_packet_size=self.max_packet_size,
        )
