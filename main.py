import asyncio
from pathlib import Path
from typing import Optional

from astrbot.api import logger
from astrbot.api.event import AstrMessageEvent, filter
from astrbot.api.star import Context, Star, StarTools, register

from config import RconConsoleConfig
from message_formatter import MessageFormatter
from source_rcon import (
    PacketTooLarge,
    RconAuthError,
    RconError,
    RconSession,
    RconTimeout,
)
from utils import parse_command_args, truncate_text

COMMAND_NAME = "rcon"


@register("sourcercon", "Source RCON 控制台", "使用 Source RCON 向游戏服务器发送控制台命令", "1.0.0")
class SourceRconPlugin(Star):
    def __init__(self, context: Context):
        super().__init__(context)

        self.config: Optional[RconConsoleConfig] = None
        self._ready = False
        self._rcon_lock = asyncio.Lock()

        # 使用插件专属数据目录（符合 AstrBot 规范）
        data_dir: Path = StarTools.get_data_dir(self.plugin_name)
        data_dir.mkdir(parents=True, exist_ok=True)
        self._config_path = data_dir / "config.yml"

        # 连接复用
        self._session: Optional[RconSession] = None

    async def initialize(self):
        try:
            if not self._config_path.exists():
                RconConsoleConfig.write_default(self._config_path)
                logger.warning(
                    "[rcon] 未找到 config.yml，已在插件数据目录生成默认配置：%s。"
                    "请修改 admins 与 rcon.password（不要留 CHANGE_ME），然后重启插件。",
                    str(self._config_path),
                )
                self._ready = False
                return

            self.config = RconConsoleConfig.from_yaml(self._config_path)

            if not self.config.admins:
                logger.error("[rcon] 配置错误：admins 必须是非空列表")
                self._ready = False
                return

            if not self.config.is_rcon_ready:
                logger.error("[rcon] 配置错误：rcon.host/port/password 必填且 password 不能为 CHANGE_ME")
                self._ready = False
                return

            self._ready = self.config.enabled
            logger.info("[rcon] 配置加载完成，插件已就绪。config=%s", str(self._config_path))

        except Exception as e:
            logger.error("[rcon] 初始化失败：%s", e, exc_info=True)
            self._ready = False

    def _is_admin(self, user_id) -> bool:
        if user_id is None:
            return False
        return str(user_id) in set(self.config.admins)

    async def _get_session(self) -> RconSession:
        """返回已认证的会话；未连接/未认证时自动重连+认证"""
        if self._session is None:
            self._session = RconSession(self.config.to_rcon_config())

        if not self._session.authenticated:
            if not await self._session.authenticate(self.config.rcon_password):
                raise RconAuthError("RCON auth failed (bad password?)")
        return self._session

    async def _reset_session(self) -> None:
        # 超时或协议异常后旧连接上可能还有残留包，直接丢弃整条连接
        if self._session is not None:
            await self._session.disconnect()
        self._session = None

    @filter.command(COMMAND_NAME)
    async def rcon(self, event: AstrMessageEvent):
        if not self._ready:
            yield event.plain_result(MessageFormatter.format_not_ready())
            return

        if not self._is_admin(event.get_sender_id()):
            yield event.plain_result(MessageFormatter.format_no_permission())
            return

        command = parse_command_args(event.message_str, COMMAND_NAME)
        if not command:
            yield event.plain_result(MessageFormatter.format_usage())
            return

        async with self._rcon_lock:
            try:
                session = await self._get_session()
                result = await session.execute(command)
                result = truncate_text(result.strip("\n"), self.config.max_output)
                yield event.plain_result(MessageFormatter.format_exec_result(command, result))

            except PacketTooLarge:
                yield event.plain_result(MessageFormatter.format_too_large(self.config.max_packet_size))

            except RconAuthError:
                await self._reset_session()
                yield event.plain_result(MessageFormatter.format_auth_failed())

            except RconTimeout:
                logger.warning("[rcon] 命令超时：%s", command)
                await self._reset_session()
                yield event.plain_result(MessageFormatter.format_timeout(self.config.timeout))

            except RconError as e:
                logger.error("[rcon] 执行失败：%s", e, exc_info=True)
                await self._reset_session()
                yield event.plain_result(MessageFormatter.format_exec_failed())

    async def terminate(self):
        await self._reset_session()
        logger.info("[rcon] 插件已卸载/停用")
