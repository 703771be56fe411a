"""消息格式化模块"""

from __future__ import annotations


class MessageFormatter:
    @staticmethod
    def format_exec_result(command: str, output: str) -> str:
        return f"✅ 已执行：{command}\n📤 返回：{output or '(无输出)'}"

    @staticmethod
    def format_no_permission() -> str:
        return "❌ 你没有权限使用该指令"

    @staticmethod
    def format_not_ready() -> str:
        return "⚠️ 插件未就绪：请检查插件数据目录下的 config.yml 并重启插件"

    @staticmethod
    def format_usage() -> str:
        return "用法：/rcon <控制台命令>"

    @staticmethod
    def format_auth_failed() -> str:
        return "❌ RCON 认证失败：请检查 config.yml 的 rcon.password"

    @staticmethod
    def format_too_large(limit: int) -> str:
        return f"❌ 命令过长：超过 {limit} 字节的包上限"

    @staticmethod
    def format_timeout(seconds: float) -> str:
        return f"⏱️ RCON 请求超时（{seconds:g} 秒），连接已重置"

    @staticmethod
    def format_exec_failed() -> str:
        return "❌ RCON 执行失败：请检查服务器地址/端口/防火墙/RCON 是否开启"
