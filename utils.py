"""辅助工具模块"""

from __future__ import annotations


def parse_command_args(event_message_str: str, command: str) -> str | None:
    """
    解析指令参数，兼容以下输入：
    1) "/rcon status"
    2) "rcon status"
    3) "status"（框架已剥离命令名）

    返回：只包含参数部分，例如 "status"
    """
    s = " ".join((event_message_str or "").split())
    if not s:
        return None

    # 兼容全角斜杠
    if s.startswith("／"):
        s = "/" + s[1:]

    cmd = command.strip().lstrip("/").lower()
    s_lower = s.lower()

    prefix = f"/{cmd}"
    if s_lower.startswith(prefix) and (len(s) == len(prefix) or s[len(prefix)] == " "):
        args = s[len(prefix):].strip()
        return args or None

    if s_lower.startswith(cmd) and (len(s) == len(cmd) or s[len(cmd)] == " "):
        args = s[len(cmd):].strip()
        return args or None

    # 框架已剥离命令名，整串就是参数
    return s


def truncate_text(text: str, max_len: int) -> str:
    if text is None:
        return ""
    if max_len <= 0 or len(text) <= max_len:
        return text
    return text[:max_len] + f"\n...（已截断，原长度 {len(text)} 字符）"
