"""Source RCON 协议常量

参考：https://developer.valvesoftware.com/wiki/Source_RCON_Protocol
"""

# ========== 包类型 ==========
SERVERDATA_AUTH = 3
SERVERDATA_EXECCOMMAND = 2
SERVERDATA_AUTH_RESPONSE = 2  # 与 EXECCOMMAND 同数值但语义不同
SERVERDATA_RESPONSE_VALUE = 0

# ========== 保留 id（均在命令 id 范围 [1, 255] 之外）==========
ID_AUTH = 0x999
ID_TERM = 0x888
ID_AUTH_FAILED = -1

# 服务端对空 RESPONSE_VALUE 回显后追加的尾包 body
TERM_TRAILER = b"\x00\x01\x00\x00"

COMMAND_ID_MIN = 1
COMMAND_ID_MAX = 255

# ========== 帧结构 ==========
HEADER_SIZE = 12  # size + id + type
MIN_PACKET_SIZE = 10  # id + type + 两个 \x00
MAX_INBOUND_PACKET_SIZE = 1024 * 1024  # 1MB 上限：防御异常 length

# 服务端单包上限约 4096，超过该值说明后面可能还有分包
MULTI_PACKET_THRESHOLD = 3700

# ========== 默认配置 ==========
DEFAULT_PORT = 27015
DEFAULT_TIMEOUT = 5.0
DEFAULT_MAX_PACKET_SIZE = 4096
