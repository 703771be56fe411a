#!/usr/bin/env python3
"""命令行：认证后执行一条 RCON 命令，结果输出到控制台或追加到 rcon-result.txt"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from source_rcon import RconConfig, RconError, RconSession
from source_rcon.protocol import DEFAULT_PORT, DEFAULT_TIMEOUT

RESULT_FILE = "rcon-result.txt"

logger = logging.getLogger("source_rcon.cli")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Send one command over Source RCON")
    p.add_argument("--ip")
    p.add_argument("--port", type=int, default=DEFAULT_PORT)
    p.add_argument("--password")
    p.add_argument("--command")
    p.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT)
    p.add_argument("--console", action="store_true", help="print the result")
    p.add_argument("--file", action="store_true", help=f"append the result to ./{RESULT_FILE}")
    p.add_argument("-v", "--verbose", action="store_true")
    return p


async def run(args: argparse.Namespace, **session_kwargs) -> int:
    cfg = RconConfig(host=args.ip, port=args.port, timeout=args.timeout)
    async with RconSession(cfg, **session_kwargs) as session:
        if not await session.authenticate(args.password):
            print("RCON password incorrect", file=sys.stderr)
            return 1

        result = await session.execute(args.command)

    if args.file:
        with open(Path.cwd() / RESULT_FILE, "a", encoding="utf-8") as f:
            f.write(result)
    elif args.console:
        print(result)
    return 0


def main(argv: Optional[list[str]] = None, **session_kwargs) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.password or not args.ip or not args.command:
        parser.print_usage(sys.stderr)
        print("Must specify a password, ip and command", file=sys.stderr)
        return 2

    try:
        return asyncio.run(run(args, **session_kwargs))
    except RconError as e:
        logger.error("RCON error: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
