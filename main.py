"""
用户名布隆过滤器服务入口

    python main.py serve                 # 启动 HTTP 服务 (对账完成后才接受请求)
    python main.py generate 1 100000     # 生成示例用户 user_1 .. user_100000
    python main.py check alice           # 查询用户名是否存在
    python main.py rebuild               # 从数据库重建过滤器并回写存储
"""
import argparse
import asyncio
import logging
import sys

from core.config import settings
from core.exceptions import BloomServiceError
from core.lifecycle import get_lifecycle
from core.logging import setup_logging

logger = logging.getLogger(__name__)


async def run_server(host: str, port: int) -> int:
    """在当前 asyncio 循环中启动 Uvicorn，生命周期由这里统一管理"""
    import uvicorn
    from api.app import create_app

    lifecycle = get_lifecycle()
    await lifecycle.start()

    app = create_app(lifecycle, manage_lifecycle=False)
    config = uvicorn.Config(app=app, host=host, port=port, log_level="info", loop="asyncio")
    server = uvicorn.Server(config)

    async def _watch_stop_event():
        await lifecycle.stop_event.wait()
        logger.info("正在停止 Web 服务器...")
        server.should_exit = True

    watcher = asyncio.create_task(_watch_stop_event())
    logger.info(f"正在启动 Web API (FastAPI) 于 http://{host}:{port}")
    try:
        await server.serve()
    finally:
        watcher.cancel()
        await lifecycle.stop()
    return lifecycle.exit_code


async def run_generate(start: int, end: int) -> int:
    lifecycle = get_lifecycle()
    await lifecycle.start()
    try:
        created = await lifecycle.container.user_generation_service.generate_users(start, end)
        print(f"Generated {created} users")
    finally:
        await lifecycle.stop()
    return 0


async def run_check(username: str) -> int:
    lifecycle = get_lifecycle()
    await lifecycle.start()
    try:
        found = await lifecycle.container.auth_service.exists(username)
        print(f"{username}: {'exists' if found else 'not found'}")
    finally:
        await lifecycle.stop()
    return 0 if found else 1


async def run_rebuild() -> int:
    lifecycle = get_lifecycle()
    await lifecycle.start()
    try:
        await lifecycle.container.bloom_service.rebuild()
        print(lifecycle.container.bloom_service.stats())
    finally:
        await lifecycle.stop()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Username Bloom filter service")
    sub = parser.add_subparsers(dest="command")
    parser.set_defaults(command="serve", host=settings.WEB_HOST, port=settings.WEB_PORT)

    serve = sub.add_parser("serve", help="启动 HTTP 服务")
    serve.add_argument("--host", default=settings.WEB_HOST)
    serve.add_argument("--port", type=int, default=settings.WEB_PORT)

    generate = sub.add_parser("generate", help="生成示例用户 (含两端)")
    generate.add_argument("start", type=int)
    generate.add_argument("end", type=int)

    check = sub.add_parser("check", help="查询用户名是否存在")
    check.add_argument("username")

    sub.add_parser("rebuild", help="从数据库重建过滤器")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    if args.command == "serve":
        coro = run_server(args.host, args.port)
    elif args.command == "generate":
        coro = run_generate(args.start, args.end)
    elif args.command == "check":
        coro = run_check(args.username)
    else:
        coro = run_rebuild()

    try:
        return asyncio.run(coro)
    except BloomServiceError as e:
        logger.critical(f"启动失败: {e}")
        return 2
    except ValueError as e:
        logger.error(f"参数错误: {e}")
        return 2
    except KeyboardInterrupt:
        logger.info("收到中断信号，退出")
        return 130


if __name__ == "__main__":
    sys.exit(main())
