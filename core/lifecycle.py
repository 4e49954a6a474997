"""
统一生命周期管理中心 (Lifecycle Manager)
负责启动 (建表 + 过滤器对账) 与优雅关闭 (过滤器持久化 + 释放连接)。
启动完成前不对外提供查询。
"""
import asyncio
import logging
from typing import Optional

from core.container import Container, get_container
from models.base import init_db

logger = logging.getLogger(__name__)

class LifecycleManager:
    """系统生命周期管理器"""

    _instance: Optional['LifecycleManager'] = None

    def __init__(self, container: Container) -> None:
        self.container = container
        self._running = False
        self._stopped = False
        self.stop_event = asyncio.Event()
        self.exit_code = 0

    @classmethod
    def get_instance(cls, container: Optional[Container] = None) -> 'LifecycleManager':
        if cls._instance is None:
            cls._instance = LifecycleManager(container or get_container())
        return cls._instance

    async def start(self) -> None:
        """启动系统"""
        if self._running:
            logger.warning("LifecycleManager: System is already running.")
            return

        logger.info("LifecycleManager: Initiating startup...")
        try:
            await init_db(self.container.db.engine)
            await self.container.bloom_service.initialize()
            self._running = True
            logger.info("LifecycleManager: System startup sequence complete.")
        except Exception as e:
            logger.critical(f"LifecycleManager: Critical error during startup: {e}")
            await self.stop()
            raise

    def shutdown(self, exit_code: int = 0) -> None:
        """触发停止信号 (同步方法，可从信号处理程序调用)"""
        logger.info(f"LifecycleManager: Shutdown signal received (code: {exit_code})")
        self.exit_code = exit_code
        self.stop_event.set()

    async def stop(self) -> None:
        """停止系统 (执行实际的清理工作)"""
        # 确保 stop_event 被设置，防止等待者死锁
        if not self.stop_event.is_set():
            self.stop_event.set()

        if self._stopped:
            logger.debug("LifecycleManager: Shutdown already done, skipping.")
            return
        self._stopped = True

        logger.info("LifecycleManager: Initiating shutdown...")
        try:
            await self.container.bloom_service.shutdown()
        finally:
            await self.container.close()
            self._running = False
        logger.info("LifecycleManager: System shutdown complete.")

    @property
    def is_running(self) -> bool:
        return self._running

# 原生导出
def get_lifecycle(container: Optional[Container] = None) -> LifecycleManager:
    return LifecycleManager.get_instance(container)
