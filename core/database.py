from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker, AsyncEngine
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
import logging
import os

logger = logging.getLogger(__name__)

class Database:
    def __init__(self, db_url: Optional[str] = None, engine: Optional[AsyncEngine] = None) -> None:
        logger.info(f"[Database] 初始化数据库连接，模式={'共享引擎' if engine else '新建引擎'}")

        if engine:
            # 模式 A: 使用传入的现有引擎
            self.engine = engine
            logger.info(f"[Database] 使用共享引擎: {engine.url}")
        elif db_url:
            # 自动修正 SQLite URL 以使用 aiosqlite 驱动
            if db_url.startswith('sqlite://') and 'aiosqlite' not in db_url:
                db_url = db_url.replace('sqlite://', 'sqlite+aiosqlite://')
                logger.info(f"[Database] 修正SQLite URL: {db_url}")

            from core.config import settings

            engine_kwargs = {"echo": settings.DB_ECHO}
            if 'sqlite' in db_url:
                engine_kwargs["connect_args"] = {"timeout": 30, "check_same_thread": False}
            if ':memory:' not in db_url:
                engine_kwargs["pool_size"] = settings.DB_POOL_SIZE
                engine_kwargs["max_overflow"] = settings.DB_MAX_OVERFLOW

            if 'sqlite' in db_url and ':memory:' not in db_url:
                # 目录必须存在，SQLAlchemy 只会创建文件
                db_path = db_url.split(':///', 1)[-1]
                db_dir = os.path.dirname(os.path.abspath(db_path))
                if db_dir and not os.path.exists(db_dir):
                    os.makedirs(db_dir, exist_ok=True)
                    logger.info(f"[Database] 已创建数据库目录: {db_dir}")

            self.engine = create_async_engine(db_url, **engine_kwargs)

            if 'sqlite' in db_url:
                def set_sqlite_pragma(dbapi_connection, connection_record):
                    cursor = dbapi_connection.cursor()
                    try:
                        cursor.execute("PRAGMA journal_mode=WAL")
                        cursor.execute("PRAGMA synchronous=NORMAL")
                        cursor.execute("PRAGMA busy_timeout=5000") # 5秒等待
                    finally:
                        cursor.close()

                # 对于 AsyncEngine，需要监听 sync_engine
                event.listen(self.engine.sync_engine, "connect", set_sqlite_pragma)

            logger.info(f"[Database] 创建新引擎: {self.engine.url}")
        else:
            raise ValueError("Must provide either db_url or engine")

        self.session_factory = async_sessionmaker(
            self.engine, expire_on_commit=False, class_=AsyncSession
        )
        logger.info(f"[Database] 会话工厂已初始化")

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        session = None
        try:
            session = self.session_factory()
            yield session

            if session.in_transaction():
                await session.commit()
        except Exception as e:
            if session and session.in_transaction():
                await session.rollback()
                logger.error(f"[Database] 事务回滚: {id(session)}，错误={e}")
            raise
        finally:
            if session:
                await session.close()

    @asynccontextmanager
    async def get_session(self, existing_session: Optional[AsyncSession] = None) -> AsyncIterator[AsyncSession]:
        """
        获取一个会话。如果提供了现有会话且处于活动状态，则重用它；
        否则创建一个新的会话上下文。
        """
        if existing_session and existing_session.is_active:
            yield existing_session
        else:
            async with self.session() as session:
                yield session

    async def close(self) -> None:
        logger.info(f"[Database] 关闭数据库引擎")
        await self.engine.dispose()
        logger.info(f"[Database] 数据库引擎已关闭")
