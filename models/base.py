from sqlalchemy.orm import declarative_base
from sqlalchemy.ext.asyncio import AsyncEngine
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


async def init_db(engine: AsyncEngine) -> None:
    """创建所有表 (已存在则跳过)"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("[Database] 数据表初始化完成")
