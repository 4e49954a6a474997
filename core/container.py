from typing import Optional
import logging

from core.algorithms.bloom_sizing import FilterConfiguration
from core.cache.persistent_cache import BaseBlobStore, create_blob_store
from core.config import Settings, settings as default_settings
from core.database import Database
from repositories.bloom_store import BloomFilterStore
from repositories.user_repo import UserRepository
from services.auth_service import AuthService
from services.bloom_filter import BloomRuntimeSettings, UsernameBloomFilterService
from services.user_generation_service import UserGenerationService

logger = logging.getLogger(__name__)


class Container:
    """
    组件装配：数据库、仓库、Blob 存储、过滤器服务。
    配置在此处一次性校验，非法配置抛出 ConfigurationError，进程拒绝启动。
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        db: Optional[Database] = None,
        blob_store: Optional[BaseBlobStore] = None,
    ) -> None:
        self.settings = settings or default_settings
        s = self.settings

        # 校验配置 (失败即抛出 ConfigurationError)
        self.filter_config = FilterConfiguration(
            expected_insertions=s.BLOOM_EXPECTED_INSERTIONS,
            false_positive_rate=s.BLOOM_FALSE_POSITIVE_RATE,
        )
        self.runtime_settings = BloomRuntimeSettings.from_settings(s)
        logger.info(
            f"Bloom filter configuration: n={self.filter_config.expected_insertions}, "
            f"p={self.filter_config.false_positive_rate}, batch={self.runtime_settings.batch_size}, "
            f"persistence={self.runtime_settings.persistence_enabled}"
        )

        self.db = db or Database(db_url=s.DATABASE_URL)
        self.user_repo = UserRepository(self.db)
        logger.info("Repositories initialized")

        self.blob_store = blob_store or create_blob_store(
            s.BLOOM_STORE_BACKEND,
            s.REDIS_URL,
            str(s.PERSIST_CACHE_SQLITE),
            s.BLOOM_STORE_TIMEOUT,
        )
        self.filter_store = BloomFilterStore(
            self.blob_store,
            verify_after_persist=self.runtime_settings.verify_after_persist,
        )
        logger.info(f"Filter store initialized: {self.blob_store.endpoint}")

        self.bloom_service = UsernameBloomFilterService(
            self.user_repo,
            self.filter_store,
            self.filter_config,
            self.runtime_settings,
        )
        self.auth_service = AuthService(self.user_repo, self.bloom_service)
        self.user_generation_service = UserGenerationService(
            self.user_repo,
            self.bloom_service,
            batch_size=self.runtime_settings.batch_size,
        )
        logger.info("Services initialized")

    async def close(self) -> None:
        self.blob_store.close()
        await self.db.close()


_container: Optional[Container] = None


def get_container() -> Container:
    """进程级容器 (首次调用时装配)"""
    global _container
    if _container is None:
        _container = Container()
    return _container
