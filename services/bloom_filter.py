"""
用户名布隆过滤器服务 (Lifecycle Manager)

负责:
- 启动对账: 从存储加载 / 从数据库分页重建 / 重建后回写
- 运行时查询与新增 (可选每次新增后持久化)
- 关闭时最后一次持久化
- 存储不可用时的全部降级策略: 任何持久化错误都不会阻止过滤器可用
"""
import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from core.algorithms.bloom_filter import BloomFilter
from core.algorithms.bloom_sizing import FilterConfiguration
from core.exceptions import ConfigurationError, CorruptData, FilterNotReady, StoreUnavailable
from core.logging import log_performance
from repositories.bloom_store import BloomFilterStore
from repositories.user_repo import UserRepository

logger = logging.getLogger(__name__)


class FilterState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADED = "loaded"
    REBUILDING = "rebuilding"
    READY = "ready"


class LoadOutcome(str, Enum):
    """启动时读取存储的结果"""
    LOADED = "loaded"
    ABSENT = "absent"
    CORRUPT = "corrupt"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class BloomRuntimeSettings:
    """启动时一次性提供的运行参数"""
    batch_size: int
    persistence_key: str
    persistence_enabled: bool = True
    force_rebuild: bool = False
    persist_on_every_add: bool = False
    verify_after_persist: bool = True
    store_timeout: float = 5.0

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ConfigurationError(
                f"Batch size must be positive, but was: {self.batch_size}",
                {"batch_size": self.batch_size},
            )
        if not self.persistence_key:
            raise ConfigurationError("Persistence key must not be empty")
        if self.store_timeout <= 0:
            raise ConfigurationError(
                f"Store timeout must be positive, but was: {self.store_timeout}",
                {"store_timeout": self.store_timeout},
            )

    @classmethod
    def from_settings(cls, settings: Any) -> "BloomRuntimeSettings":
        return cls(
            batch_size=settings.BLOOM_BATCH_SIZE,
            persistence_key=settings.BLOOM_PERSISTENCE_KEY,
            persistence_enabled=settings.BLOOM_PERSISTENCE_ENABLED,
            force_rebuild=settings.BLOOM_FORCE_REBUILD,
            persist_on_every_add=settings.BLOOM_PERSIST_ON_ADD,
            verify_after_persist=settings.BLOOM_VERIFY_AFTER_PERSIST,
            store_timeout=settings.BLOOM_STORE_TIMEOUT,
        )


class UsernameBloomFilterService:
    """
    用户名存在性过滤器的唯一持有者。

    启动决策表 (按顺序):
    1. 未启用持久化 -> 直接重建，不访问存储
    2. force_rebuild -> 直接重建，之后回写
    3. 读取存储:
       - 成功 -> 采用，不重建、不回写
       - 不存在 / 数据损坏 -> 重建，之后回写
       - 存储不可用 -> 重建，不回写
    """

    def __init__(
        self,
        user_repo: UserRepository,
        filter_store: BloomFilterStore,
        config: FilterConfiguration,
        runtime: BloomRuntimeSettings,
    ) -> None:
        self.user_repo = user_repo
        self.filter_store = filter_store
        self.config = config
        self.runtime = runtime

        self._filter: Optional[BloomFilter] = None
        self._state = FilterState.UNINITIALIZED
        self._rebuild_lock = asyncio.Lock()
        self._save_lock = asyncio.Lock()
        # 在线重建期间新增的用户名，切换前补写到新过滤器
        self._pending_adds: Optional[List[str]] = None
        # 超时后仍在线程中执行的写入；它结束之前不发起新的写入
        self._inflight_save: Optional[asyncio.Future] = None

    @property
    def state(self) -> FilterState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == FilterState.READY

    # ------------------------------------------------------------------
    # 启动对账
    # ------------------------------------------------------------------
    async def initialize(self) -> None:
        if self._state != FilterState.UNINITIALIZED:
            logger.warning(f"Bloom filter already initialized (state={self._state.value}), skipping")
            return

        should_save = False
        if not self.runtime.persistence_enabled:
            logger.info("Persistence is disabled for Bloom filter. Building filter from database.")
        elif self.runtime.force_rebuild:
            logger.info("Force rebuild enabled, skipping store lookup")
            should_save = True
        else:
            outcome = await self._load_from_store()
            if outcome == LoadOutcome.LOADED:
                self._state = FilterState.READY
                logger.info(f"Bloom filter ready (loaded): {self._filter!r}")
                return
            # 存储不可用时不回写: 只会再次失败
            should_save = outcome in (LoadOutcome.ABSENT, LoadOutcome.CORRUPT)

        self._state = FilterState.REBUILDING
        self._filter = await self._build_from_database()
        self._state = FilterState.READY
        logger.info(f"Bloom filter ready (rebuilt): {self._filter!r}")

        if should_save:
            await self._persist("post-rebuild")

    async def _load_from_store(self) -> LoadOutcome:
        key = self.runtime.persistence_key
        logger.info(f"Attempting to load Bloom filter from {self.filter_store.endpoint} with key: {key}")
        try:
            loaded = await self._call_store(self.filter_store.load, key)
        except StoreUnavailable as e:
            logger.warning(
                f"Failed to connect to filter store at {self.filter_store.endpoint}: {e}. "
                f"If the store is intentionally not available, set BLOOM_PERSISTENCE_ENABLED=false. "
                f"Creating Bloom filter without persistence."
            )
            return LoadOutcome.UNAVAILABLE
        except CorruptData as e:
            logger.warning(
                f"Found data under key {key} but it is not a valid Bloom filter ({e}); "
                f"will rebuild from database and overwrite it"
            )
            return LoadOutcome.CORRUPT
        except Exception as e:
            logger.warning(
                f"Failed to load Bloom filter from store: {e}. Creating Bloom filter without persistence.",
                exc_info=True,
            )
            return LoadOutcome.UNAVAILABLE

        if loaded is None:
            logger.info("No Bloom filter found in store, will build from database")
            return LoadOutcome.ABSENT

        if (loaded.size, loaded.hash_count) != (self.config.optimal_size(), self.config.optimal_hash_count()):
            logger.warning(
                f"Stored Bloom filter dimensions ({loaded.size}, {loaded.hash_count}) differ from configured "
                f"({self.config.optimal_size()}, {self.config.optimal_hash_count()}); using stored filter. "
                f"Set BLOOM_FORCE_REBUILD=true to resize."
            )
        self._state = FilterState.LOADED
        self._filter = loaded
        logger.info(f"Bloom filter loaded successfully from store: {loaded!r}")
        return LoadOutcome.LOADED

    # ------------------------------------------------------------------
    # 重建
    # ------------------------------------------------------------------
    def _new_filter(self) -> BloomFilter:
        size = self.config.optimal_size()
        hash_count = self.config.optimal_hash_count()
        logger.info(f"Initializing Bloom filter with size: {size}, hash functions: {hash_count}")
        return BloomFilter(size, hash_count)

    @log_performance("bloom_rebuild", threshold_seconds=30.0)
    async def _build_from_database(self) -> BloomFilter:
        """按 batch_size 顺序分页扫描数据库，把每条记录的用户名加入新过滤器"""
        async with self._rebuild_lock:
            bloom_filter = self._new_filter()
            batch_size = self.runtime.batch_size

            # 页数在开始时快照一次，扫描期间的写入不会让循环变长或变短
            total = await self.user_repo.count()
            total_pages = math.ceil(total / batch_size)
            logger.info(f"Building Bloom filter from database: {total} users in {total_pages} batches of {batch_size}")

            added = 0
            drift_logged = False
            for page_index in range(total_pages):
                logger.info(f"Processing batch {page_index}, size {batch_size}")
                page = await self.user_repo.find_page(page_index, batch_size)
                if not page.items:
                    logger.warning(f"Batch {page_index} came back empty, table shrank during rebuild; stopping scan")
                    break
                for record in page.items:
                    bloom_filter.add(record.username)
                added += len(page.items)

                if page.total_pages != total_pages and not drift_logged:
                    logger.warning(
                        f"User count changed during rebuild ({total_pages} -> {page.total_pages} pages); "
                        f"scanning the snapshot of {total_pages} pages"
                    )
                    drift_logged = True

            logger.info(f"Bloom filter built successfully: {added} usernames, fill ratio {bloom_filter.fill_ratio():.4f}")
            return bloom_filter

    async def rebuild(self) -> None:
        """在线重建 (运维触发)：旧过滤器在重建期间继续提供服务，完成后原子切换"""
        self._require_ready()
        if self._pending_adds is not None:
            logger.warning("Online rebuild already in progress, ignoring request")
            return
        self._pending_adds = []
        try:
            fresh = await self._build_from_database()
            for username in self._pending_adds:
                fresh.add(username)
            self._filter = fresh
        finally:
            self._pending_adds = None
        logger.info(f"Bloom filter swapped after online rebuild: {fresh!r}")

        if self.runtime.persistence_enabled:
            await self._persist("online-rebuild")

    # ------------------------------------------------------------------
    # 持久化
    # ------------------------------------------------------------------
    async def _call_store(self, func: Callable, *args: Any, track_write: bool = False) -> Any:
        """
        阻塞的存储调用放到线程中执行，超时视为存储不可用。
        超时只结束等待，线程中的调用会继续执行；track_write=True 时记录该写入，
        下一次保存会先等它结束，写入按发起顺序落盘。
        """
        timeout = self.runtime.store_timeout
        future = asyncio.ensure_future(asyncio.to_thread(func, *args))
        done, _ = await asyncio.wait({future}, timeout=timeout)
        if not done:
            future.add_done_callback(self._on_late_completion)
            if track_write:
                self._inflight_save = future
            raise StoreUnavailable(
                f"Store call timed out after {timeout}s at {self.filter_store.endpoint}",
                {"endpoint": self.filter_store.endpoint, "timeout": timeout},
            )
        return future.result()

    def _on_late_completion(self, future: asyncio.Future) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning(f"Timed-out store call at {self.filter_store.endpoint} failed later: {exc}")
        else:
            logger.info(f"Timed-out store call at {self.filter_store.endpoint} completed late")

    async def _persist(self, reason: str) -> bool:
        """保存当前过滤器；任何失败只记录日志，返回是否成功"""
        if not self.runtime.persistence_enabled:
            logger.debug("Persistence is disabled, skipping save operation")
            return False
        if self._filter is None:
            logger.debug("No Bloom filter to save")
            return False

        key = self.runtime.persistence_key
        async with self._save_lock:
            previous = self._inflight_save
            if previous is not None and not previous.done():
                done, _ = await asyncio.wait({previous}, timeout=self.runtime.store_timeout)
                if not done:
                    logger.error(
                        f"Previous save to {self.filter_store.endpoint} is still running, "
                        f"skipping save ({reason})"
                    )
                    return False
            self._inflight_save = None

            try:
                logger.info(f"Saving Bloom filter ({reason}) to {self.filter_store.endpoint} with key: {key}")
                await self._call_store(self.filter_store.save, key, self._filter, track_write=True)
                return True
            except StoreUnavailable as e:
                logger.error(
                    f"Failed to connect to filter store at {self.filter_store.endpoint}: {e}. "
                    f"If the store is intentionally not available, set BLOOM_PERSISTENCE_ENABLED=false."
                )
            except Exception as e:
                logger.error(f"Failed to save Bloom filter to store: {e}", exc_info=True)
        return False

    async def shutdown(self) -> None:
        if not self.runtime.persistence_enabled:
            logger.info("Application shutting down, persistence is disabled, skipping save operation")
            return
        if self._filter is None:
            logger.info("Application shutting down before the Bloom filter was built, nothing to save")
            return
        logger.info("Application shutting down, saving Bloom filter")
        await self._persist("shutdown")

    # ------------------------------------------------------------------
    # 运行时接口
    # ------------------------------------------------------------------
    def _require_ready(self) -> BloomFilter:
        if self._state != FilterState.READY or self._filter is None:
            raise FilterNotReady(
                f"Bloom filter is not ready (state={self._state.value})",
                {"state": self._state.value},
            )
        return self._filter

    def might_contain_username(self, username: str) -> bool:
        """False: 一定不存在；True: 可能存在，需要数据库确认"""
        return self._require_ready().might_contain(username)

    async def add_username(self, username: str) -> None:
        self._require_ready().add(username)
        if self._pending_adds is not None:
            self._pending_adds.append(username)

        if self.runtime.persist_on_every_add:
            if self.runtime.persistence_enabled:
                logger.debug(f"Saving Bloom filter after adding username: {username}")
                await self._persist("add")
            else:
                logger.debug(f"Persistence is disabled, skipping save operation after adding username: {username}")

    def stats(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "state": self._state.value,
            "persistence_enabled": self.runtime.persistence_enabled,
            "store": self.filter_store.endpoint,
        }
        if self._filter is not None:
            data.update(
                size=self._filter.size,
                hash_count=self._filter.hash_count,
                fill_ratio=round(self._filter.fill_ratio(), 6),
            )
        return data
