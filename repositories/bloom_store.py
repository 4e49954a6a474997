import logging
from typing import Optional

from core.algorithms.bloom_filter import BloomFilter
from core.cache.persistent_cache import BaseBlobStore
from core.exceptions import CorruptData, StoreUnavailable

logger = logging.getLogger(__name__)


class BloomFilterStore:
    """
    过滤器持久化适配器：只负责 BloomFilter <-> bytes 与 Blob 存储之间的读写，不含业务决策。

    - load: 不存在返回 None；存储不可达抛 StoreUnavailable；字节无法解码抛 CorruptData
    - save: 写入失败抛 StoreUnavailable；开启 verify_after_persist 时回读校验，校验失败只记录日志
    """

    def __init__(self, store: BaseBlobStore, verify_after_persist: bool = True) -> None:
        self.store = store
        self.verify_after_persist = verify_after_persist

    @property
    def endpoint(self) -> str:
        return self.store.endpoint

    def load(self, key: str) -> Optional[BloomFilter]:
        blob = self.store.get(key)
        if blob is None:
            logger.debug(f"No blob stored under key: {key}")
            return None
        return BloomFilter.from_bytes(blob)

    def save(self, key: str, bloom_filter: BloomFilter) -> None:
        blob = bloom_filter.to_bytes()
        self.store.set(key, blob)
        logger.info(f"Bloom filter saved to {self.endpoint} with key: {key} ({len(blob)} bytes)")

        if self.verify_after_persist:
            self._verify(key, bloom_filter)

    def _verify(self, key: str, expected: BloomFilter) -> bool:
        try:
            restored = self.load(key)
        except (StoreUnavailable, CorruptData) as e:
            logger.warning(f"Failed to verify Bloom filter under key {key}: {e}")
            return False

        if restored is None:
            logger.warning(f"Failed to verify Bloom filter under key {key}: nothing stored after save")
            return False
        if (restored.size, restored.hash_count) != (expected.size, expected.hash_count):
            logger.warning(
                f"Failed to verify Bloom filter under key {key}: "
                f"stored dimensions ({restored.size}, {restored.hash_count}) "
                f"differ from ({expected.size}, {expected.hash_count})"
            )
            return False
        logger.info(f"Successfully verified Bloom filter under key: {key}")
        return True
