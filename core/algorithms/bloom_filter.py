import struct
import threading
import logging
from typing import Any, List

import xxhash

from core.exceptions import CorruptData

logger = logging.getLogger(__name__)

# 奇数黄金分割常量，用于将种子序号扩散到 64 位
GOLDEN_GAMMA = 0x9E3779B97F4A7C15
_MASK64 = (1 << 64) - 1

# 序列化格式: magic(4s) + version(B) + size(Q) + hash_count(I)，大端
MAGIC = b"BLMF"
FORMAT_VERSION = 1
_HEADER = struct.Struct(">4sBQI")


def base_hash(item: Any) -> int:
    """稳定的 64 位基础哈希 (跨进程可复现，不使用带盐的内置 hash())"""
    # 孤立代理项 (非 UTF-8 的 argv 等) 按码点原样编码，不丢字符
    data = item if isinstance(item, bytes) else str(item).encode("utf-8", "surrogatepass")
    return xxhash.xxh64(data, seed=0).intdigest()


def _mix64(z: int) -> int:
    # splitmix64 finalizer
    z = ((z ^ (z >> 30)) * 0xBF58476D1CE4E5B9) & _MASK64
    z = ((z ^ (z >> 27)) * 0x94D049BB133111EB) & _MASK64
    return z ^ (z >> 31)


def probe_positions(h: int, size: int, hash_count: int) -> List[int]:
    """
    由基础哈希与种子序号推导 k 个探测位置。
    哈希函数本身不是数据：只要 (size, hash_count) 相同，就能重新推导出相同的位置。
    """
    return [
        _mix64(h ^ ((seed * GOLDEN_GAMMA) & _MASK64)) % size
        for seed in range(hash_count)
    ]


class BloomFilter:
    """
    布隆过滤器 (纯 Python 实现)

    特性:
    - 使用 bytearray 存储位数组，bit i 位于第 i // 8 字节的 1 << (i % 8)
    - 基础哈希使用 xxHash64，k 个探测位置由种子序号混合推导
    - 单实例一把锁，保证 add / might_contain / clear 互斥
    - 支持字节级序列化 (to_bytes / from_bytes)
    """

    def __init__(self, size: int, hash_count: int) -> None:
        """
        Args:
            size: 位数组大小 m
            hash_count: 哈希函数数量 k
        """
        if size <= 0:
            raise ValueError(f"size must be positive, got {size}")
        if hash_count <= 0:
            raise ValueError(f"hash_count must be positive, got {hash_count}")
        self._size = size
        self._hash_count = hash_count
        self._bits = bytearray((size + 7) // 8)
        self._lock = threading.RLock()

    @property
    def size(self) -> int:
        return self._size

    @property
    def hash_count(self) -> int:
        return self._hash_count

    def _positions(self, item: Any) -> List[int]:
        return probe_positions(base_hash(item), self._size, self._hash_count)

    def add(self, item: Any) -> None:
        """添加元素 (幂等)"""
        positions = self._positions(item)
        with self._lock:
            for pos in positions:
                self._bits[pos >> 3] |= 1 << (pos & 7)

    def might_contain(self, item: Any) -> bool:
        """False 表示一定不存在；True 表示可能存在"""
        positions = self._positions(item)
        with self._lock:
            for pos in positions:
                if not self._bits[pos >> 3] & (1 << (pos & 7)):
                    return False
        return True

    def __contains__(self, item: Any) -> bool:
        return self.might_contain(item)

    def clear(self) -> None:
        """清空所有位，size / hash_count 保持不变"""
        with self._lock:
            self._bits[:] = bytes(len(self._bits))

    def bit_count(self) -> int:
        with self._lock:
            return int.from_bytes(self._bits, "big").bit_count()

    def fill_ratio(self) -> float:
        return self.bit_count() / self._size

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BloomFilter):
            return NotImplemented
        return (
            self._size == other._size
            and self._hash_count == other._hash_count
            and self.to_bytes() == other.to_bytes()
        )

    def __repr__(self) -> str:
        return f"BloomFilter(size={self._size}, hash_count={self._hash_count})"

    # ------------------------------------------------------------------
    # 序列化
    # ------------------------------------------------------------------
    def to_bytes(self) -> bytes:
        with self._lock:
            payload = bytes(self._bits)
        return _HEADER.pack(MAGIC, FORMAT_VERSION, self._size, self._hash_count) + payload

    @classmethod
    def from_bytes(cls, blob: Any) -> "BloomFilter":
        """从字节恢复过滤器；任何结构性问题都抛出 CorruptData"""
        if not isinstance(blob, (bytes, bytearray, memoryview)):
            raise CorruptData(
                f"Expected bytes, got {type(blob).__name__}",
                {"type": type(blob).__name__},
            )
        blob = bytes(blob)
        if len(blob) < _HEADER.size:
            raise CorruptData(f"Blob too short for header: {len(blob)} bytes")

        magic, version, size, hash_count = _HEADER.unpack_from(blob)
        if magic != MAGIC:
            raise CorruptData(f"Bad magic: {magic!r}")
        if version != FORMAT_VERSION:
            raise CorruptData(f"Unsupported format version: {version}")
        if size <= 0 or hash_count <= 0:
            raise CorruptData(f"Invalid dimensions: size={size}, hash_count={hash_count}")

        payload = blob[_HEADER.size:]
        expected = (size + 7) // 8
        if len(payload) != expected:
            raise CorruptData(
                f"Bit payload length {len(payload)} does not match size {size} (expected {expected})",
                {"size": size, "payload_len": len(payload)},
            )
        tail_bits = size % 8
        if tail_bits and payload[-1] >> tail_bits:
            raise CorruptData("Bits set beyond declared size")

        bf = cls(size, hash_count)
        bf._bits[:] = payload
        logger.debug(f"BloomFilter decoded: size={size}, hash_count={hash_count}")
        return bf
