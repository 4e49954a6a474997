"""
布隆过滤器单元测试
"""
import struct

import pytest

from core.algorithms.bloom_filter import (
    FORMAT_VERSION,
    MAGIC,
    BloomFilter,
    base_hash,
    probe_positions,
)
from core.algorithms.bloom_sizing import FilterConfiguration
from core.exceptions import CorruptData


class TestBloomFilter:
    """测试布隆过滤器基本功能"""

    def test_initialization(self):
        bf = BloomFilter(size=1000, hash_count=3)
        assert bf.size == 1000
        assert bf.hash_count == 3
        assert bf.bit_count() == 0
        assert repr(bf) == "BloomFilter(size=1000, hash_count=3)"

    @pytest.mark.parametrize("size,hash_count", [(0, 3), (-1, 3), (100, 0), (100, -2)])
    def test_invalid_dimensions(self, size, hash_count):
        with pytest.raises(ValueError):
            BloomFilter(size, hash_count)

    def test_empty_filter(self):
        bf = BloomFilter(1000, 3)
        assert not bf.might_contain("anything")
        assert "anything" not in bf

    def test_add_and_contains(self):
        bf = BloomFilter(1000, 3)
        bf.add("alice")
        bf.add("bob")

        assert bf.might_contain("alice")
        assert "bob" in bf
        assert bf.bit_count() <= 6

    def test_duplicate_add_is_idempotent(self):
        bf = BloomFilter(1000, 3)
        bf.add("alice")
        snapshot = bf.to_bytes()
        bf.add("alice")
        assert bf.to_bytes() == snapshot

    def test_no_false_negatives(self):
        """已加入的元素必须全部命中"""
        bf = BloomFilter(9586, 7)
        names = [f"user_{i}" for i in range(1000)]
        for name in names:
            bf.add(name)
        assert all(bf.might_contain(name) for name in names)

    def test_false_positive_rate(self):
        """假阳性率（统计测试）: n=10k, p=0.01，10 万次探测不应超过 3%"""
        config = FilterConfiguration(expected_insertions=10_000, false_positive_rate=0.01)
        bf = BloomFilter(config.optimal_size(), config.optimal_hash_count())
        for i in range(10_000):
            bf.add(f"user_{i}")

        test_count = 100_000
        false_positives = sum(
            1 for i in range(10_000, 10_000 + test_count) if bf.might_contain(f"user_{i}")
        )
        actual_rate = false_positives / test_count
        assert actual_rate <= 0.03, f"假阳性率过高: {actual_rate}"

    def test_clear(self):
        bf = BloomFilter(1000, 3)
        for i in range(50):
            bf.add(f"user_{i}")
        assert bf.bit_count() > 0

        bf.clear()
        assert bf.bit_count() == 0
        assert bf.size == 1000
        assert bf.hash_count == 3
        assert not bf.might_contain("user_1")

    def test_fill_ratio(self):
        bf = BloomFilter(800, 1)
        assert bf.fill_ratio() == 0.0
        bf.add("x")
        assert bf.fill_ratio() == 1 / 800

    def test_equality(self):
        a = BloomFilter(500, 4)
        b = BloomFilter(500, 4)
        assert a == b
        a.add("alice")
        assert a != b
        b.add("alice")
        assert a == b
        assert BloomFilter(500, 4) != BloomFilter(500, 5)


class TestHashing:
    """哈希稳定性"""

    def test_lone_surrogates_hash_without_error(self):
        """孤立代理项 (如非 UTF-8 argv 解码出的 \\udcff) 可以加入与查询"""
        bf = BloomFilter(4096, 5)
        bf.add("user_\udcff")
        assert bf.might_contain("user_\udcff")
        assert base_hash("\ud800") == base_hash("\ud800")
        # 不同的代理项不会折叠成同一个哈希
        assert base_hash("user_\udcff") != base_hash("user_\udcfe")
        assert base_hash("user_\udcff") != base_hash("user_")

    def test_bit_array_length_is_exact(self):
        for size, expected in [(1, 1), (8, 1), (9, 2), (2**20 + 1, 2**17 + 1)]:
            bf = BloomFilter(size, 1)
            assert len(bf.to_bytes()) == 17 + expected

    def test_base_hash_is_stable(self):
        # 跨进程可复现: 与内置 hash() 不同，不受 PYTHONHASHSEED 影响
        assert base_hash("alice") == base_hash("alice")
        assert base_hash("alice") == base_hash(b"alice")
        assert base_hash("alice") != base_hash("bob")

    def test_probe_positions_in_range(self):
        positions = probe_positions(base_hash("alice"), 97, 7)
        assert len(positions) == 7
        assert all(0 <= p < 97 for p in positions)

    def test_positions_derived_from_dimensions_only(self):
        """相同 (size, hash_count) 的两个实例设置完全相同的位"""
        a = BloomFilter(4096, 5)
        b = BloomFilter(4096, 5)
        a.add("carol")
        b.add("carol")
        assert a.to_bytes() == b.to_bytes()


class TestSerialization:
    """字节序列化与损坏检测"""

    def test_round_trip_preserves_membership(self):
        bf = BloomFilter(2000, 4)
        names = [f"user_{i}" for i in range(100)]
        for name in names:
            bf.add(name)

        restored = BloomFilter.from_bytes(bf.to_bytes())
        assert restored == bf
        assert restored.size == 2000
        assert restored.hash_count == 4
        assert all(restored.might_contain(n) for n in names)
        for i in range(100, 1100):
            assert restored.might_contain(f"user_{i}") == bf.might_contain(f"user_{i}")

    def test_header_layout(self):
        blob = BloomFilter(20, 2).to_bytes()
        magic, version, size, hash_count = struct.unpack_from(">4sBQI", blob)
        assert (magic, version, size, hash_count) == (MAGIC, FORMAT_VERSION, 20, 2)
        assert len(blob) == 17 + 3

    def test_accepts_bytearray(self):
        bf = BloomFilter(64, 2)
        bf.add("alice")
        assert BloomFilter.from_bytes(bytearray(bf.to_bytes())) == bf

    @pytest.mark.parametrize("blob", [None, "not bytes", 12345])
    def test_wrong_type(self, blob):
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(blob)

    def test_too_short(self):
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(b"BLMF\x01")

    def test_garbage(self):
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(b"this is definitely not a bloom filter")

    def test_bad_magic(self):
        blob = bytearray(BloomFilter(64, 2).to_bytes())
        blob[0:4] = b"XXXX"
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(bytes(blob))

    def test_bad_version(self):
        blob = bytearray(BloomFilter(64, 2).to_bytes())
        blob[4] = FORMAT_VERSION + 1
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(bytes(blob))

    def test_zero_dimensions(self):
        blob = struct.pack(">4sBQI", MAGIC, FORMAT_VERSION, 0, 3)
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(blob)
        blob = struct.pack(">4sBQI", MAGIC, FORMAT_VERSION, 64, 0) + bytes(8)
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(blob)

    def test_truncated_payload(self):
        blob = BloomFilter(64, 2).to_bytes()
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(blob[:-1])

    def test_extra_payload(self):
        blob = BloomFilter(64, 2).to_bytes()
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(blob + b"\x00")

    def test_bits_beyond_size(self):
        blob = bytearray(BloomFilter(10, 2).to_bytes())
        blob[-1] |= 0x80
        with pytest.raises(CorruptData):
            BloomFilter.from_bytes(bytes(blob))
