"""
布隆过滤器参数计算 (Parameter Sizer)

m = ceil(-n * ln(p) / ln(2)^2)
k = round((m / n) * ln(2))，且至少为 1
"""
import math
from dataclasses import dataclass

from core.exceptions import ConfigurationError

_LN2 = math.log(2)


def optimal_size(expected_insertions: int, false_positive_rate: float) -> int:
    """根据预估元素数量 n 与目标假阳性率 p 计算位数组大小 m"""
    if expected_insertions <= 0:
        raise ConfigurationError(
            f"Expected insertions must be positive, but was: {expected_insertions}",
            {"expected_insertions": expected_insertions},
        )
    if not 0 < false_positive_rate < 1:
        raise ConfigurationError(
            f"False positive rate must be between 0 and 1, but was: {false_positive_rate}",
            {"false_positive_rate": false_positive_rate},
        )
    return math.ceil(-expected_insertions * math.log(false_positive_rate) / (_LN2 ** 2))


def optimal_hash_count(size: int, expected_insertions: int) -> int:
    """根据位数组大小 m 与元素数量 n 计算哈希函数个数 k"""
    if size <= 0 or expected_insertions <= 0:
        raise ConfigurationError(
            f"Size and expected insertions must be positive, got size={size}, n={expected_insertions}",
            {"size": size, "expected_insertions": expected_insertions},
        )
    # 公式在 m 远小于 n 时会四舍五入为 0，过滤器将退化为永远返回 "可能存在"
    return max(1, round((size / expected_insertions) * _LN2))


@dataclass(frozen=True)
class FilterConfiguration:
    """过滤器容量配置，size / hash_count 每次按需推导，不做存储"""
    expected_insertions: int
    false_positive_rate: float

    def __post_init__(self) -> None:
        # 复用计算函数中的校验
        optimal_size(self.expected_insertions, self.false_positive_rate)

    def optimal_size(self) -> int:
        return optimal_size(self.expected_insertions, self.false_positive_rate)

    def optimal_hash_count(self) -> int:
        return optimal_hash_count(self.optimal_size(), self.expected_insertions)
