import math

import pytest

from core.algorithms.bloom_sizing import FilterConfiguration, optimal_hash_count, optimal_size
from core.exceptions import ConfigurationError


def test_optimal_size_matches_formula():
    n, p = 10_000_000, 0.01
    expected = math.ceil(-n * math.log(p) / (math.log(2) ** 2))
    assert optimal_size(n, p) == expected
    assert optimal_size(n, p) == 95850584


def test_optimal_hash_count_default_config():
    m = optimal_size(10_000_000, 0.01)
    assert optimal_hash_count(m, 10_000_000) == 7


def test_small_configuration():
    assert optimal_size(10_000, 0.01) == 95851
    assert optimal_hash_count(95851, 10_000) == 7


def test_hash_count_at_least_one():
    # m 远小于 n 时公式会四舍五入为 0
    assert optimal_hash_count(10, 1_000_000) == 1


@pytest.mark.parametrize("n", [0, -1])
def test_invalid_expected_insertions(n):
    with pytest.raises(ConfigurationError):
        optimal_size(n, 0.01)


@pytest.mark.parametrize("p", [0, 1, -0.5, 1.5])
def test_invalid_false_positive_rate(p):
    with pytest.raises(ConfigurationError):
        optimal_size(1000, p)


def test_invalid_hash_count_inputs():
    with pytest.raises(ConfigurationError):
        optimal_hash_count(0, 100)
    with pytest.raises(ConfigurationError):
        optimal_hash_count(100, 0)


class TestFilterConfiguration:
    def test_derives_dimensions(self):
        config = FilterConfiguration(expected_insertions=10_000, false_positive_rate=0.01)
        assert config.optimal_size() == 95851
        assert config.optimal_hash_count() == 7

    def test_rejects_invalid_values(self):
        with pytest.raises(ConfigurationError):
            FilterConfiguration(expected_insertions=0, false_positive_rate=0.01)
        with pytest.raises(ConfigurationError):
            FilterConfiguration(expected_insertions=100, false_positive_rate=1.0)

    def test_is_immutable(self):
        config = FilterConfiguration(expected_insertions=100, false_positive_rate=0.01)
        with pytest.raises(Exception):
            config.expected_insertions = 200


def test_lower_error_rate_needs_more_bits():
    assert optimal_size(10_000, 0.001) > optimal_size(10_000, 0.01) > optimal_size(10_000, 0.1)
