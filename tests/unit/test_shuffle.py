"""
Unit tests for partitioning and grouping
"""

import pytest

from sobel_mapreduce.contributions import Component
from sobel_mapreduce.shuffle import group_by_key, merge_runs, partition_for, sorted_groups


class TestPartitionFor:

    def test_stable_values(self):
        # md5("(1,2)") ends in 0xe
        assert partition_for((1, 2), 4) == 2
        assert partition_for((1, 2), 8) == 6
        # md5("(3,4,V)") ends in 0x4
        assert partition_for((3, 4, Component.VERTICAL), 4) == 0

    def test_single_partition(self):
        assert partition_for((5, 5, Component.HORIZONTAL), 1) == 0

    def test_range(self):
        for row in range(10):
            for col in range(10):
                assert 0 <= partition_for((row, col), 3) < 3

    def test_invalid_partition_count(self):
        with pytest.raises(ValueError):
            partition_for((0, 0), 0)


class TestGrouping:

    def test_group_by_key(self):
        groups = group_by_key([("a", 1), ("b", 2), ("a", 3)])
        assert groups == {"a": [1, 3], "b": [2]}

    def test_sorted_groups_orders_components(self):
        pairs = [
            ((1, 0, Component.VERTICAL), 1),
            ((0, 2, Component.HORIZONTAL), 2),
            ((1, 0, Component.HORIZONTAL), 3),
            ((1, 0, Component.VERTICAL), 4),
        ]
        assert list(sorted_groups(merge_runs([pairs]))) == [
            ((0, 2, Component.HORIZONTAL), [2]),
            ((1, 0, Component.HORIZONTAL), [3]),
            ((1, 0, Component.VERTICAL), [1, 4]),
        ]

    def test_merge_runs(self):
        merged = merge_runs([[((0, 0), 1)], [((0, 0), 2), ((0, 1), 3)], []])
        assert merged == {(0, 0): [1, 2], (0, 1): [3]}
