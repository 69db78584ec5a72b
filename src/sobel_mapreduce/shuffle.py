"""
Shuffle helpers: deterministic partitioning and sorted grouping.

Map tasks partition their output with partition_for(). Reduce tasks merge
the runs of every map task for their partition and hand groups to the
aggregator in ascending key order.
"""

import hashlib
from collections import defaultdict
from itertools import chain
from typing import Any, Dict, Hashable, Iterable, Iterator, List, Tuple


def _stable_key_repr(key) -> str:
    if isinstance(key, tuple):
        return "(" + ",".join(_stable_key_repr(k) for k in key) + ")"
    return str(key)


def partition_for(key: Hashable, num_partitions: int) -> int:
    """Pick a partition for a key.

    Uses md5 rather than hash() so that every map process agrees on the
    partition of a key regardless of PYTHONHASHSEED.
    """
    if num_partitions <= 0:
        raise ValueError(f"num_partitions must be positive, got {num_partitions}")
    if num_partitions == 1:
        return 0
    digest = hashlib.md5(_stable_key_repr(key).encode('utf-8')).hexdigest()
    return int(digest, 16) % num_partitions


def group_by_key(pairs: Iterable[Tuple[Any, Any]]) -> Dict[Any, List]:
    """Collect values sharing a key."""
    groups = defaultdict(list)
    for key, value in pairs:
        groups[key].append(value)
    return groups


def merge_runs(runs: Iterable[Iterable[Tuple[Any, Any]]]) -> Dict[Any, List]:
    """Merge the (key, value) runs produced by several map tasks."""
    return group_by_key(chain.from_iterable(runs))


def sorted_groups(groups: Dict[Any, List]) -> Iterator[Tuple[Any, List]]:
    """Yield groups in total, deterministic key order."""
    for key in sorted(groups):
        yield key, groups[key]
