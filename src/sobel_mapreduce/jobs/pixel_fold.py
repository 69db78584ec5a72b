"""
Per-pixel job keyed by (row, col).

Contributions are tagged with their component and grouped by target pixel
only, so a reducer sees both sums of a pixel in one group. Partitioning by
pixel lets the reduce phase scale out.
"""

from collections import defaultdict

from ..aggregator import PixelFoldAggregator
from ..contributions import PixelRecord, emit_contributions
from ..shuffle import partition_for

MAX_REDUCE_TASKS = None


def map_fn(record: PixelRecord, shape):
    for contribution in emit_contributions(record, shape):
        yield contribution.pixel_key, (contribution.component, contribution.value)


def combine_fn(key, values):
    """Pre-sum each component locally; yields one tagged partial per component."""
    sums = defaultdict(int)
    for component, value in values:
        sums[component] += value
    for component in sorted(sums):
        yield key, (component, sums[component])


def partition_fn(key, num_partitions):
    return partition_for(key, num_partitions)


def create_aggregator(shape):
    return PixelFoldAggregator(shape)
