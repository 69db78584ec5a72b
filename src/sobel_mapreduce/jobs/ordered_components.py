"""
Per-pixel job keyed by (row, col, component).

The aggregator stores Sh^2 on the first group of a pixel and combines it
with Sv^2 on the second. That only works when every group reaches a single
aggregator in sorted key order, so all keys go to partition 0 and the job
refuses more than one reduce task.
"""

from ..aggregator import OrderedAggregator
from ..contributions import PixelRecord, emit_contributions

MAX_REDUCE_TASKS = 1


def map_fn(record: PixelRecord, shape):
    for contribution in emit_contributions(record, shape):
        yield contribution.key, contribution.value


def combine_fn(key, values):
    yield key, sum(values)


def partition_fn(key, num_partitions):
    return 0


def create_aggregator(shape):
    return OrderedAggregator(shape)
