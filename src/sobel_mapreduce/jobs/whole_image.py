"""
Per-image job: every pixel is routed to one reducer, which runs the
reference filter over the reassembled image.
"""

from ..aggregator import WholeImageAggregator
from ..contributions import PixelRecord

MAX_REDUCE_TASKS = 1

IMAGE_KEY = "image"


def map_fn(record: PixelRecord, shape):
    yield IMAGE_KEY, tuple(record)


def partition_fn(key, num_partitions):
    return 0


def create_aggregator(shape):
    return WholeImageAggregator(shape)
