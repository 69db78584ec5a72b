"""
Job modules and the loader used by the task executor.

A job module defines:
    map_fn(record, shape)              -> yields (key, value)
    combine_fn(key, values)            -> yields (key, value)
    partition_fn(key, num_partitions)  -> partition id
    create_aggregator(shape)           -> Aggregator
    MAX_REDUCE_TASKS                   -> int, or None for no limit
"""

import importlib
import importlib.util
import os

JOBS = {
    'pixel': 'sobel_mapreduce.jobs.pixel_fold',
    'ordered': 'sobel_mapreduce.jobs.ordered_components',
    'image': 'sobel_mapreduce.jobs.whole_image',
}

REQUIRED_ATTRIBUTES = ('map_fn', 'partition_fn', 'create_aggregator')


def load_job(job: str):
    """Load a job module by registered name, dotted module path, or .py file path."""
    if job in JOBS:
        module = importlib.import_module(JOBS[job])
    elif job.endswith('.py'):
        if not os.path.exists(job):
            raise FileNotFoundError(f"Job file not found: {job}")
        spec = importlib.util.spec_from_file_location(f"sobel_job_{os.path.basename(job)[:-3]}", job)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Failed to load job file: {job}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
    else:
        module = importlib.import_module(job)

    for attribute in REQUIRED_ATTRIBUTES:
        if not hasattr(module, attribute):
            raise ValueError(f"Job {job} missing {attribute}")
    return module
