"""
TaskExecutor, handles the actual execution of map and reduce tasks.
"""

import os
import glob
import pickle
import grpc
import psutil
import logging
import threading
from typing import Dict, List, Optional, Tuple

from .. import config
from ..image import ImageShape
from ..jobs import load_job
from ..shuffle import group_by_key, merge_runs, sorted_groups
from .pixel_source import InputSplit, PixelSplitReader
from .protocol import FETCH_PATH, encode_file_request

logger = logging.getLogger(__name__)

# (worker_address, file_name); a None address means the local shared dir
ShuffleLocation = Tuple[Optional[str], str]


class TaskExecutor:
    def __init__(self, shared_dir: str, fetch_timeout: float = config.FETCH_TIMEOUT):
        """Initialize TaskExecutor with shared directory path."""
        self.shared_dir = shared_dir
        self.intermediate_dir = os.path.join(shared_dir, 'intermediate')
        self.output_dir = os.path.join(shared_dir, 'output')
        self.fetch_timeout = fetch_timeout

        # Ensure directories exist
        for dir_path in [self.intermediate_dir, self.output_dir]:
            os.makedirs(dir_path, exist_ok=True)

        self.process = psutil.Process()

        # Task progress tracking
        self.task_progress: Dict[str, float] = {}
        self.task_states: Dict[str, str] = {}
        self.task_stats: Dict[str, Dict[str, int]] = {}
        self._progress_lock = threading.Lock()

    def _get_task_key(self, job_id: str, task_id: int, task_type: str) -> str:
        """Generate unique key for task progress tracking."""
        return f"{job_id}_{task_type}_{task_id}"

    def get_task_progress(self, job_id: str, task_id: int, task_type: str) -> Tuple[float, str]:
        """Get current progress and state of a task."""
        task_key = self._get_task_key(job_id, task_id, task_type)
        with self._progress_lock:
            progress = self.task_progress.get(task_key, 0.0)
            state = self.task_states.get(task_key, "UNKNOWN")
        return progress, state

    def get_task_stats(self, job_id: str, task_id: int, task_type: str) -> Dict[str, int]:
        task_key = self._get_task_key(job_id, task_id, task_type)
        with self._progress_lock:
            return dict(self.task_stats.get(task_key, {}))

    def _update_progress(self, task_key: str, progress: float, state: str):
        """Update task progress and state."""
        with self._progress_lock:
            # Progress never moves backwards unless the task restarts or fails
            if state in ("STARTING", "FAILED"):
                self.task_progress[task_key] = progress
            else:
                self.task_progress[task_key] = max(progress, self.task_progress.get(task_key, 0.0))
            self.task_states[task_key] = state

    def _record_stats(self, task_key: str, **stats):
        with self._progress_lock:
            self.task_stats.setdefault(task_key, {}).update(stats)

    def get_memory_usage(self) -> int:
        """Get current memory usage in bytes."""
        return self.process.memory_info().rss

    def cleanup_job(self, job_id: str):
        """Remove intermediate map files and reduce outputs of a finished job."""
        patterns = [
            os.path.join(self.intermediate_dir, f"{job_id}_map_*_part_*.pickle"),
            os.path.join(self.output_dir, f"{job_id}_reduce_*.out"),
        ]
        for pattern in patterns:
            for f in glob.glob(pattern):
                os.remove(f)
                logger.debug(f"Cleaned up {f}")
        with self._progress_lock:
            tracked = set(self.task_progress) | set(self.task_stats)
            for task_key in [k for k in tracked if k.startswith(f"{job_id}_")]:
                self.task_progress.pop(task_key, None)
                self.task_states.pop(task_key, None)
                self.task_stats.pop(task_key, None)

    def execute_map(self, job_id: str, task_id: int, input_path: str, job_name: str,
                    split: InputSplit, shape: ImageShape, num_reduce_tasks: int,
                    use_combiner: bool = False) -> List[str]:
        """Execute a map task and return names of intermediate files."""
        task_key = self._get_task_key(job_id, task_id, "map")
        self._update_progress(task_key, 0.0, "STARTING")

        try:
            # Load job functions
            self._update_progress(task_key, 0.1, "LOADING")
            job = load_job(job_name)
            if not os.path.exists(input_path):
                raise FileNotFoundError(f"Input file not found: {input_path}")

            # Initialize partitions (one list per reduce task)
            partitions = [[] for _ in range(num_reduce_tasks)]
            reader = PixelSplitReader(input_path, split, shape)
            emitted = 0

            self._update_progress(task_key, 0.2, "MAPPING")
            for record in reader:
                for out_key, out_value in job.map_fn(record, shape):
                    partition_id = job.partition_fn(out_key, num_reduce_tasks)
                    partitions[partition_id].append((out_key, out_value))
                    emitted += 1

                # Update progress periodically
                if reader.consumed % 1000 == 0:
                    self._update_progress(task_key, 0.2 + 0.5 * reader.progress, "MAPPING")

            combine_fn = getattr(job, 'combine_fn', None)
            if use_combiner and combine_fn is not None:
                self._update_progress(task_key, 0.7, "COMBINING")
                partitions = [self._combine(pairs, combine_fn) for pairs in partitions]

            # Write partitioned output to intermediate files
            self._update_progress(task_key, 0.8, "WRITING")
            intermediate_files = []
            for partition_id, key_values in enumerate(partitions):
                if not key_values:  # Skip empty partitions
                    continue

                outfile = f"{job_id}_map_{task_id}_part_{partition_id}.pickle"
                with open(os.path.join(self.intermediate_dir, outfile), 'wb') as f:
                    pickle.dump(key_values, f)
                intermediate_files.append(outfile)

            self._record_stats(task_key, pixels_read=reader.consumed, records_emitted=emitted,
                               records_written=sum(len(p) for p in partitions),
                               memory_rss=self.get_memory_usage())
            self._update_progress(task_key, 1.0, "COMPLETED")
            logger.info(f"Map task {task_id} of job {job_id}: {reader.consumed} pixels -> {emitted} records")
            return intermediate_files

        except Exception as e:
            self._update_progress(task_key, 0.0, "FAILED")
            logger.error(f"Map task failed - Job: {job_id}, Task: {task_id}. Error: {e}")
            raise

    @staticmethod
    def _combine(pairs, combine_fn):
        combined = []
        for key, values in group_by_key(pairs).items():
            combined.extend(combine_fn(key, values))
        return combined

    def execute_reduce(self, job_id: str, task_id: int, partition_id: int,
                       shuffle_locations: List[ShuffleLocation], job_name: str,
                       shape: ImageShape) -> str:
        """Execute a reduce task and return the name of its output file."""
        task_key = self._get_task_key(job_id, task_id, "reduce")
        self._update_progress(task_key, 0.0, "STARTING")

        try:
            # Load job functions
            self._update_progress(task_key, 0.1, "LOADING")
            job = load_job(job_name)

            # Shuffle: collect every map run for this partition
            total_files = len(shuffle_locations)
            if total_files == 0:
                logger.warning(f"Reduce task {task_id} found no intermediate files.")

            runs = []
            for i, (worker_address, file_name) in enumerate(shuffle_locations):
                runs.append(pickle.loads(self._fetch_file(worker_address, file_name)))
                self._update_progress(task_key, 0.2 + 0.4 * (i + 1) / total_files, "SHUFFLING")
            merged_data = merge_runs(runs)

            # Reduce groups in sorted key order
            self._update_progress(task_key, 0.6, "REDUCING")
            aggregator = job.create_aggregator(shape)
            aggregator.start()
            output_pixels = []
            for i, (key, values) in enumerate(sorted_groups(merged_data)):
                output_pixels.extend(aggregator.reduce(key, values))
                if (i + 1) % 1000 == 0:
                    self._update_progress(task_key, 0.6 + 0.3 * (i + 1) / len(merged_data), "REDUCING")
            output_pixels.extend(aggregator.finalize())

            # Write output
            self._update_progress(task_key, 0.9, "WRITING")
            outfile = f"{job_id}_reduce_{task_id}.out"
            with open(os.path.join(self.output_dir, outfile), 'w') as f:
                for row, col, value in output_pixels:
                    f.write(f"{row}:{col}\t{value}\n")

            self._record_stats(task_key, groups_reduced=len(merged_data), pixels_written=len(output_pixels),
                               memory_rss=self.get_memory_usage())
            self._update_progress(task_key, 1.0, "COMPLETED")
            logger.info(f"Reduce task {task_id} of job {job_id}: {len(merged_data)} groups -> {len(output_pixels)} pixels")
            return outfile

        except Exception as e:
            self._update_progress(task_key, 0.0, "FAILED")
            logger.error(f"Reduce task failed - Job: {job_id}, Task: {task_id}. Error: {e}")
            raise

    def read_reduce_output(self, outfile: str):
        """Yield (row, col, value) from a reduce output file."""
        with open(os.path.join(self.output_dir, outfile), 'r') as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                position, value = line.split('\t')
                row, col = position.split(':')
                yield int(row), int(col), int(value)

    def _fetch_file(self, worker_address: Optional[str], file_name: str) -> bytes:
        if worker_address is None:
            with open(os.path.join(self.intermediate_dir, file_name), 'rb') as f:
                return f.read()
        return self._fetch_file_via_grpc(worker_address, file_name)

    def _fetch_file_via_grpc(self, worker_address: str, file_name: str) -> bytes:
        """Fetch a single intermediate file from a remote worker via gRPC."""
        try:
            with grpc.insecure_channel(worker_address, options=config.GRPC_OPTIONS) as channel:
                fetch = channel.unary_unary(
                    FETCH_PATH,
                    request_serializer=encode_file_request,
                    response_deserializer=None,
                )
                file_data = fetch(file_name, timeout=self.fetch_timeout)
                if not file_data:
                    raise RuntimeError(f"Fetch failed: Empty data received for {file_name} from {worker_address}")
                return file_data

        except grpc.RpcError as e:
            logger.error(f"gRPC error fetching file {file_name} from {worker_address}: {e.details()}")
            raise RuntimeError(f"Shuffle failure from {worker_address}: {e.details()}") from e
