"""
Runs a Sobel MapReduce job end to end.

The runner splits the input, runs map tasks concurrently, waits for all of
them (the shuffle barrier), runs the reduce tasks, and assembles the
output image. Any task failure aborts the job; nothing is retried.
"""

import os
import uuid
import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Optional

from .. import config
from ..aggregator import ImageAssembler
from ..errors import JobConfigurationError, JobFailedError
from ..image import write_image
from ..jobs import load_job
from ..worker.pixel_source import split_image_input, read_header
from ..worker.task_executor import TaskExecutor
from .job import JobState, Task
from .metrics import MetricsCollector

logger = logging.getLogger(__name__)


class JobRunner:
    """Coordinates map, shuffle, reduce and assembly for one process."""

    def __init__(self, shared_dir: str = config.SHARED_DIR, max_workers: int = config.MAX_WORKERS,
                 worker_address: Optional[str] = None, keep_intermediate: bool = False):
        """
        Args:
            shared_dir: Directory holding intermediate and reduce output files
            max_workers: Threads running map or reduce tasks concurrently
            worker_address: host:port of a worker server exporting shared_dir.
                When set, reducers fetch map output over gRPC from that address.
            keep_intermediate: Leave intermediate files in place after the job
        """
        self.shared_dir = shared_dir
        self.max_workers = max_workers
        self.worker_address = worker_address
        self.keep_intermediate = keep_intermediate
        self.task_executor = TaskExecutor(shared_dir)
        self.metrics = MetricsCollector()
        self.jobs = {}

    def validate(self, job_name: str, num_map_tasks: int, num_reduce_tasks: int):
        """Check job parameters against the constraints the job module declares."""
        job = load_job(job_name)
        if num_map_tasks < 1:
            raise JobConfigurationError(f"num_map_tasks must be at least 1, got {num_map_tasks}")
        if num_reduce_tasks < 1:
            raise JobConfigurationError(f"num_reduce_tasks must be at least 1, got {num_reduce_tasks}")

        max_reduce = getattr(job, 'MAX_REDUCE_TASKS', None)
        if max_reduce is not None and num_reduce_tasks > max_reduce:
            raise JobConfigurationError(
                f"Job {job_name} requires at most {max_reduce} reduce task(s), got {num_reduce_tasks}; "
                "its aggregator keeps state that must not be split across workers"
            )

    def run(self, input_path: str, output_path: str, job_name: str = config.DEFAULT_VARIANT,
            num_map_tasks: int = config.NUM_MAP_TASKS, num_reduce_tasks: int = config.NUM_REDUCE_TASKS,
            use_combiner: bool = False,
            progress_callback: Optional[Callable[[JobState], None]] = None) -> JobState:
        """Run a job and write the filtered image to output_path.

        Raises:
            JobConfigurationError: if the parameters violate the job's constraints
            JobFailedError: if any stage fails; the original error is chained
        """
        self.validate(job_name, num_map_tasks, num_reduce_tasks)

        job_id = uuid.uuid4().hex
        job_state = JobState(job_id, input_path, output_path, job_name, num_reduce_tasks, use_combiner)
        self.jobs[job_id] = job_state
        self.metrics.start_job(job_id, job_name, num_reduce_tasks, use_combiner, input_path)
        logger.info(f"Job {job_id}: {job_name} {input_path} -> {output_path} "
                    f"({num_map_tasks} map, {num_reduce_tasks} reduce, combiner={use_combiner})")

        try:
            self._run_map_phase(job_state, num_map_tasks, progress_callback)
            self._run_reduce_phase(job_state, progress_callback)
            self._assemble_output(job_state)
            job_state.mark_completed()
            self.metrics.end_job(job_id, output_path)
        except Exception as e:
            job_state.mark_failed(f"{type(e).__name__}: {e}")
            raise JobFailedError(job_id, job_state.error_message) from e
        finally:
            if not self.keep_intermediate:
                self.task_executor.cleanup_job(job_id)
            if progress_callback:
                progress_callback(job_state)

        return job_state

    def _run_map_phase(self, job_state: JobState, num_map_tasks: int, progress_callback):
        if not os.path.exists(job_state.input_path):
            raise FileNotFoundError(f"Input file not found: {job_state.input_path}")

        job_state.shape = read_header(job_state.input_path)
        splits = split_image_input(job_state.input_path, num_map_tasks)
        for split in splits:
            task = Task(f"{job_state.job_id}_map_{split.split_id}", job_state.job_id, "MAP", split=split)
            job_state.map_tasks[task.task_id] = task
        job_state.transition_to_map_phase()

        def run_map(task: Task):
            task.start()
            return self.task_executor.execute_map(
                job_state.job_id, task.split.split_id, job_state.input_path, job_state.job_name,
                task.split, job_state.shape, job_state.num_reduce_tasks, job_state.use_combiner,
            )

        def on_complete(task: Task, files):
            task.complete(files)
            job_state.record_map_output(task, self.worker_address)
            self.metrics.record_map_task(
                job_state.job_id,
                self.task_executor.get_task_stats(job_state.job_id, task.split.split_id, "map"),
            )

        self._run_tasks(list(job_state.map_tasks.values()), run_map, on_complete, job_state, progress_callback)
        self.metrics.end_map_phase(job_state.job_id)

        # Shuffle barrier: every map task has completed here
        job_state.transition_to_reduce_phase()
        self.metrics.start_reduce_phase(job_state.job_id, [
            os.path.join(self.task_executor.intermediate_dir, name)
            for locations in job_state.intermediate_file_locations.values()
            for _, name in locations
        ])

    def _run_reduce_phase(self, job_state: JobState, progress_callback):
        def run_reduce(task: Task):
            task.start()
            return [self.task_executor.execute_reduce(
                job_state.job_id, task.partition_id, task.partition_id, task.shuffle_input_locations,
                job_state.job_name, job_state.shape,
            )]

        def on_complete(task: Task, files):
            task.complete(files)
            self.metrics.record_reduce_task(
                job_state.job_id,
                self.task_executor.get_task_stats(job_state.job_id, task.partition_id, "reduce"),
            )

        self._run_tasks(list(job_state.reduce_tasks.values()), run_reduce, on_complete, job_state, progress_callback)

    def _run_tasks(self, tasks, run_task, on_complete, job_state: JobState, progress_callback):
        """Run tasks on the thread pool; the first failure cancels the rest and propagates."""
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {pool.submit(run_task, task): task for task in tasks}
            pending = set(futures)
            while pending:
                done, pending = wait(pending, return_when=FIRST_EXCEPTION)
                for future in done:
                    task = futures[future]
                    error = future.exception()
                    if error is not None:
                        task.fail(str(error))
                        for other in pending:
                            other.cancel()
                        raise error
                    on_complete(task, future.result())
                    if progress_callback:
                        progress_callback(job_state)

    def _assemble_output(self, job_state: JobState):
        assembler = ImageAssembler(job_state.shape)
        for task in sorted(job_state.reduce_tasks.values(), key=lambda t: t.partition_id):
            for outfile in task.output_files:
                assembler.add_all(self.task_executor.read_reduce_output(outfile))

        image = assembler.build()
        output_dir = os.path.dirname(os.path.abspath(job_state.output_path))
        os.makedirs(output_dir, exist_ok=True)
        write_image(image, job_state.output_path)
        logger.info(f"Job {job_state.job_id}: wrote {image.rows}x{image.cols} image to {job_state.output_path}")
