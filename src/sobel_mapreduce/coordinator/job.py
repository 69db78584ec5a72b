"""
Job and task state for the coordinator.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Task:
    """Represents a map or reduce task in the system."""
    def __init__(self, task_id, job_id, task_type, partition_id=None, split=None):
        self.task_id = task_id
        self.job_id = job_id
        self.task_type = task_type  # "MAP" or "REDUCE"
        self.partition_id = partition_id
        self.split = split  # InputSplit for map tasks
        self.status = "PENDING"  # "PENDING", "IN_PROGRESS", "COMPLETED", "FAILED"
        self.start_time = None
        self.end_time = None
        self.error_message = ""
        self.output_files: List[str] = []
        self.shuffle_input_locations: List[Tuple[Optional[str], str]] = []

    def start(self):
        self.status = "IN_PROGRESS"
        self.start_time = datetime.now().isoformat()

    def complete(self, output_files):
        """Mark task as completed."""
        self.status = "COMPLETED"
        self.output_files = list(output_files)
        self.end_time = datetime.now().isoformat()

    def fail(self, error_msg):
        """Mark task as failed with error message. Tasks are never retried."""
        self.status = "FAILED"
        self.error_message = error_msg
        self.end_time = datetime.now().isoformat()


class JobState:
    """Represents the state of a Sobel MapReduce job."""
    VALID_STATES = ["SUBMITTED", "MAPPING", "REDUCING", "COMPLETED", "FAILED"]

    def __init__(self, job_id, input_path, output_path, job_name, num_reduce_tasks, use_combiner=False):
        self.job_id = job_id
        self.input_path = input_path
        self.output_path = output_path
        self.job_name = job_name
        self.num_reduce_tasks = num_reduce_tasks
        self.use_combiner = use_combiner
        self.status = "SUBMITTED"
        self.phase = None
        self.submit_time = datetime.now().isoformat()
        self.completion_time = None
        self.shape = None

        # Task tracking
        self.map_tasks: Dict[str, Task] = {}
        self.reduce_tasks: Dict[str, Task] = {}
        self.error_message = ""

        # partition_id -> [(worker_address, file_name)]
        self.intermediate_file_locations: Dict[int, List[Tuple[Optional[str], str]]] = {}

    @property
    def num_map_tasks(self):
        return len(self.map_tasks)

    @property
    def completed_map_tasks(self):
        return sum(1 for t in self.map_tasks.values() if t.status == "COMPLETED")

    @property
    def completed_reduce_tasks(self):
        return sum(1 for t in self.reduce_tasks.values() if t.status == "COMPLETED")

    def transition_to_map_phase(self):
        """Transition job to mapping phase."""
        if self.status != "SUBMITTED":
            raise ValueError(f"Cannot transition to MAP phase from {self.status}")
        self.status = "MAPPING"
        self.phase = "MAP"
        logger.info(f"Job {self.job_id} started MAP phase with {self.num_map_tasks} tasks")

    def record_map_output(self, task: Task, worker_address: Optional[str]):
        """Collect shuffle locations from a completed map task's file names."""
        # Format: {job_id}_map_{task_id}_part_{partition_id}.pickle
        for file_name in task.output_files:
            partition_id = int(file_name.rsplit('_part_', 1)[1].split('.')[0])
            self.intermediate_file_locations.setdefault(partition_id, []).append((worker_address, file_name))

    def transition_to_reduce_phase(self):
        """Transition job to reduce phase once every map task has completed."""
        if self.status != "MAPPING" or self.completed_map_tasks < self.num_map_tasks:
            raise ValueError("Cannot transition to REDUCE phase - maps not complete")
        self._create_reduce_tasks()
        self.status = "REDUCING"
        self.phase = "REDUCE"
        logger.info(f"Job {self.job_id} started REDUCE phase with {self.num_reduce_tasks} tasks")

    def _create_reduce_tasks(self):
        """Create one reduce task per partition using the collected shuffle data."""
        for i in range(self.num_reduce_tasks):
            task = Task(task_id=f"{self.job_id}_reduce_{i}", job_id=self.job_id, task_type="REDUCE", partition_id=i)
            # Deterministic merge order
            task.shuffle_input_locations = sorted(self.intermediate_file_locations.get(i, []), key=lambda loc: loc[1])
            if not task.shuffle_input_locations:
                logger.warning(f"No intermediate files found for reduce task partition {i}")
            self.reduce_tasks[task.task_id] = task

    def mark_completed(self):
        """Mark job as completed if all reduce tasks are done."""
        if self.status != "REDUCING" or self.completed_reduce_tasks < self.num_reduce_tasks:
            raise ValueError("Cannot mark job complete - reduces not done")
        self.status = "COMPLETED"
        self.completion_time = datetime.now().isoformat()
        logger.info(f"Job {self.job_id} completed successfully")

    def mark_failed(self, error_msg):
        """Mark job as failed with error message."""
        self.status = "FAILED"
        self.error_message = error_msg
        self.completion_time = datetime.now().isoformat()
        logger.error(f"Job {self.job_id} failed: {error_msg}")
