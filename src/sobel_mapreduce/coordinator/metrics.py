"""
Performance metrics collection for Sobel MapReduce jobs.
"""

import os
import time
import json
from dataclasses import dataclass, asdict
from typing import Dict, Optional


@dataclass
class JobMetrics:
    """Metrics for a single job execution."""

    job_id: str
    job_name: str
    start_time: float
    end_time: float
    map_phase_start: float
    map_phase_end: float
    reduce_phase_start: float
    reduce_phase_end: float
    num_map_tasks: int
    num_reduce_tasks: int
    use_combiner: bool
    input_size_bytes: int
    intermediate_size_bytes: int = 0
    output_size_bytes: int = 0
    pixels: int = 0
    records_emitted: int = 0
    records_shuffled: int = 0
    peak_memory_rss: int = 0

    @property
    def total_time_seconds(self) -> float:
        """Total job execution time in seconds."""
        return self.end_time - self.start_time

    @property
    def map_phase_time_seconds(self) -> float:
        """Map phase execution time in seconds."""
        return self.map_phase_end - self.map_phase_start

    @property
    def reduce_phase_time_seconds(self) -> float:
        """Reduce phase execution time in seconds."""
        return self.reduce_phase_end - self.reduce_phase_start

    @property
    def combiner_reduction_ratio(self) -> float:
        """Fraction of emitted records removed before the shuffle."""
        if self.records_emitted == 0:
            return 0.0
        return 1.0 - (self.records_shuffled / self.records_emitted)

    def to_dict(self) -> dict:
        """Convert metrics to dictionary."""
        data = asdict(self)
        data['total_time_seconds'] = self.total_time_seconds
        data['combiner_reduction_ratio'] = self.combiner_reduction_ratio
        return data

    def save_to_file(self, filepath: str):
        """Save metrics to JSON file."""
        with open(filepath, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)


class MetricsCollector:
    """Collects and manages metrics for jobs."""

    def __init__(self):
        self.job_metrics: Dict[str, JobMetrics] = {}

    def start_job(self, job_id: str, job_name: str, num_reduce_tasks: int, use_combiner: bool, input_path: str):
        """Initialize metrics tracking for a new job."""
        input_size = os.path.getsize(input_path) if os.path.exists(input_path) else 0
        now = time.time()
        self.job_metrics[job_id] = JobMetrics(
            job_id=job_id,
            job_name=job_name,
            start_time=now,
            end_time=0,
            map_phase_start=now,
            map_phase_end=0,
            reduce_phase_start=0,
            reduce_phase_end=0,
            num_map_tasks=0,
            num_reduce_tasks=num_reduce_tasks,
            use_combiner=use_combiner,
            input_size_bytes=input_size,
        )

    def record_map_task(self, job_id: str, stats: dict):
        """Fold one map task's counters into the job metrics."""
        metrics = self.job_metrics.get(job_id)
        if metrics is None:
            return
        metrics.num_map_tasks += 1
        metrics.pixels += stats.get('pixels_read', 0)
        metrics.records_emitted += stats.get('records_emitted', 0)
        metrics.records_shuffled += stats.get('records_written', 0)
        metrics.peak_memory_rss = max(metrics.peak_memory_rss, stats.get('memory_rss', 0))

    def record_reduce_task(self, job_id: str, stats: dict):
        metrics = self.job_metrics.get(job_id)
        if metrics is None:
            return
        metrics.peak_memory_rss = max(metrics.peak_memory_rss, stats.get('memory_rss', 0))

    def end_map_phase(self, job_id: str):
        """Mark the end of the map phase."""
        if job_id in self.job_metrics:
            self.job_metrics[job_id].map_phase_end = time.time()

    def start_reduce_phase(self, job_id: str, intermediate_paths):
        """Mark the start of the reduce phase and calculate intermediate data size."""
        if job_id in self.job_metrics:
            self.job_metrics[job_id].reduce_phase_start = time.time()
            self.job_metrics[job_id].intermediate_size_bytes = sum(
                os.path.getsize(p) for p in intermediate_paths if os.path.exists(p)
            )

    def end_job(self, job_id: str, output_path: str):
        """Mark job completion and record output size."""
        if job_id in self.job_metrics:
            now = time.time()
            self.job_metrics[job_id].reduce_phase_end = now
            self.job_metrics[job_id].end_time = now
            if os.path.exists(output_path):
                self.job_metrics[job_id].output_size_bytes = os.path.getsize(output_path)

    def get_metrics(self, job_id: str) -> Optional[JobMetrics]:
        """Retrieve metrics for a specific job."""
        return self.job_metrics.get(job_id)
